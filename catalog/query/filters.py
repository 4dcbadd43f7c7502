"""
Filter specification for catalog browsing.

A ``ProductFilterSpec`` is an immutable value built once per request. It is
evaluated in a fixed order: access strategy selection, facet filters, sort,
pagination. ``select_strategy`` is the decision table for the first step.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Tuple


class SortOrder(str, Enum):
    NEWEST = "newest"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortOrder":
        """Unknown or missing sort keys fall back to newest."""
        try:
            return cls(value)
        except ValueError:
            return cls.NEWEST


class Strategy(str, Enum):
    SEARCH = "search"
    CATEGORY = "category"
    STATUS_SCAN = "status_scan"


def _clean_values(values: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not values:
        return ()
    cleaned = (value.strip() for value in values if value is not None)
    return tuple(dict.fromkeys(value for value in cleaned if value))


@dataclass(frozen=True)
class ProductFilterSpec:
    search: Optional[str] = None
    category_slug: Optional[str] = None
    # None means "any status"
    status: Optional[str] = "active"
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    colors: Tuple[str, ...] = ()
    sizes: Tuple[str, ...] = ()
    sort: SortOrder = SortOrder.NEWEST

    @classmethod
    def build(
        cls,
        search: Optional[str] = None,
        category_slug: Optional[str] = None,
        status: Optional[str] = "active",
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        colors: Optional[Iterable[str]] = None,
        sizes: Optional[Iterable[str]] = None,
        sort_by: Optional[str] = None,
    ) -> "ProductFilterSpec":
        """Normalize raw request arguments: blank strings become None, lists are de-duplicated."""
        search = search.strip() if search else None
        category_slug = category_slug.strip() if category_slug else None
        return cls(
            search=search or None,
            category_slug=category_slug or None,
            status=status,
            min_price=min_price,
            max_price=max_price,
            colors=_clean_values(colors),
            sizes=_clean_values(sizes),
            sort=SortOrder.parse(sort_by),
        )

    @property
    def has_facets(self) -> bool:
        return (
            self.min_price is not None
            or self.max_price is not None
            or bool(self.colors)
            or bool(self.sizes)
        )


def select_strategy(spec: ProductFilterSpec) -> Strategy:
    """Free text wins over category; with neither, scan the status index."""
    if spec.search:
        return Strategy.SEARCH
    if spec.category_slug:
        return Strategy.CATEGORY
    return Strategy.STATUS_SCAN
