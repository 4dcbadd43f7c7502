"""
In-memory facet filtering and sorting of a candidate set.

Facets combine with AND across kinds (price AND color AND size) and with OR
within a kind: a product passes the color facet when any of its color names
matches any requested color, case-insensitively. Sizes work the same way.
"""
from typing import Any, Iterable, List, Optional, Sequence, Set

from catalog.query.filters import ProductFilterSpec, SortOrder


def _color_names(product: Any) -> Set[str]:
    names = set()
    for option in product.color_options or []:
        name = option.get("name") if isinstance(option, dict) else getattr(option, "name", None)
        if name:
            names.add(name.lower())
    return names


def _size_names(product: Any) -> Set[str]:
    return {size.lower() for size in (product.size_options or []) if size}


def _intersects(available: Set[str], requested: Iterable[str]) -> bool:
    return any(value.lower() in available for value in requested)


class FacetFilterEngine:
    """Pure price / color / size filters plus the storefront sort orders."""

    def filter(self, products: Sequence[Any], spec: ProductFilterSpec) -> List[Any]:
        return [p for p in products if self.matches(p, spec)]

    def matches(self, product: Any, spec: ProductFilterSpec) -> bool:
        if spec.min_price is not None and product.base_price < spec.min_price:
            return False
        if spec.max_price is not None and product.base_price > spec.max_price:
            return False
        if spec.colors and not _intersects(_color_names(product), spec.colors):
            return False
        if spec.sizes and not _intersects(_size_names(product), spec.sizes):
            return False
        return True

    def sort(self, products: Sequence[Any], order: Optional[SortOrder] = None) -> List[Any]:
        order = order or SortOrder.NEWEST
        newest = sorted(products, key=lambda p: (p.creation_time, p.id), reverse=True)
        # Price sorts are stable over the newest-first order, so equal prices
        # keep the (creation_time, id) tie-break
        if order is SortOrder.PRICE_ASC:
            return sorted(newest, key=lambda p: p.base_price)
        if order is SortOrder.PRICE_DESC:
            return sorted(newest, key=lambda p: p.base_price, reverse=True)
        return newest

    def apply(self, products: Sequence[Any], spec: ProductFilterSpec) -> List[Any]:
        return self.sort(self.filter(products, spec), spec.sort)
