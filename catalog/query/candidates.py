"""
Candidate selection: the first, index-backed stage of a catalog query.

One of three access strategies produces a bounded, unsorted candidate list:

- search:      name search up to the ceiling by relevance, then post-filter on
               status and (when given) category descendant membership.
- category:    resolve the descendant set, fetch up to the ceiling per
               descendant category, filter status, merge newest first and
               truncate to the ceiling. Over-fetches for wide trees.
- status scan: newest rows of the status index up to the ceiling.

Ceiling truncation is an accepted approximation: past the ceiling, matches
are silently left out of the candidate set.
"""
from dataclasses import dataclass
from typing import List, Optional

from catalog.data.models import Product
from catalog.data.product_store import ProductStore
from catalog.query.category_tree import CategoryTree
from catalog.query.filters import ProductFilterSpec, Strategy, select_strategy
from catalog.utils.logger import get_logger

logger = get_logger("query.candidates")


@dataclass
class CandidateSet:
    products: List[Product]
    strategy: Strategy
    # True when a fetch hit the ceiling, so matches may be missing
    truncated: bool = False


class CandidateSelector:
    """Chooses and runs the access strategy for a filter spec."""

    def __init__(self, store: ProductStore, ceiling: int = 1000):
        if ceiling < 1:
            raise ValueError("candidate ceiling must be positive")
        self.store = store
        self.ceiling = ceiling

    def select(self, spec: ProductFilterSpec, tree: Optional[CategoryTree] = None) -> CandidateSet:
        strategy = select_strategy(spec)
        if strategy is Strategy.SEARCH:
            result = self._search(spec, tree)
        elif strategy is Strategy.CATEGORY:
            result = self._category(spec, tree)
        else:
            result = self._status_scan(spec)

        if result.truncated:
            logger.info(
                f"{strategy.value} strategy reached the candidate ceiling ({self.ceiling}); "
                "results beyond it are not considered"
            )
        return result

    def _search(self, spec: ProductFilterSpec, tree: Optional[CategoryTree]) -> CandidateSet:
        rows = self.store.search_by_name(spec.search, self.ceiling)
        truncated = len(rows) >= self.ceiling
        candidates = self._with_status(rows, spec.status)

        if spec.category_slug:
            tree = tree or CategoryTree.from_store(self.store)
            allowed = tree.descendant_ids_for_slug(spec.category_slug)
            candidates = [p for p in candidates if p.category_id in allowed]

        return CandidateSet(candidates, Strategy.SEARCH, truncated)

    def _category(self, spec: ProductFilterSpec, tree: Optional[CategoryTree]) -> CandidateSet:
        tree = tree or CategoryTree.from_store(self.store)
        category_ids = tree.descendant_ids_for_slug(spec.category_slug)
        if not category_ids:
            return CandidateSet([], Strategy.CATEGORY)

        truncated = False
        merged: List[Product] = []
        for category_id in sorted(category_ids):
            rows = self.store.by_category(category_id, self.ceiling)
            truncated = truncated or len(rows) >= self.ceiling
            merged.extend(self._with_status(rows, spec.status))

        merged.sort(key=lambda p: (p.creation_time, p.id), reverse=True)
        if len(merged) > self.ceiling:
            truncated = True
            merged = merged[:self.ceiling]
        return CandidateSet(merged, Strategy.CATEGORY, truncated)

    def _status_scan(self, spec: ProductFilterSpec) -> CandidateSet:
        if spec.status is None:
            rows = self.store.newest(self.ceiling)
        else:
            rows = self.store.by_status(spec.status, self.ceiling)
        return CandidateSet(rows, Strategy.STATUS_SCAN, len(rows) >= self.ceiling)

    @staticmethod
    def _with_status(rows: List[Product], status: Optional[str]) -> List[Product]:
        if status is None:
            return list(rows)
        return [p for p in rows if p.status == status]
