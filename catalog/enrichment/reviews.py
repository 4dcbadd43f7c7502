"""
Rating aggregation over approved reviews.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from catalog.data.product_store import ProductStore


@dataclass(frozen=True)
class ReviewStats:
    count: int = 0
    average: float = 0.0
    # breakdown[i] is the number of (i + 1)-star reviews
    breakdown: List[int] = field(default_factory=lambda: [0] * 5)

    def to_dict(self) -> Dict:
        return {"count": self.count, "average": self.average, "breakdown": list(self.breakdown)}


def summarize_ratings(ratings: Iterable[int]) -> ReviewStats:
    """Average is 0.0 for an empty list, never NaN or None."""
    breakdown = [0] * 5
    total = 0
    count = 0
    for rating in ratings:
        count += 1
        total += rating
        if 1 <= rating <= 5:
            breakdown[rating - 1] += 1
    average = total / count if count else 0.0
    return ReviewStats(count=count, average=average, breakdown=breakdown)


class ReviewAggregator:
    """Loads approved ratings from the store and summarizes them."""

    def __init__(self, store: ProductStore):
        self.store = store

    def stats_for(self, product_id: str) -> ReviewStats:
        return summarize_ratings(self.store.approved_ratings(product_id))

    def stats_for_many(self, product_ids: Sequence[str]) -> Dict[str, ReviewStats]:
        ratings = self.store.approved_ratings_for_many(product_ids)
        return {product_id: summarize_ratings(ratings.get(product_id, [])) for product_id in product_ids}
