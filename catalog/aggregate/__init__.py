"""
Namespace-partitioned product counter and the sync layer that keeps it in
step with product mutations.
"""
from catalog.aggregate.count_aggregate import CountAggregate, CounterKey, namespace_for
from catalog.aggregate.sync import BackfillReport, ProductCountSync

__all__ = [
    "CountAggregate",
    "CounterKey",
    "namespace_for",
    "BackfillReport",
    "ProductCountSync",
]
