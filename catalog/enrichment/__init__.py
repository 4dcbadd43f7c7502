"""
Derived per-product state: stock level, review stats and the enriched read model.
"""
from catalog.enrichment.enricher import ProductEnricher, default_variant
from catalog.enrichment.reviews import ReviewAggregator, ReviewStats, summarize_ratings
from catalog.enrichment.stock import (
    LOW_STOCK_THRESHOLD, UNLIMITED_STOCK, StockLevel, StockStatus, compute_stock,
)

__all__ = [
    "ProductEnricher",
    "default_variant",
    "ReviewAggregator",
    "ReviewStats",
    "summarize_ratings",
    "LOW_STOCK_THRESHOLD",
    "UNLIMITED_STOCK",
    "StockLevel",
    "StockStatus",
    "compute_stock",
]
