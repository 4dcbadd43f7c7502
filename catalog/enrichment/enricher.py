"""
Display-ready product records.

Enrichment runs only on the products a response actually returns. Variants,
ratings and categories for the whole batch are loaded with one query each;
a failure while deriving one product's fields is logged and reported on that
item (``enrichment_error``) instead of failing or shrinking the batch.
"""
from typing import Any, Dict, List, Optional, Sequence

from catalog.data.models import Product
from catalog.data.product_store import ProductStore
from catalog.enrichment.reviews import ReviewAggregator, ReviewStats
from catalog.enrichment.stock import compute_stock
from catalog.utils.logger import get_logger
from catalog.utils.metrics import MetricsCollector, metrics_collector

logger = get_logger("enrichment.enricher")

NO_SKU = "\u2014"


def default_variant(variants: Sequence[Any]) -> Optional[Any]:
    """The variant flagged default, else the first one, else None."""
    for variant in variants:
        if variant.is_default:
            return variant
    return variants[0] if variants else None


class ProductEnricher:

    def __init__(self, store: ProductStore, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.reviews = ReviewAggregator(store)
        self.metrics = metrics or metrics_collector

    def enrich(self, product: Product) -> Dict[str, Any]:
        return self.enrich_many([product])[0]

    def enrich_many(self, products: Sequence[Product]) -> List[Dict[str, Any]]:
        if not products:
            return []

        product_ids = [p.id for p in products]
        variants = self.store.variants_for_many(product_ids)
        stats = self.reviews.stats_for_many(product_ids)
        categories = self.store.categories_by_id(p.category_id for p in products)

        enriched = []
        for product in products:
            try:
                enriched.append(self._build(
                    product,
                    variants.get(product.id, []),
                    categories.get(product.category_id),
                    stats.get(product.id, ReviewStats()),
                ))
            except Exception as exc:
                logger.exception(f"Failed to enrich product {product.id}")
                self.metrics.record_error("enrich_product")
                record = product.to_dict()
                record["enrichment_error"] = str(exc)
                enriched.append(record)
        return enriched

    @staticmethod
    def _build(product: Product, variants: Sequence[Any], category: Any, stats: ReviewStats) -> Dict[str, Any]:
        stock = compute_stock(product, variants)
        variant = default_variant(variants)
        category_name = category.name if category is not None else None

        record = product.to_dict()
        record.update({
            "variant_count": len(variants),
            "total_stock": stock.effective_stock,
            "stock_status": stock.status.value,
            "category_name": category_name,
            "category": category_name,
            "sku": variant.sku if variant is not None and variant.sku else NO_SKU,
            "default_variant_id": variant.id if variant is not None else None,
            "image": product.featured_image,
            "review_count": stats.count,
            "rating": stats.average,
        })
        return record
