"""
Catalog Service - query and mutation entry points of the catalog engine.

Every call runs in exactly one transactional session scope. Queries follow a
fixed pipeline:

    CandidateSelector -> FacetFilterEngine -> Paginator -> ProductEnricher

and only the page actually returned is enriched. Product mutations write the
product row and then route the counter update through ``ProductCountSync``
inside the same transaction.
"""

import time
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, sessionmaker

from catalog.aggregate.count_aggregate import CounterKey, namespace_for
from catalog.aggregate.sync import BackfillReport, ProductCountSync
from catalog.core.auth import Caller, require_admin, require_user
from catalog.core.config import CatalogConfig, get_config
from catalog.core.errors import InvalidRequestError, NotFoundError
from catalog.core.schemas import (
    CategoryCreate, CategoryUpdate, ProductCreate, ProductUpdate, ReviewSubmit,
    VariantCreate, VariantInput, VariantUpdate,
)
from catalog.data.database import get_session_factory, session_scope
from catalog.data.models import (
    DIGITAL_PRODUCT_TYPES, PRODUCT_STATUSES, REVIEW_STATUSES,
    Category, Product, ProductVariant, Review,
)
from catalog.data.product_store import ProductStore
from catalog.enrichment.enricher import ProductEnricher
from catalog.enrichment.reviews import ReviewAggregator
from catalog.query.candidates import CandidateSelector
from catalog.query.category_tree import CategoryTree
from catalog.query.facets import FacetFilterEngine
from catalog.query.filters import ProductFilterSpec
from catalog.query.pagination import (
    CursorPaginator, cursor_after, paginate_by_page, position_from_cursor,
)
from catalog.utils.logger import get_logger
from catalog.utils.metrics import MetricsCollector, metrics_collector, record_operation_metrics
from catalog.utils.slug import unique_slug

logger = get_logger("core.catalog_service")

# Columns a partial update may not set to NULL
_REQUIRED_PRODUCT_FIELDS = frozenset({
    "name", "description", "product_type", "base_price", "images", "requires_shipping", "status",
})


def _now_ms() -> float:
    return time.time() * 1000.0


def featured_image_of(images: Sequence[Dict[str, Any]]) -> Optional[str]:
    """URL of the image flagged main, else the first image, else None."""
    for image in images:
        if image.get("is_main"):
            return image.get("url")
    return images[0].get("url") if images else None


class CatalogService:
    """
    Catalog query/mutation surface.

    Args:
        session_factory: SQLAlchemy sessionmaker; defaults to the process-wide one
        config: Catalog configuration; defaults to ``get_config()``
        counter_sync: Counter sync layer; one is created when omitted
        metrics: Metrics collector shared by the service and its sync layer
    """

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[CatalogConfig] = None,
        counter_sync: Optional[ProductCountSync] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.session_factory = session_factory or get_session_factory()
        self.config = config or get_config()
        self.metrics = metrics or metrics_collector
        self.counter_sync = counter_sync or ProductCountSync(metrics=self.metrics)
        self.aggregate = self.counter_sync.aggregate
        self.facets = FacetFilterEngine()

    @contextmanager
    def _operation(self, name: str) -> Iterator[Session]:
        started = time.perf_counter()
        failed = False
        try:
            with session_scope(self.session_factory) as session:
                yield session
        except Exception:
            failed = True
            raise
        finally:
            latency_ms = (time.perf_counter() - started) * 1000
            record_operation_metrics(name, latency_ms, is_error=failed, collector=self.metrics)

    def _page_size(self, limit: Optional[int], default: int) -> int:
        size = default if limit is None else limit
        if size < 1 or size > self.config.max_page_size:
            raise InvalidRequestError(f"limit must be between 1 and {self.config.max_page_size}")
        return size

    @staticmethod
    def _check_status(status: Optional[str]) -> None:
        if status is not None and status not in PRODUCT_STATUSES:
            raise InvalidRequestError(f"Unknown product status: {status}")

    def _enrich(self, store: ProductStore, products: Sequence[Product]) -> List[Dict[str, Any]]:
        return ProductEnricher(store, self.metrics).enrich_many(products)

    # ------------------------------------------------------------------
    # Storefront / admin product queries
    # ------------------------------------------------------------------

    def get_filtered_products(
        self,
        category_slug: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        colors: Optional[Iterable[str]] = None,
        sizes: Optional[Iterable[str]] = None,
        sort_by: Optional[str] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Filtered, sorted, page-numbered storefront browse over active products.

        ``total_items`` counts the filtered candidate set, which is capped at
        the candidate ceiling.
        """
        page_size = self._page_size(limit, self.config.default_page_size)
        spec = ProductFilterSpec.build(
            search=search,
            category_slug=category_slug,
            status="active",
            min_price=min_price,
            max_price=max_price,
            colors=colors,
            sizes=sizes,
            sort_by=sort_by,
        )

        with self._operation("get_filtered_products") as session:
            store = ProductStore(session)
            tree = CategoryTree.from_store(store) if spec.category_slug else None
            candidates = CandidateSelector(store, self.config.candidate_ceiling).select(spec, tree)
            filtered = self.facets.apply(candidates.products, spec)
            result = paginate_by_page(filtered, page, page_size)

            logger.debug(
                f"Filtered browse: strategy={candidates.strategy.value} "
                f"candidates={len(candidates.products)} matched={result.total_items}"
            )
            return {
                "products": self._enrich(store, result.items),
                "total_items": result.total_items,
                "total_pages": result.total_pages,
                "current_page": result.current_page,
                "has_more": result.has_more,
            }

    def paginated_list(
        self,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Cursor-paginated admin list, newest first.

        With both ``status`` and ``category_id`` only the status index is
        scanned; category is applied to each fetched page, so a page may hold
        fewer than ``page_size`` rows while ``is_done`` is still False.
        """
        size = self._page_size(page_size, self.config.default_page_size)
        self._check_status(status)
        search = search.strip() if search else None

        with self._operation("paginated_list") as session:
            store = ProductStore(session)
            if search:
                rows = self._search_rows(store, search, self.config.candidate_ceiling, status, category_id)
                result = CursorPaginator.over_list(rows, cursor, size)
            else:
                result = CursorPaginator(store).page(cursor, size, status, category_id)
            return {
                "page": self._enrich(store, result.page),
                "continue_cursor": result.continue_cursor,
                "is_done": result.is_done,
            }

    def get_product_count(
        self,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        search: Optional[str] = None,
    ) -> int:
        """
        Number of products matching the filters.

        Status-only and unfiltered counts read the counter totals and never
        scan products. Search counts go through the search strategy and can
        not exceed the candidate ceiling. Category counts walk the whole
        category index.
        """
        self._check_status(status)
        search = search.strip() if search else None

        with self._operation("get_product_count") as session:
            store = ProductStore(session)
            if search:
                rows = self._search_rows(store, search, self.config.candidate_ceiling, status, category_id)
                return len(rows)
            if category_id:
                return store.count_by_category(category_id, status)
            if status:
                return self.aggregate.count(session, namespace_for(status))
            return self.aggregate.count_all(session, PRODUCT_STATUSES)

    def search(
        self,
        query: str,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        if not query or not query.strip():
            return []
        self._check_status(status)
        with self._operation("search") as session:
            store = ProductStore(session)
            rows = self._search_rows(store, query, self.config.search_result_limit, status, category_id)
            return self._enrich(store, rows)

    def get_search_suggestions(self, query: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if not query or not query.strip():
            return []
        size = self._page_size(limit, self.config.suggestion_limit)
        with self._operation("get_search_suggestions") as session:
            rows = ProductStore(session).search_by_name(query, size)
            return [
                {"id": p.id, "name": p.name, "slug": p.slug, "image": p.featured_image}
                for p in rows
            ]

    @staticmethod
    def _search_rows(
        store: ProductStore,
        query: str,
        limit: int,
        status: Optional[str],
        category_id: Optional[str],
    ) -> List[Product]:
        rows = store.search_by_name(query, limit)
        if status:
            rows = [p for p in rows if p.status == status]
        if category_id:
            rows = [p for p in rows if p.category_id == category_id]
        return rows

    def get_by_id(self, product_id: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_by_id") as session:
            product = ProductStore(session).get_product(product_id)
            return product.to_dict() if product else None

    def get_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Storefront product page: product, variants, category and review stats."""
        with self._operation("get_by_slug") as session:
            store = ProductStore(session)
            product = store.get_product_by_slug(slug)
            if product is None:
                return None

            category = store.get_category(product.category_id) if product.category_id else None
            stats = ReviewAggregator(store).stats_for(product.id)
            record = product.to_dict()
            record.update({
                "variants": [v.to_dict() for v in store.variants_for(product.id)],
                "category": category.to_dict() if category else None,
                "review_stats": {"count": stats.count, "average": stats.average},
            })
            return record

    def get_with_variants(self, product_id: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_with_variants") as session:
            store = ProductStore(session)
            product = store.get_product(product_id)
            if product is None:
                return None
            record = product.to_dict()
            record["variants"] = [v.to_dict() for v in store.variants_for(product.id)]
            return record

    def list_products(
        self,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Admin list over one index; category is post-filtered when status is also given."""
        self._check_status(status)
        limit = self._page_size(limit, self.config.admin_list_limit)
        with self._operation("list_products") as session:
            store = ProductStore(session)
            if status:
                rows = store.by_status(status, limit)
                if category_id:
                    rows = [p for p in rows if p.category_id == category_id]
            elif category_id:
                rows = store.by_category(category_id, limit)
            else:
                rows = store.newest(limit)
            return self._enrich(store, rows)

    def list_active(self, category_slug: Optional[str] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Newest active products, optionally within a category and its descendants."""
        limit = self._page_size(limit, self.config.active_list_limit)
        spec = ProductFilterSpec.build(category_slug=category_slug, status="active")
        with self._operation("list_active") as session:
            store = ProductStore(session)
            candidates = CandidateSelector(store, ceiling=limit).select(spec)
            return self._enrich(store, candidates.products)

    def get_new_arrivals(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = self._page_size(limit, self.config.new_arrivals_limit)
        with self._operation("get_new_arrivals") as session:
            store = ProductStore(session)
            return self._enrich(store, store.by_status("active", limit))

    def get_featured(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        limit = self._page_size(limit, self.config.featured_limit)
        with self._operation("get_featured") as session:
            store = ProductStore(session)
            return self._enrich(store, store.featured(limit))

    def counter_status(self) -> Dict[str, Any]:
        """Counter totals plus the sync failures recorded since the last backfill."""
        with self._operation("counter_status") as session:
            return {
                "totals": self.aggregate.totals(session, PRODUCT_STATUSES),
                "recent_failures": [
                    {
                        "mutation": f.mutation,
                        "product_id": f.product_id,
                        "namespaces": list(f.namespaces),
                        "errors": list(f.errors),
                        "occurred_at": f.occurred_at,
                    }
                    for f in self.counter_sync.recent_failures()
                ],
            }

    # ------------------------------------------------------------------
    # Product mutations
    # ------------------------------------------------------------------

    def create_product(self, caller: Caller, data: ProductCreate) -> str:
        with self._operation("create_product") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if data.category_id and store.get_category(data.category_id) is None:
                raise NotFoundError("Category not found")

            fields = data.model_dump()
            if fields["product_type"] in DIGITAL_PRODUCT_TYPES:
                fields["requires_shipping"] = False

            product = Product(
                **fields,
                slug=unique_slug(data.name, store.product_slug_exists, fallback="product"),
                featured_image=featured_image_of(fields["images"]),
                published_at=_now_ms() if data.status == "active" else None,
            )
            store.add_product(product)
            self.counter_sync.on_insert(session, product, mutation="create")

            logger.info(f"Created product {product.id} ({product.slug}) as {product.status}")
            return product.id

    def update_product(self, caller: Caller, product_id: str, data: ProductUpdate) -> str:
        with self._operation("update_product") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            product = store.get_product(product_id)
            if product is None:
                raise NotFoundError("Product not found")

            old_key = CounterKey.of(product)
            updates = {
                key: value
                for key, value in data.model_dump(exclude_unset=True).items()
                if value is not None or key not in _REQUIRED_PRODUCT_FIELDS
            }

            if updates.get("category_id") and store.get_category(updates["category_id"]) is None:
                raise NotFoundError("Category not found")
            if "images" in updates:
                updates["featured_image"] = featured_image_of(updates["images"])
            if updates.get("status") == "active" and product.published_at is None:
                updates["published_at"] = _now_ms()
            if updates.get("product_type", product.product_type) in DIGITAL_PRODUCT_TYPES:
                updates["requires_shipping"] = False

            for key, value in updates.items():
                setattr(product, key, value)
            product.updated_at = _now_ms()
            session.flush()

            self.counter_sync.on_replace(session, old_key, product, mutation="update")
            logger.info(f"Updated product {product_id}: {sorted(updates)}")
            return product_id

    def archive_product(self, caller: Caller, product_id: str) -> None:
        with self._operation("archive_product") as session:
            require_admin(session, caller)
            product = ProductStore(session).get_product(product_id)
            if product is None:
                raise NotFoundError("Product not found")

            old_key = CounterKey.of(product)
            product.status = "archived"
            product.updated_at = _now_ms()
            session.flush()

            self.counter_sync.on_replace(session, old_key, product, mutation="archive")
            logger.info(f"Archived product {product_id}")

    def hard_delete_product(self, caller: Caller, product_id: str) -> None:
        """Delete the product row and its variants. Reviews are left in place."""
        with self._operation("hard_delete_product") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            product = store.get_product(product_id)
            if product is None:
                raise NotFoundError("Product not found")

            old_key = CounterKey.of(product)
            removed_variants = store.delete_product(product)

            self.counter_sync.on_delete(session, old_key, mutation="hard_delete")
            logger.info(f"Deleted product {product_id} and {removed_variants} variant(s)")

    def backfill_counters(self, caller: Caller) -> BackfillReport:
        with self._operation("backfill_counters") as session:
            require_admin(session, caller)
            return self.counter_sync.backfill(session)

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def list_categories(self) -> List[Dict[str, Any]]:
        with self._operation("list_categories") as session:
            return CategoryTree.from_store(ProductStore(session)).nested()

    def get_category_by_id(self, category_id: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_category_by_id") as session:
            category = ProductStore(session).get_category(category_id)
            return category.to_dict() if category else None

    def get_category_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_category_by_slug") as session:
            category = ProductStore(session).get_category_by_slug(slug)
            return category.to_dict() if category else None

    def get_subcategory_ids(self, category_id: str) -> List[str]:
        with self._operation("get_subcategory_ids") as session:
            tree = CategoryTree.from_store(ProductStore(session))
            return sorted(tree.descendant_ids(category_id, include_self=False))

    def create_category(self, caller: Caller, data: CategoryCreate) -> str:
        with self._operation("create_category") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if data.parent_id and store.get_category(data.parent_id) is None:
                raise NotFoundError("Category not found")

            sort_order = data.sort_order
            if sort_order is None:
                sort_order = len(store.children_of(data.parent_id))

            category = Category(
                name=data.name,
                slug=unique_slug(data.name, lambda s: store.category_slug_owner(s) is not None, fallback="category"),
                description=data.description,
                image_url=data.image_url,
                parent_id=data.parent_id,
                sort_order=sort_order,
            )
            session.add(category)
            session.flush()
            logger.info(f"Created category {category.id} ({category.slug})")
            return category.id

    def update_category(self, caller: Caller, category_id: str, data: CategoryUpdate) -> str:
        with self._operation("update_category") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            category = store.get_category(category_id)
            if category is None:
                raise NotFoundError("Category not found")

            updates = data.model_dump(exclude_unset=True)
            if updates.get("name") is None:
                updates.pop("name", None)
            if updates.get("sort_order") is None:
                updates.pop("sort_order", None)

            parent_id = updates.get("parent_id")
            if parent_id:
                if store.get_category(parent_id) is None:
                    raise NotFoundError("Category not found")
                if CategoryTree.from_store(store).is_descendant(parent_id, category_id):
                    raise InvalidRequestError("A category cannot be moved under itself or its descendants")

            name = updates.get("name")
            if name and name != category.name:
                updates["slug"] = unique_slug(
                    name,
                    lambda s: store.category_slug_owner(s) not in (None, category_id),
                    fallback="category",
                )

            for key, value in updates.items():
                setattr(category, key, value)
            session.flush()
            return category_id

    def remove_category(self, caller: Caller, category_id: str) -> None:
        """Delete a leaf category; its products become uncategorized."""
        with self._operation("remove_category") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            category = store.get_category(category_id)
            if category is None:
                raise NotFoundError("Category not found")
            if store.children_of(category_id):
                raise InvalidRequestError("Cannot delete category with subcategories")

            products = store.by_category(category_id)
            for product in products:
                product.category_id = None
            session.delete(category)
            session.flush()
            logger.info(f"Deleted category {category_id}; unlinked {len(products)} product(s)")

    def reorder_categories(self, caller: Caller, orders: Iterable[Tuple[str, int]]) -> None:
        with self._operation("reorder_categories") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            for category_id, sort_order in orders:
                category = store.get_category(category_id)
                if category is None:
                    raise NotFoundError("Category not found")
                category.sort_order = sort_order
            session.flush()

    # ------------------------------------------------------------------
    # Variants
    # ------------------------------------------------------------------

    def get_variants(self, product_id: str) -> List[Dict[str, Any]]:
        with self._operation("get_variants") as session:
            return [v.to_dict() for v in ProductStore(session).variants_for(product_id)]

    def get_variant_by_sku(self, sku: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_variant_by_sku") as session:
            variant = ProductStore(session).get_variant_by_sku(sku)
            return variant.to_dict() if variant else None

    def create_variant(self, caller: Caller, data: VariantCreate) -> str:
        with self._operation("create_variant") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if store.get_product(data.product_id) is None:
                raise NotFoundError("Product not found")
            if store.get_variant_by_sku(data.sku) is not None:
                raise InvalidRequestError(f'SKU "{data.sku}" already exists')

            if data.is_default:
                for sibling in store.variants_for(data.product_id):
                    sibling.is_default = False

            variant = ProductVariant(**data.model_dump())
            session.add(variant)
            session.flush()
            return variant.id

    def get_variant_by_id(self, variant_id: str) -> Optional[Dict[str, Any]]:
        with self._operation("get_variant_by_id") as session:
            variant = ProductStore(session).get_variant(variant_id)
            return variant.to_dict() if variant else None

    def update_variant(self, caller: Caller, variant_id: str, data: VariantUpdate) -> str:
        """Partial variant edit; a changed SKU must stay unique and a new default demotes the others."""
        with self._operation("update_variant") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            variant = store.get_variant(variant_id)
            if variant is None:
                raise NotFoundError("Variant not found")

            changes = data.model_dump(exclude_unset=True)
            # Non-nullable columns ignore an explicit null
            changes = {
                key: value for key, value in changes.items()
                if value is not None or key not in ("sku", "stock_count", "is_default")
            }

            new_sku = changes.get("sku")
            if new_sku and new_sku != variant.sku and store.get_variant_by_sku(new_sku) is not None:
                raise InvalidRequestError(f'SKU "{new_sku}" already exists')

            if changes.get("is_default"):
                for sibling in store.variants_for(variant.product_id):
                    if sibling.id != variant.id:
                        sibling.is_default = False

            for key, value in changes.items():
                setattr(variant, key, value)
            session.flush()
            return variant.id

    def create_variants_bulk(self, caller: Caller, product_id: str, variants: Sequence[VariantInput]) -> List[str]:
        """Add a batch of variants (variant matrix) to a product; all or nothing."""
        with self._operation("create_variants_bulk") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if store.get_product(product_id) is None:
                raise NotFoundError("Product not found")
            self._check_variant_batch(variants)
            taken = store.skus_in_use(v.sku for v in variants)
            if taken:
                raise InvalidRequestError(f'SKU "{taken[0]}" already exists')

            if any(v.is_default for v in variants):
                for existing in store.variants_for(product_id):
                    existing.is_default = False
            return self._insert_variants(session, product_id, variants)

    def replace_variants(self, caller: Caller, product_id: str, variants: Sequence[VariantInput]) -> List[str]:
        """
        Replace every variant of a product with ``variants`` (product edit page).

        SKUs only have to be unique against other products' variants and
        within the batch, so a resubmitted variant keeps its SKU. At most one
        row may be the default.
        """
        with self._operation("replace_variants") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if store.get_product(product_id) is None:
                raise NotFoundError("Product not found")
            self._check_variant_batch(variants)
            taken = store.skus_in_use((v.sku for v in variants), exclude_product_id=product_id)
            if taken:
                raise InvalidRequestError(f'SKU "{taken[0]}" already exists')

            store.delete_variants_for(product_id)
            return self._insert_variants(session, product_id, variants)

    def remove_variants_by_product(self, caller: Caller, product_id: str) -> int:
        with self._operation("remove_variants_by_product") as session:
            require_admin(session, caller)
            return ProductStore(session).delete_variants_for(product_id)

    @staticmethod
    def _check_variant_batch(variants: Sequence[VariantInput]) -> None:
        seen = set()
        for variant in variants:
            if variant.sku in seen:
                raise InvalidRequestError(f'SKU "{variant.sku}" already exists')
            seen.add(variant.sku)
        if sum(1 for v in variants if v.is_default) > 1:
            raise InvalidRequestError("Only one variant can be the default")

    @staticmethod
    def _insert_variants(session: Session, product_id: str, variants: Sequence[VariantInput]) -> List[str]:
        rows = [ProductVariant(product_id=product_id, **v.model_dump()) for v in variants]
        session.add_all(rows)
        session.flush()
        return [row.id for row in rows]

    def update_variant_stock(self, caller: Caller, variant_id: str, adjustment: int) -> int:
        """Apply a signed stock adjustment; stock never goes below zero."""
        with self._operation("update_variant_stock") as session:
            require_admin(session, caller)
            variant = ProductStore(session).get_variant(variant_id)
            if variant is None:
                raise NotFoundError("Variant not found")
            variant.stock_count = max(0, variant.stock_count + adjustment)
            session.flush()
            return variant.stock_count

    def remove_variant(self, caller: Caller, variant_id: str) -> None:
        with self._operation("remove_variant") as session:
            require_admin(session, caller)
            variant = ProductStore(session).get_variant(variant_id)
            if variant is None:
                raise NotFoundError("Variant not found")
            session.delete(variant)
            session.flush()

    # ------------------------------------------------------------------
    # Reviews
    # ------------------------------------------------------------------

    def list_reviews(self, product_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """Approved reviews, newest first, with the reviewer's display name."""
        with self._operation("list_reviews") as session:
            store = ProductStore(session)
            reviews = store.approved_reviews(product_id, limit)
            users = store.users_by_id(r.user_id for r in reviews)
            result = []
            for review in reviews:
                user = users.get(review.user_id)
                record = review.to_dict()
                record["user_name"] = (user.first_name or "User") if user else "Anonymous"
                result.append(record)
            return result

    def get_review_stats(self, product_id: str) -> Dict[str, Any]:
        with self._operation("get_review_stats") as session:
            return ReviewAggregator(ProductStore(session)).stats_for(product_id).to_dict()

    def paginated_reviews(
        self,
        caller: Caller,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
        search: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Admin moderation list over every review, newest first.

        Rows carry product and reviewer details. A search over review content
        returns its best ``page_size`` matches as one finished page.
        """
        size = self._page_size(page_size, self.config.default_page_size)
        with self._operation("paginated_reviews") as session:
            require_admin(session, caller)
            store = ProductStore(session)
            if search and search.strip():
                rows = store.search_reviews(search, size)
                return {
                    "page": self._moderation_rows(store, rows),
                    "continue_cursor": "",
                    "is_done": True,
                }

            rows, has_more = store.scan_reviews(position_from_cursor(cursor), size)
            return {
                "page": self._moderation_rows(store, rows),
                "continue_cursor": cursor_after(rows[-1]) if rows else (cursor or ""),
                "is_done": not has_more,
            }

    @staticmethod
    def _moderation_rows(store: ProductStore, reviews: Sequence[Review]) -> List[Dict[str, Any]]:
        products = store.products_by_id(r.product_id for r in reviews)
        users = store.users_by_id(r.user_id for r in reviews)
        rows = []
        for review in reviews:
            product = products.get(review.product_id)
            user = users.get(review.user_id)
            image = None
            if product is not None:
                image = product.featured_image or featured_image_of(product.images or [])
            record = review.to_dict()
            record.update({
                "product_name": product.name if product else "Unknown Product",
                "product_image": image,
                "slug": product.slug if product else None,
                "reviewer_name": (user.first_name if user else None) or "Anonymous",
                "reviewer_email": user.email if user else None,
            })
            rows.append(record)
        return rows

    def submit_review(self, caller: Caller, data: ReviewSubmit) -> str:
        """Any known user may review a product once; reviews start out pending."""
        with self._operation("submit_review") as session:
            user = require_user(session, caller)
            store = ProductStore(session)
            if store.get_product(data.product_id) is None:
                raise NotFoundError("Product not found")
            if store.review_by_user(user.id, data.product_id) is not None:
                raise InvalidRequestError("You have already reviewed this product.")

            review = Review(user_id=user.id, status="pending", **data.model_dump())
            session.add(review)
            session.flush()
            return review.id

    def set_review_status(self, caller: Caller, review_id: str, status: str) -> None:
        with self._operation("set_review_status") as session:
            require_admin(session, caller)
            if status not in REVIEW_STATUSES:
                raise InvalidRequestError(f"Unknown review status: {status}")
            review = ProductStore(session).get_review(review_id)
            if review is None:
                raise NotFoundError("Review not found")
            review.status = status
            session.flush()

    def delete_review(self, caller: Caller, review_id: str) -> None:
        with self._operation("delete_review") as session:
            require_admin(session, caller)
            review = ProductStore(session).get_review(review_id)
            if review is None:
                raise NotFoundError("Review not found")
            session.delete(review)
            session.flush()
