"""
CatalogService end to end against a SQLite database.

Covers the storefront browse pipeline, counts, cursor pagination, product
mutations with their counter maintenance, and the supporting category,
variant and review operations.
"""

import random

import pytest

from catalog.core.auth import Caller
from catalog.core.config import CatalogConfig
from catalog.core.catalog_service import CatalogService
from catalog.core.errors import (
    InvalidRequestError, NotFoundError, UnauthenticatedError, UnauthorizedError,
)
from catalog.core.schemas import (
    CategoryUpdate, ProductCreate, ProductUpdate, ReviewSubmit, VariantCreate, VariantInput,
    VariantUpdate,
)
from catalog.data.database import session_scope
from catalog.data.models import Product, ProductCountEntry
from catalog.enrichment.enricher import NO_SKU


def _ids(products):
    return [p["id"] for p in products]


# ============================================================================
# Product counts
# ============================================================================

class TestProductCount:
    def test_draft_create_then_activate(self, service, admin, make_product):
        draft_before = service.get_product_count(status="draft")
        active_before = service.get_product_count(status="active")

        product_id = make_product("Walnut Desk", status="draft")
        assert service.get_product_count(status="draft") == draft_before + 1
        assert service.get_product_count(status="active") == active_before
        assert service.get_by_id(product_id)["published_at"] is None

        service.update_product(admin, product_id, ProductUpdate(status="active"))
        assert service.get_product_count(status="draft") == draft_before
        assert service.get_product_count(status="active") == active_before + 1
        assert service.get_by_id(product_id)["published_at"] is not None

    def test_published_at_is_kept_on_reactivation(self, service, admin, make_product):
        product_id = make_product(status="active")
        first_published = service.get_by_id(product_id)["published_at"]

        service.update_product(admin, product_id, ProductUpdate(status="draft"))
        service.update_product(admin, product_id, ProductUpdate(status="active"))
        assert service.get_by_id(product_id)["published_at"] == first_published

    def test_unfiltered_count_sums_namespaces(self, service, admin, make_product):
        make_product("A", status="draft")
        make_product("B", status="active")
        archived = make_product("C", status="active")
        service.archive_product(admin, archived)
        assert service.get_product_count() == 3
        assert service.get_product_count(status="archived") == 1

    def test_status_count_does_not_scan_products(self, service, make_product, session_factory):
        make_product("Counted", status="active")
        # Counts come from the totals table only
        with session_scope(session_factory) as s:
            s.query(Product).delete()
        assert service.get_product_count(status="active") == 1

    def test_category_count_walks_the_category(self, service, make_product, make_category):
        shoes = make_category("Shoes")
        make_product("Runner", category_id=shoes, status="active")
        make_product("Boot", category_id=shoes, status="draft")
        make_product("Elsewhere", status="active")
        assert service.get_product_count(category_id=shoes) == 2
        assert service.get_product_count(category_id=shoes, status="active") == 1

    def test_search_count_never_exceeds_ceiling(self, session_factory, counter_sync, metrics, users, admin):
        config = CatalogConfig(candidate_ceiling=5)
        service = CatalogService(session_factory, config=config, counter_sync=counter_sync, metrics=metrics)
        for i in range(8):
            service.create_product(admin, ProductCreate(name=f"Lamp {i}", base_price=100, status="active"))

        assert service.get_product_count(search="lamp") <= config.candidate_ceiling
        assert service.get_product_count(search="lamp") == 5

    def test_search_count_applies_status(self, service, make_product):
        make_product("Oak Table", status="active")
        make_product("Oak Chair", status="draft")
        assert service.get_product_count(search="oak") == 2
        assert service.get_product_count(search="oak", status="draft") == 1

    def test_unknown_status_is_rejected(self, service):
        with pytest.raises(InvalidRequestError):
            service.get_product_count(status="deleted")


# ============================================================================
# Randomized mutation sequences
# ============================================================================

class TestCounterInvariant:
    @pytest.mark.parametrize("seed", [1, 7, 42, 1234])
    def test_namespace_totals_match_products(self, seed, service, admin, make_product, session_factory):
        rng = random.Random(seed)
        live = []
        for step in range(40):
            action = rng.choice(["create", "create", "update", "archive", "delete"])
            if action == "create" or not live:
                live.append(make_product(f"Item {step}", status=rng.choice(["draft", "active"])))
            elif action == "update":
                target = rng.choice(live)
                service.update_product(admin, target, ProductUpdate(status=rng.choice(["draft", "active", "archived"])))
            elif action == "archive":
                service.archive_product(admin, rng.choice(live))
            else:
                target = live.pop(rng.randrange(len(live)))
                service.hard_delete_product(admin, target)

        with session_scope(session_factory) as s:
            by_status = {status: 0 for status in ("draft", "active", "archived")}
            for product in s.query(Product):
                by_status[product.status] += 1

        assert service.get_product_count() == len(live)
        for status, expected in by_status.items():
            assert service.get_product_count(status=status) == expected
        assert service.counter_sync.recent_failures() == []


# ============================================================================
# Storefront browse
# ============================================================================

class TestFilteredProducts:
    def test_category_tree_membership(self, service, admin, make_product, make_category):
        home = make_category("Home")
        living_room = make_category("Living Room", parent_id=home)
        sofas = make_category("Sofas", parent_id=living_room)
        garden = make_category("Garden")
        sofa = make_product("Chesterfield Sofa", category_id=sofas)

        for slug in ("home", "living-room", "sofas"):
            assert _ids(service.get_filtered_products(category_slug=slug)["products"]) == [sofa]

        service.update_product(admin, sofa, ProductUpdate(category_id=garden))
        for slug in ("home", "living-room", "sofas"):
            assert service.get_filtered_products(category_slug=slug)["products"] == []
        assert _ids(service.get_filtered_products(category_slug="garden")["products"]) == [sofa]

    def test_unknown_category_is_empty_not_an_error(self, service, make_product):
        make_product()
        result = service.get_filtered_products(category_slug="does-not-exist")
        assert result["products"] == []
        assert result["total_items"] == 0
        assert result["total_pages"] == 0
        assert result["has_more"] is False

    def test_only_active_products(self, service, make_product):
        active = make_product("Visible", status="active")
        make_product("Hidden", status="draft")
        assert _ids(service.get_filtered_products()["products"]) == [active]

    def test_search_with_category_uses_descendants(self, service, make_product, make_category):
        home = make_category("Home")
        sofas = make_category("Sofas", parent_id=home)
        inside = make_product("Velvet Sofa", category_id=sofas)
        make_product("Velvet Cushion")
        assert _ids(service.get_filtered_products(search="velvet", category_slug="home")["products"]) == [inside]
        assert len(service.get_filtered_products(search="velvet")["products"]) == 2

    def test_facets_and_sort(self, service, make_product):
        red_cheap = make_product("Tee Red", base_price=1000, color_options=[{"name": "red"}], size_options=["M"])
        make_product("Tee Green", base_price=1200, color_options=[{"name": "Green"}], size_options=["M"])
        blue_dear = make_product("Tee Blue", base_price=3000, color_options=[{"name": "BLUE"}], size_options=["L"])

        result = service.get_filtered_products(colors=["Red", "Blue"], sort_by="price_desc")
        assert _ids(result["products"]) == [blue_dear, red_cheap]

        result = service.get_filtered_products(colors=["Red", "Blue"], sizes=["m"])
        assert _ids(result["products"]) == [red_cheap]

        result = service.get_filtered_products(min_price=1000, max_price=1200, sort_by="bogus")
        assert len(result["products"]) == 2

    def test_pages_cover_the_filtered_set(self, service, make_product):
        created = [make_product(f"Mug {i}") for i in range(7)]
        pages = []
        page = 1
        while True:
            result = service.get_filtered_products(page=page, limit=3)
            assert result["total_items"] == 7
            assert result["total_pages"] == 3
            pages.extend(_ids(result["products"]))
            if not result["has_more"]:
                break
            page += 1
        assert pages == list(reversed(created))

    def test_limit_is_bounded(self, service):
        with pytest.raises(InvalidRequestError):
            service.get_filtered_products(limit=service.config.max_page_size + 1)
        with pytest.raises(InvalidRequestError):
            service.get_filtered_products(page=0)

    def test_products_are_enriched(self, service, admin, make_product, make_category, customer):
        shoes = make_category("Shoes")
        product_id = make_product(
            "Trail Runner",
            category_id=shoes,
            images=[{"url": "https://img/1.jpg"}, {"url": "https://img/2.jpg", "is_main": True}],
        )
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="TR-42", stock_count=4))
        default = service.create_variant(
            admin, VariantCreate(product_id=product_id, sku="TR-43", stock_count=3, is_default=True),
        )
        review = service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=4, content="Comfy"))
        service.set_review_status(admin, review, "approved")

        product = service.get_filtered_products()["products"][0]
        assert product["variant_count"] == 2
        assert product["total_stock"] == 7
        assert product["stock_status"] == "low-stock"
        assert product["category_name"] == "Shoes"
        assert product["sku"] == "TR-43"
        assert product["default_variant_id"] == default
        assert product["image"] == "https://img/2.jpg"
        assert product["review_count"] == 1
        assert product["rating"] == 4.0

    def test_product_without_variants_or_reviews(self, service, make_product):
        make_product("Bare")
        product = service.get_filtered_products()["products"][0]
        assert product["sku"] == NO_SKU
        assert product["default_variant_id"] is None
        assert product["stock_status"] == "out-of-stock"
        assert product["rating"] == 0
        assert product["category_name"] is None

    def test_enrichment_failure_is_isolated(self, service, make_product, metrics, monkeypatch):
        good = make_product("Good")
        bad = make_product("Bad")

        from catalog.enrichment import enricher
        real_compute = enricher.compute_stock

        def flaky(product, variants):
            if product.id == bad:
                raise RuntimeError("corrupt stock data")
            return real_compute(product, variants)

        monkeypatch.setattr(enricher, "compute_stock", flaky)
        products = {p["id"]: p for p in service.get_filtered_products()["products"]}

        assert set(products) == {good, bad}
        assert "enrichment_error" in products[bad]
        assert products[good]["stock_status"] == "out-of-stock"
        assert metrics.error_counts["enrich_product"] == 1


# ============================================================================
# Admin cursor list
# ============================================================================

class TestPaginatedList:
    def _walk(self, service, **kwargs):
        pages, cursor = [], None
        while True:
            result = service.paginated_list(cursor=cursor, **kwargs)
            pages.append(_ids(result["page"]))
            cursor = result["continue_cursor"]
            if result["is_done"]:
                return pages

    def test_walks_newest_first(self, service, make_product):
        created = [make_product(f"P{i}", status="draft") for i in range(5)]
        pages = self._walk(service, page_size=2)
        assert pages == [created[4:2:-1], created[2:0:-1], created[:1]]

    def test_status_and_category_pages_can_be_under_full(self, service, make_product, make_category):
        lamps = make_category("Lamps")
        in_category = [make_product(f"Lamp {i}", category_id=lamps) for i in range(2)]
        for i in range(4):
            make_product(f"Other {i}")

        pages = self._walk(service, page_size=3, status="active", category_id=lamps)

        assert sum(pages, []) == list(reversed(in_category))
        assert [len(page) for page in pages] == [0, 2]

    def test_category_only_uses_category_index(self, service, make_product, make_category):
        lamps = make_category("Lamps")
        lamp = make_product("Lamp", category_id=lamps, status="draft")
        make_product("Chair")
        assert self._walk(service, page_size=5, category_id=lamps) == [[lamp]]

    def test_search_mode_uses_offsets(self, service, make_product):
        for i in range(5):
            make_product(f"Candle {i}")
        make_product("Vase")
        pages = self._walk(service, page_size=2, search="candle")
        assert [len(page) for page in pages] == [2, 2, 1]

    def test_invalid_cursor(self, service):
        with pytest.raises(InvalidRequestError):
            service.paginated_list(cursor="%%%", page_size=5)


# ============================================================================
# Search
# ============================================================================

class TestSearch:
    def test_blank_queries(self, service):
        assert service.search("   ") == []
        assert service.get_search_suggestions("") == []

    def test_search_filters_and_enriches(self, service, make_product, make_category):
        rugs = make_category("Rugs")
        wool = make_product("Wool Rug", category_id=rugs)
        make_product("Wool Throw", status="draft")
        assert _ids(service.search("wool", status="active")) == [wool]
        assert _ids(service.search("wool", category_id=rugs)) == [wool]
        assert "stock_status" in service.search("wool rug")[0]

    def test_more_terms_rank_first(self, service, make_product):
        both = make_product("Blue Denim Jacket")
        make_product("Blue Scarf")
        assert _ids(service.search("denim blue"))[0] == both

    def test_terms_match_whole_name_tokens(self, service, make_product):
        table = make_product("Oak Table")
        make_product("Wool Cloak")
        assert _ids(service.get_filtered_products(search="oak")["products"]) == [table]
        assert service.get_product_count(search="oak") == 1
        assert _ids(service.search("oak")) == [table]
        assert [s["id"] for s in service.get_search_suggestions("oak")] == [table]

    def test_last_term_matches_token_prefix(self, service, make_product):
        lamp = make_product("Brass Floor Lamp")
        assert _ids(service.search("flo")) == [lamp]
        assert _ids(service.search("brass la")) == [lamp]
        # only the final term is treated as a prefix
        assert service.search("bra lamp")[0]["id"] == lamp
        assert service.get_product_count(search="bra xyz") == 0

    def test_punctuation_separates_tokens(self, service, make_product):
        mug = make_product("Hand-Thrown Mug (Blue)")
        assert _ids(service.search("thrown")) == [mug]
        assert _ids(service.search("blue")) == [mug]

    def test_suggestions_shape_and_limit(self, service, make_product):
        for i in range(7):
            make_product(f"Pillow {i}", images=[{"url": f"https://img/{i}.jpg"}])
        suggestions = service.get_search_suggestions("pillow")
        assert len(suggestions) == service.config.suggestion_limit
        assert set(suggestions[0]) == {"id", "name", "slug", "image"}
        assert len(service.get_search_suggestions("pillow", limit=2)) == 2


# ============================================================================
# Product mutations
# ============================================================================

class TestProductMutations:
    def test_slugs_are_unique(self, service, make_product):
        ids = [make_product("Canvas Tote") for _ in range(3)]
        slugs = [service.get_by_id(pid)["slug"] for pid in ids]
        assert slugs == ["canvas-tote", "canvas-tote-1", "canvas-tote-2"]

    def test_empty_slug_base_falls_back(self, service, make_product):
        product_id = make_product("???")
        assert service.get_by_id(product_id)["slug"] == "product"

    def test_slug_is_kept_on_rename(self, service, admin, make_product):
        product_id = make_product("Old Name")
        service.update_product(admin, product_id, ProductUpdate(name="New Name"))
        product = service.get_by_id(product_id)
        assert product["name"] == "New Name"
        assert product["slug"] == "old-name"

    @pytest.mark.parametrize("product_type", ["digital", "gift_card"])
    def test_digital_products_never_ship(self, service, admin, make_product, product_type):
        product_id = make_product("Download", product_type=product_type, requires_shipping=True)
        assert service.get_by_id(product_id)["requires_shipping"] is False

        service.update_product(admin, product_id, ProductUpdate(requires_shipping=True))
        assert service.get_by_id(product_id)["requires_shipping"] is False

    def test_switching_to_digital_clears_shipping(self, service, admin, make_product):
        product_id = make_product("Poster")
        assert service.get_by_id(product_id)["requires_shipping"] is True
        service.update_product(admin, product_id, ProductUpdate(product_type="digital"))
        assert service.get_by_id(product_id)["requires_shipping"] is False

    def test_featured_image(self, service, admin, make_product):
        product_id = make_product(images=[{"url": "a"}, {"url": "b"}])
        assert service.get_by_id(product_id)["featured_image"] == "a"
        service.update_product(admin, product_id, ProductUpdate(images=[{"url": "c"}, {"url": "d", "is_main": True}]))
        assert service.get_by_id(product_id)["featured_image"] == "d"

    def test_update_unknown_product(self, service, admin):
        with pytest.raises(NotFoundError, match="Product not found"):
            service.update_product(admin, "missing", ProductUpdate(name="x"))

    def test_unknown_category_is_rejected(self, service, make_product):
        with pytest.raises(NotFoundError):
            make_product(category_id="missing")

    def test_archive(self, service, admin, make_product):
        product_id = make_product(status="active")
        service.archive_product(admin, product_id)
        assert service.get_by_id(product_id)["status"] == "archived"
        assert service.get_product_count(status="active") == 0
        assert service.get_product_count(status="archived") == 1

    def test_hard_delete_removes_variants_and_counter_entry(self, service, admin, make_product, session_factory):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="SKU-1"))

        service.hard_delete_product(admin, product_id)

        assert service.get_by_id(product_id) is None
        assert service.get_variant_by_sku("SKU-1") is None
        assert service.get_product_count() == 0
        with session_scope(session_factory) as s:
            assert s.get(ProductCountEntry, product_id) is None

    def test_hard_delete_unknown(self, service, admin):
        with pytest.raises(NotFoundError):
            service.hard_delete_product(admin, "missing")

    def test_counter_failure_does_not_block_the_write(self, service, admin, make_product, session_factory):
        product_id = make_product(status="draft")
        # Simulate drift: the counter lost this product's entry
        with session_scope(session_factory) as s:
            s.delete(s.get(ProductCountEntry, product_id))

        service.update_product(admin, product_id, ProductUpdate(status="active"))
        assert service.get_by_id(product_id)["status"] == "active"
        assert service.counter_sync.recent_failures() == []

    def test_backfill_repairs_drift(self, service, admin, make_product, session_factory):
        make_product("A", status="active")
        make_product("B", status="draft")
        with session_scope(session_factory) as s:
            s.query(ProductCountEntry).delete()

        report = service.backfill_counters(admin)
        assert report.inserted == 2
        assert service.get_product_count(status="active") == 1
        assert service.get_product_count(status="draft") == 1

        again = service.backfill_counters(admin)
        assert (again.inserted, again.moved, again.removed, again.unchanged) == (0, 0, 0, 2)


class TestAuthorization:
    MUTATIONS = [
        lambda s, c: s.create_product(c, ProductCreate(name="X", base_price=1)),
        lambda s, c: s.update_product(c, "any", ProductUpdate(name="Y")),
        lambda s, c: s.archive_product(c, "any"),
        lambda s, c: s.hard_delete_product(c, "any"),
        lambda s, c: s.backfill_counters(c),
    ]

    @pytest.mark.parametrize("mutation", MUTATIONS)
    def test_anonymous_is_unauthenticated(self, service, mutation):
        with pytest.raises(UnauthenticatedError):
            mutation(service, Caller.anonymous())

    @pytest.mark.parametrize("mutation", MUTATIONS)
    def test_customer_is_unauthorized(self, service, customer, mutation):
        with pytest.raises(UnauthorizedError) as exc_info:
            mutation(service, customer)
        assert not isinstance(exc_info.value, UnauthenticatedError)

    def test_unknown_subject_is_unauthorized(self, service):
        with pytest.raises(UnauthorizedError):
            service.create_product(Caller("stranger"), ProductCreate(name="X", base_price=1))

    def test_rejected_mutation_has_no_effect(self, service, customer):
        with pytest.raises(UnauthorizedError):
            service.create_product(customer, ProductCreate(name="X", base_price=1))
        assert service.get_product_count() == 0
        assert service.list_products() == []


# ============================================================================
# Supplementary queries
# ============================================================================

class TestProductQueries:
    @pytest.mark.parametrize("query", ["list_products", "list_active", "get_new_arrivals", "get_featured"])
    @pytest.mark.parametrize("limit", [-1, 0, 101])
    def test_list_limits_are_bounded(self, service, make_product, query, limit):
        make_product(is_featured=True)
        with pytest.raises(InvalidRequestError, match="limit must be between 1 and 100"):
            getattr(service, query)(limit=limit)

    def test_list_limits_return_at_most_limit(self, service, make_product):
        for i in range(3):
            make_product(f"Stool {i}", is_featured=True)
        for query in ("list_products", "list_active", "get_new_arrivals", "get_featured"):
            assert len(getattr(service, query)(limit=2)) == 2

    def test_get_by_slug(self, service, admin, make_product, make_category, customer):
        chairs = make_category("Chairs")
        product_id = make_product("Eames Chair", category_id=chairs)
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="EC-1"))
        for caller, rating in ((customer, 5), (admin, 2)):
            review = service.submit_review(caller, ReviewSubmit(product_id=product_id, rating=rating, content="ok"))
            service.set_review_status(admin, review, "approved")

        product = service.get_by_slug("eames-chair")
        assert product["id"] == product_id
        assert [v["sku"] for v in product["variants"]] == ["EC-1"]
        assert product["category"]["name"] == "Chairs"
        assert product["review_stats"] == {"count": 2, "average": 3.5}
        assert service.get_by_slug("nope") is None

    def test_get_with_variants(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="V-1"))
        assert len(service.get_with_variants(product_id)["variants"]) == 1
        assert service.get_with_variants("missing") is None

    def test_list_products_post_filters_category(self, service, make_product, make_category):
        bags = make_category("Bags")
        bag = make_product("Bag", category_id=bags)
        make_product("Hat")
        make_product("Draft Bag", category_id=bags, status="draft")
        assert _ids(service.list_products(status="active", category_id=bags)) == [bag]
        assert len(service.list_products(category_id=bags)) == 2
        assert len(service.list_products()) == 3

    def test_list_active_by_category(self, service, make_product, make_category):
        home = make_category("Home")
        sofas = make_category("Sofas", parent_id=home)
        a = make_product("Sofa A", category_id=sofas)
        b = make_product("Sofa B", category_id=home)
        make_product("Draft Sofa", category_id=sofas, status="draft")
        assert _ids(service.list_active(category_slug="home")) == [b, a]
        assert _ids(service.list_active(category_slug="home", limit=1)) == [b]
        assert service.list_active(category_slug="unknown") == []

    def test_new_arrivals_and_featured(self, service, make_product):
        older = make_product("Older", is_featured=True)
        newer = make_product("Newer")
        make_product("Featured Draft", is_featured=True, status="draft")
        assert _ids(service.get_new_arrivals(limit=1)) == [newer]
        assert _ids(service.get_featured()) == [older]


# ============================================================================
# Categories
# ============================================================================

class TestCategories:
    def test_tree_listing(self, service, make_category):
        home = make_category("Home")
        make_category("Kitchen", parent_id=home)
        make_category("Bath", parent_id=home)
        make_category("Garden")

        tree = service.list_categories()
        assert [node["name"] for node in tree] == ["Home", "Garden"]
        assert [child["name"] for child in tree[0]["children"]] == ["Kitchen", "Bath"]

    def test_sort_order_defaults_to_sibling_count(self, service, make_category):
        home = make_category("Home")
        make_category("A", parent_id=home)
        second = make_category("B", parent_id=home)
        assert service.list_categories()[0]["children"][1]["id"] == second
        assert service.list_categories()[0]["children"][1]["sort_order"] == 1

    def test_subcategory_ids(self, service, make_category):
        home = make_category("Home")
        kitchen = make_category("Kitchen", parent_id=home)
        knives = make_category("Knives", parent_id=kitchen)
        assert set(service.get_subcategory_ids(home)) == {kitchen, knives}
        assert service.get_subcategory_ids(knives) == []

    def test_rename_regenerates_slug(self, service, admin, make_category):
        make_category("Outdoor")
        category_id = make_category("Garden")
        service.update_category(admin, category_id, CategoryUpdate(name="Outdoor"))
        assert service.get_category_by_slug("outdoor-1")["id"] == category_id

    def test_cannot_move_under_descendant(self, service, admin, make_category):
        home = make_category("Home")
        kitchen = make_category("Kitchen", parent_id=home)
        with pytest.raises(InvalidRequestError):
            service.update_category(admin, home, CategoryUpdate(parent_id=kitchen))
        with pytest.raises(InvalidRequestError):
            service.update_category(admin, home, CategoryUpdate(parent_id=home))

    def test_remove_rejects_parents_and_unlinks_products(self, service, admin, make_category, make_product):
        home = make_category("Home")
        kitchen = make_category("Kitchen", parent_id=home)
        product_id = make_product(category_id=kitchen)

        with pytest.raises(InvalidRequestError):
            service.remove_category(admin, home)

        service.remove_category(admin, kitchen)
        assert service.get_by_id(product_id)["category_id"] is None
        assert service.get_category_by_slug("kitchen") is None

    def test_get_by_id(self, service, make_category):
        garden = make_category("Garden")
        assert service.get_category_by_id(garden)["slug"] == "garden"
        assert service.get_category_by_id("missing") is None

    def test_reorder(self, service, admin, make_category):
        a = make_category("A")
        b = make_category("B")
        service.reorder_categories(admin, [(a, 5), (b, 1)])
        assert [node["id"] for node in service.list_categories()] == [b, a]


# ============================================================================
# Variants
# ============================================================================

class TestVariants:
    def test_duplicate_sku(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="DUP"))
        with pytest.raises(InvalidRequestError, match="already exists"):
            service.create_variant(admin, VariantCreate(product_id=product_id, sku="DUP"))

    def test_single_default(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="A", is_default=True))
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="B", is_default=True))
        defaults = [v["sku"] for v in service.get_variants(product_id) if v["is_default"]]
        assert defaults == ["B"]

    def test_get_variant_by_id(self, service, admin, make_product):
        product_id = make_product()
        variant_id = service.create_variant(admin, VariantCreate(product_id=product_id, sku="ID-1"))
        assert service.get_variant_by_id(variant_id)["sku"] == "ID-1"
        assert service.get_variant_by_id("missing") is None

    def test_update_variant(self, service, admin, make_product):
        product_id = make_product()
        first = service.create_variant(admin, VariantCreate(product_id=product_id, sku="U-1", is_default=True))
        second = service.create_variant(admin, VariantCreate(product_id=product_id, sku="U-2", stock_count=2))

        service.update_variant(admin, second, VariantUpdate(
            sku="U-2B", stock_count=7, price_adjustment=500, is_default=True,
        ))

        updated = service.get_variant_by_id(second)
        assert (updated["sku"], updated["stock_count"], updated["price_adjustment"]) == ("U-2B", 7, 500)
        assert updated["is_default"] is True
        assert service.get_variant_by_id(first)["is_default"] is False

    def test_update_variant_keeps_sku_unique(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="TAKEN"))
        variant_id = service.create_variant(admin, VariantCreate(product_id=product_id, sku="MINE"))
        with pytest.raises(InvalidRequestError, match='SKU "TAKEN" already exists'):
            service.update_variant(admin, variant_id, VariantUpdate(sku="TAKEN"))
        # resubmitting its own SKU is fine
        service.update_variant(admin, variant_id, VariantUpdate(sku="MINE", size="M"))
        assert service.get_variant_by_id(variant_id)["size"] == "M"

    def test_update_variant_ignores_null_required_fields(self, service, admin, make_product):
        product_id = make_product()
        variant_id = service.create_variant(admin, VariantCreate(product_id=product_id, sku="N-1", stock_count=3))
        service.update_variant(admin, variant_id, VariantUpdate(sku=None, stock_count=None, color_id=None))
        variant = service.get_variant_by_id(variant_id)
        assert (variant["sku"], variant["stock_count"]) == ("N-1", 3)

    def test_update_missing_variant(self, service, admin):
        with pytest.raises(NotFoundError, match="Variant not found"):
            service.update_variant(admin, "missing", VariantUpdate(stock_count=1))

    def test_bulk_create(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="OLD", is_default=True))

        ids = service.create_variants_bulk(admin, product_id, [
            VariantInput(sku="M-RED", size="M", color_id="red", stock_count=4, is_default=True),
            VariantInput(sku="L-RED", size="L", color_id="red", stock_count=6),
        ])

        variants = service.get_variants(product_id)
        assert [v["sku"] for v in variants] == ["OLD", "M-RED", "L-RED"]
        assert [v["id"] for v in variants[1:]] == ids
        assert [v["sku"] for v in variants if v["is_default"]] == ["M-RED"]

    def test_bulk_create_is_all_or_nothing(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="EXISTS"))
        with pytest.raises(InvalidRequestError, match='SKU "EXISTS" already exists'):
            service.create_variants_bulk(admin, product_id, [
                VariantInput(sku="NEW-1"), VariantInput(sku="EXISTS"),
            ])
        with pytest.raises(InvalidRequestError, match='SKU "TWICE" already exists'):
            service.create_variants_bulk(admin, product_id, [VariantInput(sku="TWICE"), VariantInput(sku="TWICE")])
        assert [v["sku"] for v in service.get_variants(product_id)] == ["EXISTS"]

    def test_replace_swaps_the_variant_set(self, service, admin, make_product):
        product_id = make_product()
        old = service.create_variant(admin, VariantCreate(product_id=product_id, sku="KEEP", stock_count=1))
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="DROP", stock_count=1))

        ids = service.replace_variants(admin, product_id, [
            VariantInput(sku="KEEP", stock_count=8, is_default=True),
            VariantInput(sku="ADDED", stock_count=3),
        ])

        variants = service.get_variants(product_id)
        assert [v["id"] for v in variants] == ids
        assert [(v["sku"], v["stock_count"]) for v in variants] == [("KEEP", 8), ("ADDED", 3)]
        assert service.get_variant_by_id(old) is None
        assert service.list_products()[0]["total_stock"] == 11

    def test_replace_with_empty_set_clears_variants(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="GONE"))
        assert service.replace_variants(admin, product_id, []) == []
        assert service.get_variants(product_id) == []

    def test_replace_rejects_foreign_sku(self, service, admin, make_product):
        mine = make_product("Mine")
        other = make_product("Other")
        service.create_variant(admin, VariantCreate(product_id=mine, sku="MINE-1"))
        service.create_variant(admin, VariantCreate(product_id=other, sku="OTHER-1"))

        with pytest.raises(InvalidRequestError, match='SKU "OTHER-1" already exists'):
            service.replace_variants(admin, mine, [VariantInput(sku="OTHER-1")])
        assert [v["sku"] for v in service.get_variants(mine)] == ["MINE-1"]

    def test_replace_rejects_invalid_batches(self, service, admin, make_product):
        product_id = make_product()
        service.create_variant(admin, VariantCreate(product_id=product_id, sku="ORIG"))

        with pytest.raises(InvalidRequestError, match="Only one variant can be the default"):
            service.replace_variants(admin, product_id, [
                VariantInput(sku="A", is_default=True), VariantInput(sku="B", is_default=True),
            ])
        with pytest.raises(InvalidRequestError, match='SKU "A" already exists'):
            service.replace_variants(admin, product_id, [VariantInput(sku="A"), VariantInput(sku="A")])
        with pytest.raises(NotFoundError):
            service.replace_variants(admin, "missing", [VariantInput(sku="Z")])
        assert [v["sku"] for v in service.get_variants(product_id)] == ["ORIG"]

    def test_remove_by_product(self, service, admin, make_product):
        product_id = make_product()
        keep_id = make_product("Other")
        service.create_variants_bulk(admin, product_id, [VariantInput(sku="X-1"), VariantInput(sku="X-2")])
        service.create_variant(admin, VariantCreate(product_id=keep_id, sku="Y-1"))

        assert service.remove_variants_by_product(admin, product_id) == 2
        assert service.get_variants(product_id) == []
        assert len(service.get_variants(keep_id)) == 1

    def test_variant_writes_are_admin_only(self, service, customer, make_product):
        product_id = make_product()
        with pytest.raises(UnauthorizedError):
            service.replace_variants(customer, product_id, [VariantInput(sku="C-1")])
        with pytest.raises(UnauthorizedError):
            service.create_variants_bulk(customer, product_id, [VariantInput(sku="C-1")])
        with pytest.raises(UnauthorizedError):
            service.remove_variants_by_product(customer, product_id)

    def test_stock_adjustment_clamps_at_zero(self, service, admin, make_product):
        product_id = make_product()
        variant_id = service.create_variant(admin, VariantCreate(product_id=product_id, sku="S", stock_count=5))
        assert service.update_variant_stock(admin, variant_id, 4) == 9
        assert service.update_variant_stock(admin, variant_id, -20) == 0

    def test_remove_variant(self, service, admin, make_product):
        product_id = make_product()
        variant_id = service.create_variant(admin, VariantCreate(product_id=product_id, sku="R"))
        service.remove_variant(admin, variant_id)
        assert service.get_variants(product_id) == []
        with pytest.raises(NotFoundError, match="Variant not found"):
            service.remove_variant(admin, variant_id)


# ============================================================================
# Reviews
# ============================================================================

class TestReviews:
    def test_only_approved_reviews_count(self, service, admin, customer, make_product):
        product_id = make_product()
        review = service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=5, content="Great"))
        assert service.get_review_stats(product_id) == {"count": 0, "average": 0, "breakdown": [0, 0, 0, 0, 0]}
        assert service.list_reviews(product_id) == []

        service.set_review_status(admin, review, "approved")
        assert service.get_review_stats(product_id) == {"count": 1, "average": 5.0, "breakdown": [0, 0, 0, 0, 1]}
        reviews = service.list_reviews(product_id)
        assert reviews[0]["user_name"] == "Cal"

    def test_one_review_per_user(self, service, customer, make_product):
        product_id = make_product()
        service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=3, content="Fine"))
        with pytest.raises(InvalidRequestError):
            service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=4, content="Again"))

    def test_anonymous_cannot_review(self, service, make_product):
        product_id = make_product()
        with pytest.raises(UnauthenticatedError):
            service.submit_review(Caller(None), ReviewSubmit(product_id=product_id, rating=3, content="x"))

    def test_moderation_is_admin_only(self, service, customer, make_product):
        product_id = make_product()
        review = service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=3, content="x"))
        with pytest.raises(UnauthorizedError):
            service.set_review_status(customer, review, "approved")

    def test_unknown_status_and_delete(self, service, admin, customer, make_product):
        product_id = make_product()
        review = service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=3, content="x"))
        with pytest.raises(InvalidRequestError):
            service.set_review_status(admin, review, "spam")
        service.delete_review(admin, review)
        with pytest.raises(NotFoundError):
            service.delete_review(admin, review)

    def test_reviews_survive_hard_delete(self, service, admin, customer, make_product):
        product_id = make_product()
        review = service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=3, content="x"))
        service.set_review_status(admin, review, "approved")
        service.hard_delete_product(admin, product_id)
        assert service.get_review_stats(product_id)["count"] == 1


class TestReviewModeration:
    def _review_products(self, service, customer, make_product, count):
        review_ids = []
        for i in range(count):
            product_id = make_product(f"Mug {i}", images=[{"url": f"https://img/mug-{i}.jpg"}])
            review_ids.append(service.submit_review(
                customer, ReviewSubmit(product_id=product_id, rating=4, content=f"Review number {i}"),
            ))
        return review_ids

    def test_cursor_walks_every_review_newest_first(self, service, admin, customer, make_product):
        review_ids = self._review_products(service, customer, make_product, 5)

        pages, cursor = [], None
        while True:
            result = service.paginated_reviews(admin, cursor=cursor, page_size=2)
            pages.append([row["id"] for row in result["page"]])
            if result["is_done"]:
                break
            cursor = result["continue_cursor"]

        assert [len(page) for page in pages] == [2, 2, 1]
        assert [rid for page in pages for rid in page] == list(reversed(review_ids))

    def test_rows_carry_product_and_reviewer(self, service, admin, customer, make_product):
        self._review_products(service, customer, make_product, 1)
        row = service.paginated_reviews(admin)["page"][0]
        assert row["status"] == "pending"
        assert row["product_name"] == "Mug 0"
        assert row["slug"] == "mug-0"
        assert row["product_image"] == "https://img/mug-0.jpg"
        assert row["reviewer_name"] == "Cal"
        assert row["reviewer_email"] == "cal@example.com"

    def test_deleted_product_is_labelled_unknown(self, service, admin, customer, make_product):
        product_id = make_product("Short Lived")
        service.submit_review(customer, ReviewSubmit(product_id=product_id, rating=2, content="Broke"))
        service.hard_delete_product(admin, product_id)
        row = service.paginated_reviews(admin)["page"][0]
        assert row["product_name"] == "Unknown Product"
        assert row["slug"] is None

    def test_search_returns_one_finished_page(self, service, admin, customer, make_product):
        soft = make_product("Throw")
        rough = make_product("Rug")
        service.submit_review(customer, ReviewSubmit(product_id=soft, rating=5, content="Lovely soft linen"))
        service.submit_review(customer, ReviewSubmit(product_id=rough, rating=2, content="Scratchy wool"))

        result = service.paginated_reviews(admin, search="linen")
        assert [row["product_id"] for row in result["page"]] == [soft]
        assert result["is_done"] is True
        assert result["continue_cursor"] == ""

    def test_admin_only_and_cursor_validation(self, service, admin, customer):
        with pytest.raises(UnauthorizedError):
            service.paginated_reviews(customer)
        with pytest.raises(InvalidRequestError):
            service.paginated_reviews(admin, cursor="%%%")
