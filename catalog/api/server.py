"""
FastAPI server for the catalog engine.

Thin HTTP mapping over ``CatalogService``. The caller's identity arrives in
the ``X-Auth-Subject`` header, set by the upstream authentication layer.

Usage:
    python -m catalog.api.server
    # or
    uvicorn catalog.api.server:app --reload --port 8000
"""
import os
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dotenv import load_dotenv
load_dotenv()

from catalog.api.models import (
    BackfillResponse,
    CountResponse,
    CursorPageResponse,
    IdListResponse,
    IdResponse,
    ProductListResponse,
    SearchSuggestion,
    StatusResponse,
)
from catalog.core.auth import Caller
from catalog.core.catalog_service import CatalogService
from catalog.core.errors import (
    InvalidRequestError, NotFoundError, UnauthenticatedError, UnauthorizedError,
)
from catalog.core.schemas import ProductCreate, ProductUpdate, VariantInput
from catalog.data.database import init_db
from catalog.utils.logger import configure_logging, get_logger

logger = get_logger("api.server")

app = FastAPI(
    title="Catalog API",
    description="Product catalog query and aggregation engine",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_service: Optional[CatalogService] = None


def get_service() -> CatalogService:
    global _service
    if _service is None:
        _service = CatalogService()
    return _service


def get_caller(x_auth_subject: Optional[str] = Header(default=None)) -> Caller:
    return Caller(subject=x_auth_subject or None)


@app.on_event("startup")
async def startup_event():
    """Create tables and counter namespaces unless disabled."""
    config = get_service().config
    configure_logging(config.log_level, log_sql=config.log_sql)
    if os.environ.get("CATALOG_SKIP_INIT_DB", "").lower() in ("1", "true", "yes"):
        logger.info("Database init SKIPPED (CATALOG_SKIP_INIT_DB=1)")
        return
    init_db()


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return _error(404, exc)


@app.exception_handler(UnauthorizedError)
async def unauthorized_handler(request: Request, exc: UnauthorizedError):
    if isinstance(exc, UnauthenticatedError):
        return _error(401, exc)
    return _error(403, exc)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    return _error(400, exc)


# ----------------------------------------------------------------------
# Storefront
# ----------------------------------------------------------------------

@app.get("/products", response_model=ProductListResponse)
def get_filtered_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    colors: Optional[List[str]] = Query(default=None),
    sizes: Optional[List[str]] = Query(default=None),
    sort: Optional[str] = None,
    page: int = 1,
    limit: Optional[int] = None,
    service: CatalogService = Depends(get_service),
):
    """Filtered, sorted, page-numbered browse over active products."""
    return service.get_filtered_products(
        category_slug=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        colors=colors,
        sizes=sizes,
        sort_by=sort,
        page=page,
        limit=limit,
    )


@app.get("/products/search")
def search_products(
    q: str,
    status: Optional[str] = None,
    category_id: Optional[str] = None,
    service: CatalogService = Depends(get_service),
):
    return service.search(q, status=status, category_id=category_id)


@app.get("/products/suggestions", response_model=List[SearchSuggestion])
def search_suggestions(
    q: str,
    limit: Optional[int] = None,
    service: CatalogService = Depends(get_service),
):
    return service.get_search_suggestions(q, limit=limit)


@app.get("/products/count", response_model=CountResponse)
def product_count(
    status: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    service: CatalogService = Depends(get_service),
):
    """Search-backed counts are capped at the candidate ceiling and flagged approximate."""
    count = service.get_product_count(status=status, category_id=category_id, search=search)
    return CountResponse(count=count, approximate=bool(search and search.strip()))


@app.get("/products/{slug}")
def get_product(slug: str, service: CatalogService = Depends(get_service)):
    product = service.get_by_slug(slug)
    if product is None:
        raise NotFoundError("Product not found")
    return product


@app.get("/categories")
def list_categories(service: CatalogService = Depends(get_service)):
    return service.list_categories()


# ----------------------------------------------------------------------
# Admin
# ----------------------------------------------------------------------

@app.get("/admin/products", response_model=CursorPageResponse)
def admin_list_products(
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
    status: Optional[str] = None,
    category_id: Optional[str] = None,
    search: Optional[str] = None,
    service: CatalogService = Depends(get_service),
):
    """Cursor pagination; with status and category a page may be under-full."""
    return service.paginated_list(
        cursor=cursor, page_size=page_size, status=status, category_id=category_id, search=search,
    )


@app.post("/admin/products", response_model=IdResponse, status_code=201)
def create_product(
    body: ProductCreate,
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    return IdResponse(id=service.create_product(caller, body))


@app.patch("/admin/products/{product_id}", response_model=IdResponse)
def update_product(
    product_id: str,
    body: ProductUpdate,
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    return IdResponse(id=service.update_product(caller, product_id, body))


@app.post("/admin/products/{product_id}/archive", status_code=204)
def archive_product(
    product_id: str,
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    service.archive_product(caller, product_id)


@app.delete("/admin/products/{product_id}", status_code=204)
def delete_product(
    product_id: str,
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    service.hard_delete_product(caller, product_id)


@app.put("/admin/products/{product_id}/variants", response_model=IdListResponse)
def replace_variants(
    product_id: str,
    body: List[VariantInput],
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    """Replace the whole variant set of a product (product edit page)."""
    return IdListResponse(ids=service.replace_variants(caller, product_id, body))


@app.get("/admin/reviews", response_model=CursorPageResponse)
def admin_list_reviews(
    cursor: Optional[str] = None,
    page_size: Optional[int] = None,
    search: Optional[str] = None,
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    return service.paginated_reviews(caller, cursor=cursor, page_size=page_size, search=search)


@app.post("/admin/maintenance/backfill-counters", response_model=BackfillResponse)
def backfill_counters(
    caller: Caller = Depends(get_caller),
    service: CatalogService = Depends(get_service),
):
    """Rebuild the product counter from the products table."""
    return service.backfill_counters(caller).to_dict()


@app.get("/status", response_model=StatusResponse)
def get_status(service: CatalogService = Depends(get_service)):
    """Service status for operators; database_url is left out of the config snapshot."""
    return StatusResponse(
        status="ok",
        config={k: v for k, v in service.config.to_dict().items() if k != "database_url"},
        counters=service.counter_status(),
        metrics=service.metrics.get_summary(),
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", "8000"))
    logger.info(f"Starting catalog API on port {port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
