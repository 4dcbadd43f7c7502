"""
Pydantic models for catalog API responses.

Request bodies reuse the domain input schemas in ``catalog.core.schemas``.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List


class ProductListResponse(BaseModel):
    """Page-numbered storefront browse result."""
    products: List[Dict[str, Any]] = Field(description="Enriched products of the requested page")
    total_items: int = Field(description="Size of the filtered set (capped at the candidate ceiling)")
    total_pages: int
    current_page: int
    has_more: bool


class CursorPageResponse(BaseModel):
    """Cursor-paginated admin list result."""
    page: List[Dict[str, Any]]
    continue_cursor: str = Field(description="Opaque cursor for the next page")
    is_done: bool = Field(description="True when there is nothing more to load")


class SearchSuggestion(BaseModel):
    id: str
    name: str
    slug: str
    image: Optional[str] = None


class CountResponse(BaseModel):
    count: int
    approximate: bool = Field(
        default=False,
        description="True for search-backed counts, which never exceed the candidate ceiling",
    )


class IdResponse(BaseModel):
    id: str


class IdListResponse(BaseModel):
    ids: List[str] = Field(description="Ids of the created rows, in request order")


class BackfillResponse(BaseModel):
    inserted: int
    moved: int
    removed: int
    unchanged: int
    totals: Dict[str, int]


class StatusResponse(BaseModel):
    status: str
    config: Dict[str, Any]
    counters: Dict[str, Any]
    metrics: Dict[str, Any]
