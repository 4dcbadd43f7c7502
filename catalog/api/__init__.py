"""
API module for the catalog engine.

Provides REST endpoints for the storefront and admin front ends.
"""
from catalog.api.models import (
    ProductListResponse,
    CursorPageResponse,
    SearchSuggestion,
    CountResponse,
    IdResponse,
    IdListResponse,
    BackfillResponse,
    StatusResponse,
)

__all__ = [
    "ProductListResponse",
    "CursorPageResponse",
    "SearchSuggestion",
    "CountResponse",
    "IdResponse",
    "IdListResponse",
    "BackfillResponse",
    "StatusResponse",
]
