"""
Pagination over catalog results.

Two modes coexist:

- page-number mode slices an already filtered and sorted list and reports
  the size of the whole list (storefront browse);
- cursor mode walks one product index newest first and hands back an opaque
  continuation cursor (admin browse). When both a status and a category are
  requested only the status index is used and category is filtered on the
  fetched page, so a page can come back with fewer rows than requested.
"""
import base64
import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, Sequence, TypeVar

from catalog.core.errors import InvalidRequestError
from catalog.data.product_store import ProductStore, ScanPosition

T = TypeVar("T")


@dataclass
class PageResult(Generic[T]):
    items: List[T]
    total_items: int
    total_pages: int
    current_page: int
    has_more: bool


@dataclass
class CursorPage(Generic[T]):
    page: List[T]
    continue_cursor: str
    is_done: bool
    # Rows the index returned before any in-memory post-filter
    scanned: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)


def paginate_by_page(items: Sequence[T], page: int, page_size: int) -> PageResult[T]:
    """Slice ``items`` for a 1-indexed ``page``; totals describe the full list."""
    if page < 1:
        raise InvalidRequestError("page must be >= 1")
    if page_size < 1:
        raise InvalidRequestError("page size must be >= 1")

    total_items = len(items)
    total_pages = math.ceil(total_items / page_size)
    start = (page - 1) * page_size
    return PageResult(
        items=list(items[start:start + page_size]),
        total_items=total_items,
        total_pages=total_pages,
        current_page=page,
        has_more=page < total_pages,
    )


def encode_cursor(payload: Dict[str, Any]) -> str:
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: str) -> Dict[str, Any]:
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")).decode("utf-8"))
    except (ValueError, UnicodeError) as exc:
        raise InvalidRequestError("Invalid cursor") from exc
    if not isinstance(payload, dict):
        raise InvalidRequestError("Invalid cursor")
    return payload


def position_from_cursor(cursor: Optional[str]) -> Optional[ScanPosition]:
    """Decode a keyset cursor; an empty or missing cursor starts from the newest row."""
    if not cursor:
        return None
    payload = decode_cursor(cursor)
    if not payload:
        return None
    try:
        return ScanPosition(creation_time=float(payload["t"]), row_id=str(payload["id"]))
    except (KeyError, TypeError, ValueError) as exc:
        raise InvalidRequestError("Invalid cursor") from exc


def cursor_after(row: Any) -> str:
    return encode_cursor({"t": row.creation_time, "id": row.id})


class CursorPaginator:
    """Forward-only, index-backed pagination for the admin product list."""

    def __init__(self, store: ProductStore):
        self.store = store

    def page(
        self,
        cursor: Optional[str],
        num_items: int,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> CursorPage:
        if num_items < 1:
            raise InvalidRequestError("page size must be >= 1")

        after = position_from_cursor(cursor)
        rows, has_more = self.store.scan_page(status, category_id, after, num_items)

        if rows:
            continue_cursor = cursor_after(rows[-1])
        else:
            continue_cursor = cursor or encode_cursor({})

        page = rows
        if status is not None and category_id is not None:
            page = [p for p in rows if p.category_id == category_id]

        return CursorPage(page=page, continue_cursor=continue_cursor, is_done=not has_more, scanned=len(rows))

    @staticmethod
    def over_list(items: Sequence[T], cursor: Optional[str], num_items: int) -> CursorPage[T]:
        """Cursor-mode paging over an in-memory list; the cursor carries an offset."""
        if num_items < 1:
            raise InvalidRequestError("page size must be >= 1")
        offset = 0
        if cursor:
            offset = decode_cursor(cursor).get("offset", 0)
            if not isinstance(offset, int) or offset < 0:
                raise InvalidRequestError("Invalid cursor")
        end = offset + num_items
        return CursorPage(
            page=list(items[offset:end]),
            continue_cursor=encode_cursor({"offset": min(end, len(items))}),
            is_done=end >= len(items),
            scanned=len(items[offset:end]),
        )
