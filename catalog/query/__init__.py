"""
Catalog query engine: category resolution, candidate selection, facet
filtering and pagination.
"""
from catalog.query.candidates import CandidateSelector, CandidateSet
from catalog.query.category_tree import CategoryTree
from catalog.query.facets import FacetFilterEngine
from catalog.query.filters import ProductFilterSpec, SortOrder, Strategy, select_strategy
from catalog.query.pagination import CursorPage, CursorPaginator, PageResult, paginate_by_page

__all__ = [
    "CandidateSelector",
    "CandidateSet",
    "CategoryTree",
    "FacetFilterEngine",
    "ProductFilterSpec",
    "SortOrder",
    "Strategy",
    "select_strategy",
    "CursorPage",
    "CursorPaginator",
    "PageResult",
    "paginate_by_page",
]
