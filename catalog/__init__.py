"""
Catalog - product catalog query and aggregation engine

- Category-aware candidate selection with a bounded ceiling
- In-memory facet filtering, sorting and pagination
- Namespace-partitioned product counters kept in sync with every mutation
"""

from catalog.core.catalog_service import CatalogService
from catalog.core.auth import Caller
from catalog.core.config import CatalogConfig, get_config, set_config

__all__ = [
    'CatalogService',
    'Caller',
    'CatalogConfig',
    'get_config',
    'set_config',
]

__version__ = '0.1.0'
