"""
Core catalog engine: configuration, errors, caller identity and the service
entry points.
"""
from catalog.core.config import CatalogConfig, get_config, set_config
from catalog.core.errors import (
    CatalogError,
    NotFoundError,
    UnauthorizedError,
    UnauthenticatedError,
    InvalidRequestError,
)
from catalog.core.auth import Caller
from catalog.core.catalog_service import CatalogService

__all__ = [
    'CatalogConfig',
    'get_config',
    'set_config',
    'CatalogError',
    'NotFoundError',
    'UnauthorizedError',
    'UnauthenticatedError',
    'InvalidRequestError',
    'Caller',
    'CatalogService',
]
