"""
Exception taxonomy for the catalog engine.

NotFound and Unauthorized errors reject the operation outright. Aggregate
errors are raised by the counter primitives and never escape a product
mutation; the sync layer turns them into an ``AggregateSyncFailure`` event.
"""
from dataclasses import dataclass
from typing import Tuple


class CatalogError(Exception):
    """Base class for catalog errors."""


class NotFoundError(CatalogError):
    """A referenced record does not exist."""


class UnauthorizedError(CatalogError):
    """Caller is not allowed to perform the operation."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class UnauthenticatedError(UnauthorizedError):
    """No caller identity was supplied."""

    def __init__(self, message: str = "Unauthenticated"):
        super().__init__(message)


class InvalidRequestError(CatalogError):
    """Arguments failed validation."""


class AggregateError(CatalogError):
    """Base class for count aggregate primitive failures."""


class AggregateKeyNotFound(AggregateError):
    """The product has no counter entry where one was expected."""


class AggregateDuplicateKey(AggregateError):
    """The product already has a counter entry."""


@dataclass(frozen=True)
class AggregateSyncFailure:
    """A product write committed without its counter update."""
    mutation: str
    product_id: str
    namespaces: Tuple[str, ...]
    errors: Tuple[str, ...] = ()
    occurred_at: float = 0.0
