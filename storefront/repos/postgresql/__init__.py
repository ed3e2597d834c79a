"""PostgreSQL implementations of the storefront repositories."""

from .cancellation import PostgreSQLCancellationRequestRepository
from .checkout import PostgreSQLCheckoutSessionRepository
from .collaborators import (
    PostgreSQLAddressRepository,
    PostgreSQLCartRepository,
    PostgreSQLCatalogRepository,
)
from .orders import PostgreSQLOrderRepository
from .pool import apply_schema, create_pool
from .reconciliation import PostgreSQLReconciliationRepository
from .refunds import PostgreSQLRefundRepository

__all__ = [
    "PostgreSQLAddressRepository",
    "PostgreSQLCartRepository",
    "PostgreSQLCatalogRepository",
    "PostgreSQLCancellationRequestRepository",
    "PostgreSQLCheckoutSessionRepository",
    "PostgreSQLOrderRepository",
    "PostgreSQLReconciliationRepository",
    "PostgreSQLRefundRepository",
    "apply_schema",
    "create_pool",
]
