"""
Memory repository implementations for the storefront.

These use Python dictionaries for storage and an asyncio.Lock per
repository for atomic check-and-write, making them suitable for tests and
for running the API without PostgreSQL.
"""

from .cancellation import MemoryCancellationRequestRepository
from .checkout import MemoryCheckoutSessionRepository
from .collaborators import (
    MemoryAddressRepository,
    MemoryCartRepository,
    MemoryCatalogRepository,
)
from .evidence import MemoryEvidenceStorage
from .gateway import MemoryPaymentGateway
from .orders import MemoryOrderRepository
from .reconciliation import MemoryReconciliationRepository
from .refunds import MemoryRefundRepository

__all__ = [
    "MemoryAddressRepository",
    "MemoryCancellationRequestRepository",
    "MemoryCartRepository",
    "MemoryCatalogRepository",
    "MemoryCheckoutSessionRepository",
    "MemoryEvidenceStorage",
    "MemoryOrderRepository",
    "MemoryPaymentGateway",
    "MemoryReconciliationRepository",
    "MemoryRefundRepository",
]
