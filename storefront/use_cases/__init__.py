"""
Use cases: pure business logic over injected repositories.

They know nothing about HTTP, Temporal or the storage technology; the API,
the worker and the CLI wire them to concrete repositories.
"""

from storefront.use_cases.cancellation import CancellationUseCase
from storefront.use_cases.checkout import CheckoutUseCase
from storefront.use_cases.orders import OrderLedgerUseCase
from storefront.use_cases.reconciliation import ReconciliationUseCase
from storefront.use_cases.refunds import RefundDispatcher

__all__ = [
    "CancellationUseCase",
    "CheckoutUseCase",
    "OrderLedgerUseCase",
    "ReconciliationUseCase",
    "RefundDispatcher",
]
