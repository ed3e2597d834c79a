"""
Storage backends and use case wiring shared by the API and the CLI.

STOREFRONT_BACKEND selects the backend:

- memory: dictionaries and fake collaborators, for development and tests
- postgresql: PostgreSQL for records, Minio for evidence videos and
  Razorpay for payments
"""

import logging
from typing import Optional

from storefront.config import storage_backend
from storefront.repositories import (
    AddressRepository,
    CancellationRequestRepository,
    CartRepository,
    CatalogRepository,
    CheckoutSessionRepository,
    EvidenceStorage,
    OrderRepository,
    PaymentGateway,
    ReconciliationRepository,
    RefundRepository,
)
from storefront.use_cases import (
    CancellationUseCase,
    CheckoutUseCase,
    OrderLedgerUseCase,
    ReconciliationUseCase,
    RefundDispatcher,
)

logger = logging.getLogger(__name__)


class StorefrontRepositories:
    """The full set of repositories and collaborators one backend provides."""

    def __init__(
        self,
        orders: OrderRepository,
        requests: CancellationRequestRepository,
        refunds: RefundRepository,
        sessions: CheckoutSessionRepository,
        cases: ReconciliationRepository,
        gateway: PaymentGateway,
        evidence: EvidenceStorage,
        catalog: CatalogRepository,
        addresses: AddressRepository,
        carts: CartRepository,
    ) -> None:
        self.orders = orders
        self.requests = requests
        self.refunds = refunds
        self.sessions = sessions
        self.cases = cases
        self.gateway = gateway
        self.evidence = evidence
        self.catalog = catalog
        self.addresses = addresses
        self.carts = carts


def memory_repositories() -> StorefrontRepositories:
    from storefront.repos.memory import (
        MemoryAddressRepository,
        MemoryCancellationRequestRepository,
        MemoryCartRepository,
        MemoryCatalogRepository,
        MemoryCheckoutSessionRepository,
        MemoryEvidenceStorage,
        MemoryOrderRepository,
        MemoryPaymentGateway,
        MemoryReconciliationRepository,
        MemoryRefundRepository,
    )

    return StorefrontRepositories(
        orders=MemoryOrderRepository(),
        requests=MemoryCancellationRequestRepository(),
        refunds=MemoryRefundRepository(),
        sessions=MemoryCheckoutSessionRepository(),
        cases=MemoryReconciliationRepository(),
        gateway=MemoryPaymentGateway(),
        evidence=MemoryEvidenceStorage(),
        catalog=MemoryCatalogRepository(),
        addresses=MemoryAddressRepository(),
        carts=MemoryCartRepository(),
    )


async def postgresql_repositories() -> StorefrontRepositories:
    from storefront.repos.minio.evidence import MinioEvidenceStorage
    from storefront.repos.postgresql import (
        PostgreSQLAddressRepository,
        PostgreSQLCancellationRequestRepository,
        PostgreSQLCartRepository,
        PostgreSQLCatalogRepository,
        PostgreSQLCheckoutSessionRepository,
        PostgreSQLOrderRepository,
        PostgreSQLReconciliationRepository,
        PostgreSQLRefundRepository,
        apply_schema,
        create_pool,
    )
    from storefront.repos.razorpay.gateway import RazorpayPaymentGateway

    pool = await create_pool()
    await apply_schema(pool)
    return StorefrontRepositories(
        orders=PostgreSQLOrderRepository(pool),
        requests=PostgreSQLCancellationRequestRepository(pool),
        refunds=PostgreSQLRefundRepository(pool),
        sessions=PostgreSQLCheckoutSessionRepository(pool),
        cases=PostgreSQLReconciliationRepository(pool),
        gateway=RazorpayPaymentGateway(),
        evidence=MinioEvidenceStorage(),
        catalog=PostgreSQLCatalogRepository(pool),
        addresses=PostgreSQLAddressRepository(pool),
        carts=PostgreSQLCartRepository(pool),
    )


async def build_repositories(
    backend: Optional[str] = None,
) -> StorefrontRepositories:
    backend = backend or storage_backend()
    logger.info("Building repositories", extra={"backend": backend})
    if backend == "memory":
        return memory_repositories()
    if backend == "postgresql":
        return await postgresql_repositories()
    raise ValueError(f"Unknown storage backend: {backend}")


def ledger_for(repos: StorefrontRepositories) -> OrderLedgerUseCase:
    return OrderLedgerUseCase(repos.orders)


def refund_dispatcher_for(repos: StorefrontRepositories) -> RefundDispatcher:
    return RefundDispatcher(
        order_repo=repos.orders,
        request_repo=repos.requests,
        refund_repo=repos.refunds,
        gateway=repos.gateway,
    )


def reconciliation_for(
    repos: StorefrontRepositories,
) -> ReconciliationUseCase:
    return ReconciliationUseCase(
        ledger=ledger_for(repos),
        case_repo=repos.cases,
        session_repo=repos.sessions,
        gateway=repos.gateway,
        refunds=refund_dispatcher_for(repos),
    )


def cancellation_for(repos: StorefrontRepositories) -> CancellationUseCase:
    return CancellationUseCase(
        ledger=ledger_for(repos),
        request_repo=repos.requests,
        evidence_storage=repos.evidence,
        refunds=refund_dispatcher_for(repos),
    )


def checkout_for(repos: StorefrontRepositories) -> CheckoutUseCase:
    return CheckoutUseCase(
        ledger=ledger_for(repos),
        session_repo=repos.sessions,
        gateway=repos.gateway,
        catalog=repos.catalog,
        addresses=repos.addresses,
        carts=repos.carts,
        reconciliation=reconciliation_for(repos),
    )
