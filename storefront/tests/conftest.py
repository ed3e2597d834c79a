import pytest

from storefront.backends import (
    StorefrontRepositories,
    cancellation_for,
    checkout_for,
    ledger_for,
    memory_repositories,
    reconciliation_for,
    refund_dispatcher_for,
)
from storefront.tests.factories import (
    minimal_address,
    minimal_product,
)
from storefront.use_cases import (
    CancellationUseCase,
    CheckoutUseCase,
    OrderLedgerUseCase,
    ReconciliationUseCase,
    RefundDispatcher,
)


@pytest.fixture
def repos() -> StorefrontRepositories:
    """Fresh in-memory backend with one product and one address."""
    repositories = memory_repositories()
    repositories.catalog.add(minimal_product())
    repositories.addresses.add(minimal_address())
    return repositories


@pytest.fixture
def ledger(repos: StorefrontRepositories) -> OrderLedgerUseCase:
    return ledger_for(repos)


@pytest.fixture
def refunds(repos: StorefrontRepositories) -> RefundDispatcher:
    return refund_dispatcher_for(repos)


@pytest.fixture
def cancellations(repos: StorefrontRepositories) -> CancellationUseCase:
    return cancellation_for(repos)


@pytest.fixture
def reconciliation(repos: StorefrontRepositories) -> ReconciliationUseCase:
    return reconciliation_for(repos)


@pytest.fixture
def checkout(repos: StorefrontRepositories) -> CheckoutUseCase:
    return checkout_for(repos)
