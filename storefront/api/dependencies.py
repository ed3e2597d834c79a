"""
Dependency injection for FastAPI endpoints.

Repositories are built once per process by the DependencyContainer, for the
backend named by STOREFRONT_BACKEND. Use cases are cheap and built per
request on top of them. Tests replace `get_repositories` through
`app.dependency_overrides`.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Depends, Header, HTTPException

from storefront.backends import (
    StorefrontRepositories,
    build_repositories,
    cancellation_for,
    checkout_for,
    ledger_for,
    reconciliation_for,
    refund_dispatcher_for,
)
from storefront.use_cases import (
    CancellationUseCase,
    CheckoutUseCase,
    OrderLedgerUseCase,
    ReconciliationUseCase,
    RefundDispatcher,
)

logger = logging.getLogger(__name__)


class DependencyContainer:
    """
    Dependency injection container with singleton lifecycle management.
    Always creates real backends; tests override the FastAPI dependencies.
    """

    def __init__(self) -> None:
        self._instances: Dict[str, Any] = {}

    async def get_or_create(self, key: str, factory: Any) -> Any:
        """Get or create a singleton instance."""
        if key not in self._instances:
            self._instances[key] = await factory()
        return self._instances[key]

    async def get_repositories(self) -> StorefrontRepositories:
        repos = await self.get_or_create("repositories", build_repositories)
        return repos  # type: ignore[no-any-return]


# Global container instance
_container = DependencyContainer()


async def get_repositories() -> StorefrontRepositories:
    """FastAPI dependency for the process-wide repositories."""
    return await _container.get_repositories()


async def get_order_ledger(
    repos: StorefrontRepositories = Depends(get_repositories),
) -> OrderLedgerUseCase:
    return ledger_for(repos)


async def get_refund_dispatcher(
    repos: StorefrontRepositories = Depends(get_repositories),
) -> RefundDispatcher:
    return refund_dispatcher_for(repos)


async def get_cancellation_use_case(
    repos: StorefrontRepositories = Depends(get_repositories),
) -> CancellationUseCase:
    return cancellation_for(repos)


async def get_reconciliation_use_case(
    repos: StorefrontRepositories = Depends(get_repositories),
) -> ReconciliationUseCase:
    return reconciliation_for(repos)


async def get_checkout_use_case(
    repos: StorefrontRepositories = Depends(get_repositories),
) -> CheckoutUseCase:
    return checkout_for(repos)


async def get_user_id(
    x_user_id: Optional[str] = Header(default=None),
) -> str:
    """Customer identity, set by the upstream auth proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id")
    return x_user_id


async def get_admin_id(
    x_admin_id: Optional[str] = Header(default=None),
) -> str:
    """Operator identity, set by the upstream auth proxy for admins only."""
    if not x_admin_id:
        raise HTTPException(status_code=403, detail="Admin access required")
    return x_admin_id
