"""
Temporal activity wrappers around the PostgreSQL repositories and the
Razorpay gateway. Only the worker imports this module.
"""

from typing import Any, List

from storefront.repos.postgresql import (
    PostgreSQLCancellationRequestRepository,
    PostgreSQLOrderRepository,
    PostgreSQLRefundRepository,
)
from storefront.repos.razorpay.gateway import RazorpayPaymentGateway
from storefront.repos.temporal.activity_names import (
    CANCELLATION_ACTIVITY_BASE,
    ORDER_ACTIVITY_BASE,
    PAYMENT_GATEWAY_ACTIVITY_BASE,
    REFUND_ACTIVITY_BASE,
)
from storefront.repos.temporal.decorators import (
    protocol_methods,
    temporal_activity_registration,
)


@temporal_activity_registration(ORDER_ACTIVITY_BASE)
class TemporalPostgreSQLOrderRepository(PostgreSQLOrderRepository):
    """Temporal activity wrapper for PostgreSQLOrderRepository."""

    pass


@temporal_activity_registration(CANCELLATION_ACTIVITY_BASE)
class TemporalPostgreSQLCancellationRequestRepository(
    PostgreSQLCancellationRequestRepository
):
    """Temporal activity wrapper for
    PostgreSQLCancellationRequestRepository."""

    pass


@temporal_activity_registration(REFUND_ACTIVITY_BASE)
class TemporalPostgreSQLRefundRepository(PostgreSQLRefundRepository):
    """Temporal activity wrapper for PostgreSQLRefundRepository."""

    pass


@temporal_activity_registration(PAYMENT_GATEWAY_ACTIVITY_BASE)
class TemporalRazorpayPaymentGateway(RazorpayPaymentGateway):
    """Temporal activity wrapper for RazorpayPaymentGateway."""

    pass


def bound_activities(*repositories: Any) -> List[Any]:
    """Every activity method of the given wrapped repositories."""
    return [
        getattr(repo, name)
        for repo in repositories
        for name in protocol_methods(type(repo))
    ]


__all__ = [
    "TemporalPostgreSQLOrderRepository",
    "TemporalPostgreSQLCancellationRequestRepository",
    "TemporalPostgreSQLRefundRepository",
    "TemporalRazorpayPaymentGateway",
    "bound_activities",
]
