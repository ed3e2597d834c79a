"""
Workflow-specific proxy for RefundRepository.
"""

from storefront.repos.temporal.activity_names import REFUND_ACTIVITY_BASE
from storefront.repos.temporal.decorators import temporal_workflow_proxy
from storefront.repositories import RefundRepository


@temporal_workflow_proxy(REFUND_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowRefundRepositoryProxy(RefundRepository):
    """Workflow implementation of RefundRepository that calls activities."""

    pass
