"""
Workflow-specific proxy for CancellationRequestRepository.
"""

from storefront.repos.temporal.activity_names import (
    CANCELLATION_ACTIVITY_BASE,
)
from storefront.repos.temporal.decorators import temporal_workflow_proxy
from storefront.repositories import CancellationRequestRepository


@temporal_workflow_proxy(
    CANCELLATION_ACTIVITY_BASE, default_timeout_seconds=10
)
class WorkflowCancellationRequestRepositoryProxy(
    CancellationRequestRepository
):
    pass
