"""
Workflow-specific proxy for OrderRepository.
Used *inside* Temporal workflows; every call runs as an activity.
"""

from storefront.repos.temporal.activity_names import ORDER_ACTIVITY_BASE
from storefront.repos.temporal.decorators import temporal_workflow_proxy
from storefront.repositories import OrderRepository


@temporal_workflow_proxy(ORDER_ACTIVITY_BASE, default_timeout_seconds=10)
class WorkflowOrderRepositoryProxy(OrderRepository):
    """Workflow implementation of OrderRepository that calls activities."""

    pass
