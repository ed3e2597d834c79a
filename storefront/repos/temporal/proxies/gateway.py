"""
Workflow-specific proxy for PaymentGateway.

`refund` runs exactly once per call: a gateway refund is not retried behind
the dispatcher's back. The dispatcher records the failure and an operator
retries it with the same idempotency key.
"""

from storefront.repos.temporal.activity_names import (
    PAYMENT_GATEWAY_ACTIVITY_BASE,
)
from storefront.repos.temporal.decorators import temporal_workflow_proxy
from storefront.repositories import PaymentGateway


@temporal_workflow_proxy(
    PAYMENT_GATEWAY_ACTIVITY_BASE,
    default_timeout_seconds=30,
    retry_methods=["refund", "create_intent"],
)
class WorkflowPaymentGatewayProxy(PaymentGateway):
    pass
