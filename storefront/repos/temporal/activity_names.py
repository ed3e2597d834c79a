"""
Activity name bases shared by the activity registrations and the workflow
proxies.

Kept in their own module so the proxies can use them without importing the
backend code in `activities`.
"""

ORDER_ACTIVITY_BASE = "storefront.order_repo"
CANCELLATION_ACTIVITY_BASE = "storefront.cancellation_repo"
REFUND_ACTIVITY_BASE = "storefront.refund_repo"
PAYMENT_GATEWAY_ACTIVITY_BASE = "storefront.payment_gateway"

__all__ = [
    "ORDER_ACTIVITY_BASE",
    "CANCELLATION_ACTIVITY_BASE",
    "REFUND_ACTIVITY_BASE",
    "PAYMENT_GATEWAY_ACTIVITY_BASE",
]
