"""
Delivery phase classification.

One function decides whether an order had reached the customer when a
cancellation was requested. The filing path, the display endpoint and the
admin views all call it, so they can never disagree about whether evidence
is required.
"""

from datetime import datetime

from storefront.domain import DeliveryPhase, Order, OrderStatus
from storefront.exceptions import UnclassifiableOrder

_PRE_DELIVERY_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.SHIPPED}
)


def classify(order: Order, request_timestamp: datetime) -> DeliveryPhase:
    """Classify a cancellation filed at `request_timestamp` against `order`.

    Pure: reads no clock and performs no I/O.

    Raises:
        UnclassifiableOrder: the order was cancelled without ever being
            delivered, or the request does not postdate its delivery.
    """
    if order.status is OrderStatus.DELIVERED:
        return DeliveryPhase.POST_DELIVERY

    if order.status in _PRE_DELIVERY_STATUSES:
        return DeliveryPhase.PRE_DELIVERY

    if (
        order.status is OrderStatus.CANCELLED
        and order.delivered_at is not None
        and request_timestamp > order.delivered_at
    ):
        return DeliveryPhase.POST_DELIVERY

    raise UnclassifiableOrder(
        f"Order {order.order_id} in status {order.status.value} has no "
        f"delivery phase at {request_timestamp.isoformat()}"
    )


def evidence_required(order: Order, request_timestamp: datetime) -> bool:
    """Whether a request filed now must carry a video and a UPI id."""
    return (
        classify(order, request_timestamp) is DeliveryPhase.POST_DELIVERY
    )
