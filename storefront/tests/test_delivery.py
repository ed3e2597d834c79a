"""
Property tests for the delivery classifier.
"""

from datetime import timedelta

import pytest
from hypothesis import given
from hypothesis import strategies as st

from storefront.delivery import classify, evidence_required
from storefront.domain import DeliveryPhase, OrderStatus
from storefront.exceptions import UnclassifiableOrder
from storefront.tests.factories import at, minimal_order

request_times = st.floats(min_value=-1000, max_value=1000).map(at)
pre_delivery_statuses = st.sampled_from(
    [OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.SHIPPED]
)


@given(t=request_times)
def test_delivered_order_is_always_post_delivery(t):
    order = minimal_order(status=OrderStatus.DELIVERED)
    assert classify(order, t) is DeliveryPhase.POST_DELIVERY
    assert evidence_required(order, t)


@given(status=pre_delivery_statuses, t=request_times)
def test_undelivered_orders_are_pre_delivery(status, t):
    order = minimal_order(status=status)
    assert classify(order, t) is DeliveryPhase.PRE_DELIVERY
    assert not evidence_required(order, t)


@given(
    status=st.sampled_from(list(OrderStatus)),
    delivered=st.booleans(),
    t=request_times,
)
def test_classify_is_deterministic(status, delivered, t):
    order = minimal_order(
        status=status, delivered_at=at(48) if delivered else None
    )
    try:
        first = classify(order, t)
    except UnclassifiableOrder:
        with pytest.raises(UnclassifiableOrder):
            classify(order, t)
        return
    assert classify(order, t) is first
    assert classify(order.model_copy(deep=True), t) is first


def test_cancelled_after_delivery_is_post_delivery():
    order = minimal_order(status=OrderStatus.CANCELLED, delivered_at=at(48))
    assert (
        classify(order, at(48) + timedelta(minutes=1))
        is DeliveryPhase.POST_DELIVERY
    )


def test_cancelled_before_delivery_is_unclassifiable():
    order = minimal_order(status=OrderStatus.CANCELLED)
    with pytest.raises(UnclassifiableOrder):
        classify(order, at(5))


def test_request_not_after_delivery_is_unclassifiable():
    order = minimal_order(status=OrderStatus.CANCELLED, delivered_at=at(48))
    with pytest.raises(UnclassifiableOrder):
        classify(order, at(48))
