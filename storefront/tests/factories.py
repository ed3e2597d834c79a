"""
Test object factories for storefront domain models.

Minimal objects with sensible defaults; override only what a test is
about.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

from storefront.domain import (
    Address,
    AddressSnapshot,
    CancellationRequest,
    CancellationStatus,
    Cart,
    CartItem,
    DeliveryPhase,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    ProductPricing,
    VideoAttachment,
)

BASE_TIME = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)

MP4_BYTES = b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64


def at(hours: float = 0) -> datetime:
    """A fixed point in time, `hours` after BASE_TIME."""
    return BASE_TIME + timedelta(hours=hours)


def minimal_address_snapshot() -> AddressSnapshot:
    return AddressSnapshot(
        name="Asha Rao",
        phone="9800000000",
        line="12 MG Road",
        city="Bengaluru",
        pincode="560001",
    )


def minimal_address(
    address_id: str = "addr-1", user_id: str = "user-1"
) -> Address:
    return Address(
        address_id=address_id,
        user_id=user_id,
        **minimal_address_snapshot().model_dump(),
    )


def minimal_product(
    product_id: str = "prod-1",
    price: str = "2499.00",
    discount_percent: str = "0",
    tax_rate: str = "0",
) -> ProductPricing:
    return ProductPricing(
        product_id=product_id,
        price=Decimal(price),
        discount_percent=Decimal(discount_percent),
        tax_rate=Decimal(tax_rate),
    )


def minimal_cart(
    user_id: str = "user-1", items: Optional[List[CartItem]] = None
) -> Cart:
    if items is None:
        items = [CartItem(product_id="prod-1", quantity=1)]
    return Cart(user_id=user_id, items=items)


def minimal_order(
    order_id: str = "ord-1",
    user_id: str = "user-1",
    status: OrderStatus = OrderStatus.PENDING,
    payment_method: PaymentMethod = PaymentMethod.COD,
    total_amount: str = "2499.00",
    payment_reference: Optional[str] = None,
    created_at: Optional[datetime] = None,
    delivered_at: Optional[datetime] = None,
) -> Order:
    if payment_reference is None and payment_method.is_prepaid:
        payment_reference = f"pay_{order_id}"
    if delivered_at is None and status is OrderStatus.DELIVERED:
        delivered_at = at(48)
    return Order(
        order_id=order_id,
        user_id=user_id,
        status=status,
        payment_method=payment_method,
        items=[
            OrderItem(
                product_id="prod-1",
                quantity=1,
                unit_price=Decimal(total_amount),
            )
        ],
        total_amount=Decimal(total_amount),
        address=minimal_address_snapshot(),
        created_at=created_at or at(0),
        shipped_at=at(24) if delivered_at else None,
        delivered_at=delivered_at,
        payment_reference=payment_reference,
        payment_intent_id=(
            f"intent_{order_id}" if payment_method.is_prepaid else None
        ),
    )


def minimal_request(
    request_id: str = "req-1",
    order_id: str = "ord-1",
    user_id: str = "user-1",
    status: CancellationStatus = CancellationStatus.PENDING,
    delivery_phase: DeliveryPhase = DeliveryPhase.PRE_DELIVERY,
    upi_id: Optional[str] = None,
) -> CancellationRequest:
    return CancellationRequest(
        request_id=request_id,
        order_id=order_id,
        user_id=user_id,
        reason="Ordered the wrong size by mistake",
        status=status,
        delivery_phase=delivery_phase,
        upi_id=upi_id,
        video_url=(
            "memory://evidence/req-1/unboxing.mp4"
            if delivery_phase is DeliveryPhase.POST_DELIVERY
            else None
        ),
        created_at=at(1),
        updated_at=at(1),
    )


def minimal_video(filename: str = "unboxing.mp4") -> VideoAttachment:
    return VideoAttachment(
        filename=filename, content_type="video/mp4", data=MP4_BYTES
    )


CUSTOMER_HEADERS = {"X-User-Id": "user-1"}
ADMIN_HEADERS = {"X-Admin-Id": "admin-1"}
