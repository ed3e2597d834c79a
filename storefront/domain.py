"""
Domain models defined as Pydantic models.
These are pure data structures with validation; the state machines that
govern them live in the use cases and the ledger repositories.
"""

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

CENTS = Decimal("0.01")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def money(value: Decimal) -> Decimal:
    """Quantize a monetary amount to two places, rounding half up."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class OrderStatus(str, Enum):
    """Lifecycle status of an order. Only the ledger writes it."""

    PENDING = "PENDING"
    PAID = "PAID"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Forward progression ranks. CANCELLED sits outside the progression.
ORDER_PROGRESSION: Dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.PAID: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
}


def is_legal_transition(current: OrderStatus, new: OrderStatus) -> bool:
    """Whether the ledger may move an order from `current` to `new`.

    Forward moves along PENDING -> PAID -> SHIPPED -> DELIVERED may skip
    steps (a COD order is never PAID before it ships). CANCELLED is
    reachable from every other status and is terminal.
    """
    if current is OrderStatus.CANCELLED:
        return False
    if new is OrderStatus.CANCELLED:
        return True
    return ORDER_PROGRESSION[new] > ORDER_PROGRESSION[current]


class PaymentMethod(str, Enum):
    COD = "cod"
    UPI = "upi"

    @property
    def is_prepaid(self) -> bool:
        return self is not PaymentMethod.COD


class CancellationStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class DeliveryPhase(str, Enum):
    """Whether an order had reached the customer when a request was filed."""

    PRE_DELIVERY = "PRE_DELIVERY"
    POST_DELIVERY = "POST_DELIVERY"


class RefundStatus(str, Enum):
    DISPATCHING = "DISPATCHING"
    INITIATED = "INITIATED"
    FAILED = "FAILED"
    REFUND_COMPLETED = "REFUND_COMPLETED"


class CheckoutStatus(str, Enum):
    OPEN = "OPEN"
    COMMITTED = "COMMITTED"
    ABANDONED = "ABANDONED"


class ReconciliationStatus(str, Enum):
    NONE = "NONE"
    NEEDS_RECONCILIATION = "NEEDS_RECONCILIATION"
    RESOLVED = "RESOLVED"


class ReconciliationKind(str, Enum):
    """Ways payment and order records can disagree."""

    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    ORDER_CREATION_FAILED = "ORDER_CREATION_FAILED"


class ReconciliationAction(str, Enum):
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    VOID_ORDER = "VOID_ORDER"
    # Closed by checkout when a retried commit wrote the missing order.
    ORDER_RECORDED = "ORDER_RECORDED"


class AddressSnapshot(BaseModel):
    """Copy of a delivery address taken when the order was placed."""

    name: str
    phone: str
    line: str
    city: str
    pincode: str

    @field_validator("name", "line", "city", "pincode")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Address fields must not be blank")
        return v.strip()


class Address(AddressSnapshot):
    """Live address record owned by the address book collaborator."""

    address_id: str
    user_id: str

    def snapshot(self) -> AddressSnapshot:
        return AddressSnapshot(
            name=self.name,
            phone=self.phone,
            line=self.line,
            city=self.city,
            pincode=self.pincode,
        )


class ProductPricing(BaseModel):
    """Catalog pricing as returned by the catalog collaborator."""

    product_id: str
    price: Decimal
    discount_percent: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")

    @field_validator("price")
    @classmethod
    def price_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Price must be positive")
        return v

    @field_validator("discount_percent")
    @classmethod
    def discount_must_be_a_percentage(cls, v: Decimal) -> Decimal:
        if v < 0 or v >= 100:
            raise ValueError("Discount percent must be in [0, 100)")
        return v

    @field_validator("tax_rate")
    @classmethod
    def tax_rate_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Tax rate must be non-negative")
        return v


class CartItem(BaseModel):
    product_id: str
    quantity: int
    variant: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v


class Cart(BaseModel):
    """Cart contents handed to checkout by the caller."""

    user_id: str
    items: List[CartItem] = Field(default_factory=list)


class OrderItem(BaseModel):
    product_id: str
    quantity: int
    unit_price: Decimal
    variant: Optional[str] = None

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be positive")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Unit price must be positive")
        return v


class Order(BaseModel):
    order_id: str
    user_id: str
    status: OrderStatus = OrderStatus.PENDING
    payment_method: PaymentMethod
    items: List[OrderItem]
    total_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    address: AddressSnapshot
    created_at: datetime = Field(default_factory=utcnow)
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    payment_intent_id: Optional[str] = None
    payment_reference: Optional[str] = None
    reconciliation_status: ReconciliationStatus = ReconciliationStatus.NONE
    reconciliation_note: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[OrderItem]) -> List[OrderItem]:
        if not v:
            raise ValueError("Order must contain at least one item")
        return v

    @field_validator("total_amount")
    @classmethod
    def total_amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Total amount must be positive")
        return v

    @field_validator("discount_amount", "tax_amount")
    @classmethod
    def adjustments_must_be_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Discount and tax amounts must be non-negative")
        return v

    @property
    def needs_reconciliation(self) -> bool:
        return (
            self.reconciliation_status
            is ReconciliationStatus.NEEDS_RECONCILIATION
        )


# Containers accepted as cancellation evidence.
ALLOWED_VIDEO_CONTENT_TYPES = frozenset(
    {
        "video/mp4",
        "video/webm",
        "video/quicktime",
        "video/x-msvideo",
        "video/x-matroska",
    }
)


def video_media_type(content_type: str) -> str:
    """`video/mp4; codecs=avc1` -> `video/mp4`."""
    return content_type.split(";", 1)[0].strip().lower()


class VideoAttachment(BaseModel):
    """Evidence video bytes supplied by the customer."""

    filename: str
    content_type: str = "video/mp4"
    data: bytes

    @field_validator("data")
    @classmethod
    def data_must_not_be_empty(cls, v: bytes) -> bytes:
        if not v:
            raise ValueError("Video file cannot be empty")
        return v

    @field_validator("content_type")
    @classmethod
    def must_be_video(cls, v: str) -> str:
        if video_media_type(v) not in ALLOWED_VIDEO_CONTENT_TYPES:
            raise ValueError(f"Unsupported video type {v}")
        return v


class CancellationEvidence(BaseModel):
    """Evidence attached to a cancellation filing.

    Either `video_url` (already stored elsewhere) or `video` (bytes to be
    stored against the new request) carries the video.
    """

    upi_id: Optional[str] = None
    video_url: Optional[str] = None
    video: Optional[VideoAttachment] = None

    @property
    def has_video(self) -> bool:
        return bool(self.video_url) or self.video is not None


class CancellationRequest(BaseModel):
    request_id: str
    order_id: str
    user_id: str
    reason: str
    status: CancellationStatus = CancellationStatus.PENDING
    delivery_phase: DeliveryPhase
    video_url: Optional[str] = None
    video_uploaded_at: Optional[datetime] = None
    upi_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None

    @property
    def is_resolved(self) -> bool:
        return self.status is not CancellationStatus.PENDING


class Refund(BaseModel):
    refund_id: str
    request_id: str
    order_id: str
    refund_amount: Decimal
    upi_id: Optional[str] = None
    payment_reference: Optional[str] = None
    status: RefundStatus = RefundStatus.DISPATCHING
    gateway_refund_id: Optional[str] = None
    failure_reason: Optional[str] = None
    attempts: int = 0
    initiated_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    completed_by: Optional[str] = None

    @field_validator("refund_amount")
    @classmethod
    def amount_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Refund amount must be positive")
        return v


class RefundOutcome(BaseModel):
    """Result of asking the dispatcher to refund an approved request."""

    initiated: bool
    refund: Optional[Refund] = None
    reason: Optional[str] = None


class CancellationDecision(BaseModel):
    """A resolved request and, for approvals, what happened to the money."""

    request: CancellationRequest
    refund: Optional[RefundOutcome] = None


class RefundInstruction(BaseModel):
    """What the gateway is asked to pay back."""

    idempotency_key: str
    payment_reference: str
    amount: Decimal
    notes: Dict[str, str] = Field(default_factory=dict)


class GatewayRefund(BaseModel):
    gateway_refund_id: str
    amount: Decimal


class PaymentIntent(BaseModel):
    """Provisional, amount-bound payment object created before any order."""

    intent_id: str
    reference: str
    amount: Decimal
    currency: str = "INR"


class PaymentProof(BaseModel):
    """What the provider's success callback hands back to the client."""

    intent_id: str
    payment_reference: str
    signature: str


class CheckoutSession(BaseModel):
    reference: str
    user_id: str
    payment_method: PaymentMethod
    intent_id: str
    amount: Decimal
    items: List[OrderItem]
    discount_amount: Decimal
    tax_amount: Decimal
    address: AddressSnapshot
    status: CheckoutStatus = CheckoutStatus.OPEN
    order_id: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_order(
        self,
        order_id: str,
        payment_reference: Optional[str],
        created_at: datetime,
        status: OrderStatus = OrderStatus.PENDING,
    ) -> Order:
        """Build the order this session commits to."""
        return Order(
            order_id=order_id,
            user_id=self.user_id,
            status=status,
            payment_method=self.payment_method,
            items=self.items,
            total_amount=self.amount,
            discount_amount=self.discount_amount,
            tax_amount=self.tax_amount,
            address=self.address,
            created_at=created_at,
            payment_intent_id=self.intent_id,
            payment_reference=payment_reference,
        )


class CheckoutResult(BaseModel):
    """Either a placed order (COD) or an open session awaiting payment."""

    order: Optional[Order] = None
    session: Optional[CheckoutSession] = None
    intent: Optional[PaymentIntent] = None


class ReconciliationCase(BaseModel):
    case_id: str
    kind: ReconciliationKind
    reference: str
    order_id: Optional[str] = None
    payment_reference: Optional[str] = None
    proof: Optional[PaymentProof] = None
    detail: str
    resolved: bool = False
    resolution: Optional[ReconciliationAction] = None
    resolved_by: Optional[str] = None
    resolution_note: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    resolved_at: Optional[datetime] = None
