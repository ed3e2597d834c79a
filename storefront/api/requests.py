"""
Pydantic models for API requests.
These define the contract between the API and external clients.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from storefront.domain import (
    Cart,
    CartItem,
    OrderStatus,
    PaymentMethod,
    PaymentProof,
    ReconciliationAction,
)


class CheckoutRequest(BaseModel):
    """Place an order from the caller's cart."""

    items: List[CartItem] = Field(default_factory=list)
    address_id: str = ""
    payment_method: PaymentMethod

    def cart_for(self, user_id: str) -> Cart:
        return Cart(user_id=user_id, items=self.items)


class CommitPaymentRequest(BaseModel):
    """The payment provider's success callback, relayed by the client."""

    intent_id: str
    payment_reference: str
    signature: str

    def to_proof(self) -> PaymentProof:
        return PaymentProof(
            intent_id=self.intent_id,
            payment_reference=self.payment_reference,
            signature=self.signature,
        )


class UpdateOrderStatusRequest(BaseModel):
    status: OrderStatus


class ResolveCaseRequest(BaseModel):
    action: ReconciliationAction
    note: Optional[str] = None
