"""
In-memory PaymentGateway for tests and local development.

Intents and refunds live in dicts. Proofs are checked with the same
signature scheme as the Razorpay adapter, so tests can produce valid and
forged callbacks with `sign()`. Failures can be switched on per
operation.
"""

import hmac
import logging
import uuid
from decimal import Decimal
from typing import Dict, List

from storefront.domain import (
    GatewayRefund,
    PaymentIntent,
    PaymentProof,
    RefundInstruction,
    money,
)
from storefront.exceptions import PaymentGatewayError
from storefront.repositories import PaymentGateway
from storefront.repos.razorpay.gateway import payment_signature

logger = logging.getLogger(__name__)


class MemoryPaymentGateway(PaymentGateway):
    def __init__(self, key_secret: str = "test-secret") -> None:
        self.key_secret = key_secret
        self.intents: Dict[str, PaymentIntent] = {}
        self.refunds: Dict[str, GatewayRefund] = {}
        self.refund_calls: List[RefundInstruction] = []
        self.verify_calls: List[str] = []
        self.fail_intents = False
        self.fail_verification = False
        self.fail_refunds = False

    def sign(self, intent_id: str, payment_reference: str) -> str:
        return payment_signature(self.key_secret, intent_id, payment_reference)

    def proof_for(self, intent_id: str, payment_reference: str) -> PaymentProof:
        """A proof as the provider's success callback would hand it over."""
        return PaymentProof(
            intent_id=intent_id,
            payment_reference=payment_reference,
            signature=self.sign(intent_id, payment_reference),
        )

    async def create_intent(
        self, amount: Decimal, reference: str
    ) -> PaymentIntent:
        if self.fail_intents:
            raise PaymentGatewayError("Payment provider unreachable")
        intent = PaymentIntent(
            intent_id=f"order_{uuid.uuid4().hex[:14]}",
            reference=reference,
            amount=money(amount),
        )
        self.intents[intent.intent_id] = intent
        return intent

    async def verify(
        self, intent_id: str, proof: PaymentProof, order_id: str
    ) -> bool:
        self.verify_calls.append(order_id)
        if self.fail_verification:
            raise PaymentGatewayError("Payment provider unreachable")
        if intent_id not in self.intents or proof.intent_id != intent_id:
            return False
        return hmac.compare_digest(
            self.sign(intent_id, proof.payment_reference), proof.signature
        )

    async def refund(self, instruction: RefundInstruction) -> GatewayRefund:
        self.refund_calls.append(instruction)
        if self.fail_refunds:
            raise PaymentGatewayError("Payment provider unreachable")
        existing = self.refunds.get(instruction.idempotency_key)
        if existing is not None:
            return existing
        refund = GatewayRefund(
            gateway_refund_id=f"rfnd_{uuid.uuid4().hex[:14]}",
            amount=money(instruction.amount),
        )
        self.refunds[instruction.idempotency_key] = refund
        logger.debug(
            "Fake gateway refund issued",
            extra={
                "idempotency_key": instruction.idempotency_key,
                "gateway_refund_id": refund.gateway_refund_id,
            },
        )
        return refund
