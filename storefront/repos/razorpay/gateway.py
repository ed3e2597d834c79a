"""
Razorpay implementation of PaymentGateway over its REST API.

Intents are Razorpay orders created against the checkout reference (the
`receipt`). Amounts cross the wire in paise. A success callback is
authentic when its signature is the hex HMAC-SHA256, keyed with the API
secret, of "<razorpay order id>|<razorpay payment id>".
"""

import hashlib
import hmac
import logging
import os
from decimal import Decimal
from typing import Any, Dict, Optional

import httpx

from storefront.config import payment_currency, razorpay_base_url
from storefront.domain import (
    GatewayRefund,
    PaymentIntent,
    PaymentProof,
    RefundInstruction,
    money,
)
from storefront.exceptions import PaymentGatewayError
from storefront.repositories import PaymentGateway

logger = logging.getLogger(__name__)

PAISE_PER_RUPEE = Decimal("100")


def to_paise(amount: Decimal) -> int:
    return int(money(amount) * PAISE_PER_RUPEE)


def from_paise(paise: int) -> Decimal:
    return money(Decimal(paise) / PAISE_PER_RUPEE)


def payment_signature(key_secret: str, intent_id: str, payment_id: str) -> str:
    """Signature Razorpay attaches to a successful checkout callback."""
    return hmac.new(
        key_secret.encode("utf-8"),
        f"{intent_id}|{payment_id}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class RazorpayPaymentGateway(PaymentGateway):
    """PaymentGateway talking to Razorpay with httpx."""

    def __init__(
        self,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        currency: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._key_id = key_id or os.environ.get("RAZORPAY_KEY_ID", "")
        self._key_secret = key_secret or os.environ.get(
            "RAZORPAY_KEY_SECRET", ""
        )
        self._base_url = (base_url or razorpay_base_url()).rstrip("/")
        self._currency = currency or payment_currency()
        self._timeout = timeout
        self._transport = transport

        logger.debug(
            "Initializing RazorpayPaymentGateway",
            extra={"base_url": self._base_url, "currency": self._currency},
        )

    async def create_intent(
        self, amount: Decimal, reference: str
    ) -> PaymentIntent:
        body = await self._post(
            "/orders",
            {
                "amount": to_paise(amount),
                "currency": self._currency,
                "receipt": reference,
            },
        )
        intent = PaymentIntent(
            intent_id=body["id"],
            reference=reference,
            amount=from_paise(body.get("amount", to_paise(amount))),
            currency=body.get("currency", self._currency),
        )
        logger.info(
            "Razorpay order created",
            extra={
                "reference": reference,
                "intent_id": intent.intent_id,
                "amount": str(intent.amount),
            },
        )
        return intent

    async def verify(
        self, intent_id: str, proof: PaymentProof, order_id: str
    ) -> bool:
        if proof.intent_id != intent_id:
            logger.warning(
                "Payment proof is for a different intent",
                extra={
                    "order_id": order_id,
                    "intent_id": intent_id,
                    "proof_intent_id": proof.intent_id,
                },
            )
            return False

        expected = payment_signature(
            self._key_secret, intent_id, proof.payment_reference
        )
        verified = hmac.compare_digest(expected, proof.signature)
        logger.info(
            "Razorpay signature checked",
            extra={
                "order_id": order_id,
                "intent_id": intent_id,
                "payment_reference": proof.payment_reference,
                "verified": verified,
            },
        )
        return verified

    async def refund(self, instruction: RefundInstruction) -> GatewayRefund:
        body = await self._post(
            f"/payments/{instruction.payment_reference}/refund",
            {
                "amount": to_paise(instruction.amount),
                "receipt": instruction.idempotency_key,
                "notes": instruction.notes,
            },
        )
        return GatewayRefund(
            gateway_refund_id=body["id"],
            amount=from_paise(body.get("amount", to_paise(instruction.amount))),
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(
                auth=(self._key_id, self._key_secret),
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Razorpay request failed",
                extra={
                    "path": path,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
            )
            raise PaymentGatewayError(
                f"Payment provider unreachable: {type(e).__name__}"
            ) from e

        if response.status_code >= 400:
            logger.error(
                "Razorpay rejected request",
                extra={
                    "path": path,
                    "status_code": response.status_code,
                    "body": response.text[:500],
                },
            )
            raise PaymentGatewayError(
                f"Payment provider returned {response.status_code}"
            )

        return response.json()
