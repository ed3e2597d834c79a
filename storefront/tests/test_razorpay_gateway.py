"""
Tests for the Razorpay gateway adapter against a mocked HTTP transport.
"""

import json
from decimal import Decimal

import httpx
import pytest

from storefront.domain import PaymentProof, RefundInstruction
from storefront.exceptions import PaymentGatewayError
from storefront.repos.razorpay.gateway import (
    RazorpayPaymentGateway,
    from_paise,
    payment_signature,
    to_paise,
)

SECRET = "rzp-secret"


def gateway_with(handler) -> RazorpayPaymentGateway:
    return RazorpayPaymentGateway(
        key_id="rzp_test_key",
        key_secret=SECRET,
        base_url="https://rzp.test/v1/",
        currency="INR",
        transport=httpx.MockTransport(handler),
    )


def test_paise_conversion():
    assert to_paise(Decimal("2499.00")) == 249900
    assert to_paise(Decimal("0.015")) == 2
    assert from_paise(249950) == Decimal("2499.50")


@pytest.mark.asyncio
async def test_create_intent_posts_amount_in_paise():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"id": "order_abc", "amount": 249900, "currency": "INR"},
        )

    intent = await gateway_with(handler).create_intent(
        Decimal("2499.00"), "chk_1"
    )

    assert intent.intent_id == "order_abc"
    assert intent.amount == Decimal("2499.00")
    assert intent.reference == "chk_1"
    [request] = seen
    assert request.url == httpx.URL("https://rzp.test/v1/orders")
    assert request.headers["authorization"].startswith("Basic ")
    assert json.loads(request.content) == {
        "amount": 249900,
        "currency": "INR",
        "receipt": "chk_1",
    }


@pytest.mark.asyncio
async def test_refund_uses_request_id_as_receipt():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"id": "rfnd_1", "amount": 249900})

    refund = await gateway_with(handler).refund(
        RefundInstruction(
            idempotency_key="req-1",
            payment_reference="pay_123",
            amount=Decimal("2499.00"),
            notes={"order_id": "ord-1"},
        )
    )

    assert refund.gateway_refund_id == "rfnd_1"
    assert refund.amount == Decimal("2499.00")
    [request] = seen
    assert request.url.path == "/v1/payments/pay_123/refund"
    body = json.loads(request.content)
    assert body["receipt"] == "req-1"
    assert body["notes"] == {"order_id": "ord-1"}


@pytest.mark.asyncio
async def test_provider_error_status_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"code": "BAD_REQUEST"}})

    with pytest.raises(PaymentGatewayError) as excinfo:
        await gateway_with(handler).create_intent(Decimal("10.00"), "chk_1")
    assert "400" in excinfo.value.message


@pytest.mark.asyncio
async def test_transport_failure_raises_gateway_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentGatewayError):
        await gateway_with(handler).create_intent(Decimal("10.00"), "chk_1")


class TestVerify:
    def refuse_http(self, request: httpx.Request) -> httpx.Response:
        raise AssertionError("verification must not call the provider")

    @pytest.mark.asyncio
    async def test_valid_signature(self):
        proof = PaymentProof(
            intent_id="order_abc",
            payment_reference="pay_123",
            signature=payment_signature(SECRET, "order_abc", "pay_123"),
        )

        verified = await gateway_with(self.refuse_http).verify(
            "order_abc", proof, "ord-1"
        )

        assert verified is True

    @pytest.mark.asyncio
    async def test_signature_for_another_payment(self):
        proof = PaymentProof(
            intent_id="order_abc",
            payment_reference="pay_123",
            signature=payment_signature(SECRET, "order_abc", "pay_999"),
        )

        verified = await gateway_with(self.refuse_http).verify(
            "order_abc", proof, "ord-1"
        )

        assert verified is False

    @pytest.mark.asyncio
    async def test_proof_for_another_intent(self):
        proof = PaymentProof(
            intent_id="order_other",
            payment_reference="pay_123",
            signature=payment_signature(SECRET, "order_other", "pay_123"),
        )

        verified = await gateway_with(self.refuse_http).verify(
            "order_abc", proof, "ord-1"
        )

        assert verified is False
