"""
Tests for checkout: pricing, intents, commit and abandonment.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from storefront.domain import (
    CartItem,
    CheckoutStatus,
    OrderStatus,
    PaymentMethod,
    PaymentProof,
    ReconciliationAction,
    ReconciliationKind,
    ReconciliationStatus,
)
from storefront.exceptions import (
    CheckoutClosed,
    CheckoutSessionNotFound,
    EmptyCart,
    MissingAddress,
    PaymentGatewayError,
    ProductNotFound,
    ReconciliationRequired,
)
from storefront.tests.factories import (
    at,
    minimal_address,
    minimal_cart,
    minimal_product,
)
from storefront.use_cases.reconciliation import CHECKOUT_ACTOR


async def open_upi_checkout(checkout, user_id="user-1"):
    result = await checkout.place_order(
        user_id, minimal_cart(user_id), "addr-1", PaymentMethod.UPI, now=at(0)
    )
    return result.session, result.intent


class TestPricing:
    @pytest.mark.asyncio
    async def test_discount_and_tax_are_applied_per_line(
        self, repos, checkout
    ):
        repos.catalog.add(
            minimal_product(
                "prod-2", price="1000.00", discount_percent="10", tax_rate="0.18"
            )
        )

        priced = await checkout.price_cart(
            minimal_cart(items=[CartItem(product_id="prod-2", quantity=2)])
        )

        assert priced.items[0].unit_price == Decimal("900.00")
        assert priced.discount_amount == Decimal("200.00")
        assert priced.tax_amount == Decimal("324.00")
        assert priced.total_amount == Decimal("2124.00")

    @pytest.mark.asyncio
    async def test_amounts_round_half_up(self, repos, checkout):
        repos.catalog.add(
            minimal_product("prod-3", price="10.05", discount_percent="50")
        )

        priced = await checkout.price_cart(
            minimal_cart(items=[CartItem(product_id="prod-3", quantity=1)])
        )

        assert priced.items[0].unit_price == Decimal("5.03")

    @pytest.mark.asyncio
    async def test_unknown_product(self, checkout):
        with pytest.raises(ProductNotFound):
            await checkout.price_cart(
                minimal_cart(items=[CartItem(product_id="nope", quantity=1)])
            )


class TestPlaceOrder:
    @pytest.mark.asyncio
    async def test_cod_order_is_recorded_immediately(self, repos, checkout):
        result = await checkout.place_order(
            "user-1", minimal_cart(), "addr-1", PaymentMethod.COD, now=at(0)
        )

        assert result.session is None
        assert result.order.status is OrderStatus.PENDING
        assert result.order.total_amount == Decimal("2499.00")
        assert result.order.address.city == "Bengaluru"
        assert await repos.orders.get_order(result.order.order_id) is not None
        assert repos.carts.cleared == ["user-1"]

    @pytest.mark.asyncio
    async def test_upi_checkout_opens_a_session_without_an_order(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)

        assert session.status is CheckoutStatus.OPEN
        assert session.reference.startswith("chk_")
        assert session.amount == Decimal("2499.00")
        assert intent.amount == Decimal("2499.00")
        assert intent.reference == session.reference
        assert await repos.orders.list_orders() == []
        assert repos.carts.cleared == []

    @pytest.mark.asyncio
    async def test_empty_cart(self, checkout):
        with pytest.raises(EmptyCart):
            await checkout.place_order(
                "user-1", minimal_cart(items=[]), "addr-1", PaymentMethod.COD
            )

    @pytest.mark.asyncio
    async def test_address_must_belong_to_the_customer(self, repos, checkout):
        repos.addresses.add(minimal_address("addr-2", user_id="user-2"))

        with pytest.raises(MissingAddress):
            await checkout.place_order(
                "user-1", minimal_cart(), "addr-2", PaymentMethod.COD
            )

    @pytest.mark.asyncio
    async def test_intent_failure_leaves_nothing_behind(
        self, repos, checkout
    ):
        repos.gateway.fail_intents = True

        with pytest.raises(PaymentGatewayError):
            await open_upi_checkout(checkout)

        assert repos.sessions.storage_dict == {}
        assert await repos.orders.list_orders() == []


class TestCommitPayment:
    @pytest.mark.asyncio
    async def test_verified_payment_creates_a_paid_order(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        proof = repos.gateway.proof_for(intent.intent_id, "pay_123")

        order = await checkout.commit_payment(
            session.reference, "user-1", proof, now=at(1)
        )

        assert order.status is OrderStatus.PAID
        assert order.payment_method is PaymentMethod.UPI
        assert order.payment_reference == "pay_123"
        assert order.payment_intent_id == intent.intent_id
        assert order.total_amount == Decimal("2499.00")
        assert order.reconciliation_status is ReconciliationStatus.NONE
        assert repos.carts.cleared == ["user-1"]

        committed = await checkout.get_session(session.reference, "user-1")
        assert committed.status is CheckoutStatus.COMMITTED
        assert committed.order_id == order.order_id

    @pytest.mark.asyncio
    async def test_replayed_callback_yields_one_order(self, repos, checkout):
        session, intent = await open_upi_checkout(checkout)
        proof = repos.gateway.proof_for(intent.intent_id, "pay_123")

        first = await checkout.commit_payment(session.reference, "user-1", proof)
        second = await checkout.commit_payment(
            session.reference, "user-1", proof
        )

        assert first.order_id == second.order_id
        assert len(await repos.orders.list_orders()) == 1
        assert len(repos.gateway.verify_calls) == 1

    @pytest.mark.asyncio
    async def test_different_payment_on_committed_checkout(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        await checkout.commit_payment(
            session.reference,
            "user-1",
            repos.gateway.proof_for(intent.intent_id, "pay_123"),
        )

        with pytest.raises(CheckoutClosed):
            await checkout.commit_payment(
                session.reference,
                "user-1",
                repos.gateway.proof_for(intent.intent_id, "pay_456"),
            )

    @pytest.mark.asyncio
    async def test_forged_signature_flags_the_order(self, repos, checkout):
        session, intent = await open_upi_checkout(checkout)
        forged = PaymentProof(
            intent_id=intent.intent_id,
            payment_reference="pay_123",
            signature="0" * 64,
        )

        order = await checkout.commit_payment(
            session.reference, "user-1", forged, now=at(1)
        )

        assert order.status is OrderStatus.PENDING
        assert order.reconciliation_status is (
            ReconciliationStatus.NEEDS_RECONCILIATION
        )
        [case] = await repos.cases.list_cases(False)
        assert case.kind is ReconciliationKind.VERIFICATION_FAILED
        assert case.order_id == order.order_id
        assert case.payment_reference == "pay_123"
        assert case.reference == session.reference

    @pytest.mark.asyncio
    async def test_unreachable_verifier_keeps_the_order(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        repos.gateway.fail_verification = True

        order = await checkout.commit_payment(
            session.reference,
            "user-1",
            repos.gateway.proof_for(intent.intent_id, "pay_123"),
        )

        assert order.status is OrderStatus.PENDING
        assert order.needs_reconciliation
        assert await repos.orders.get_order(order.order_id) is not None
        [case] = await repos.cases.list_cases(False)
        assert "PaymentGatewayError" in case.detail

    @pytest.mark.asyncio
    async def test_failed_order_write_opens_a_case(self, repos, checkout):
        session, intent = await open_upi_checkout(checkout)
        repos.orders.save_order = AsyncMock(
            side_effect=RuntimeError("connection reset")
        )

        with pytest.raises(ReconciliationRequired) as excinfo:
            await checkout.commit_payment(
                session.reference,
                "user-1",
                repos.gateway.proof_for(intent.intent_id, "pay_123"),
            )

        [case] = await repos.cases.list_cases(False)
        assert case.kind is ReconciliationKind.ORDER_CREATION_FAILED
        assert excinfo.value.case_id == case.case_id
        assert excinfo.value.order_id == case.order_id
        assert case.payment_reference == "pay_123"
        assert "connection reset" in case.detail
        assert repos.gateway.verify_calls == []
        assert repos.carts.cleared == []

    @pytest.mark.asyncio
    async def test_retried_commit_closes_the_creation_case(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        proof = repos.gateway.proof_for(intent.intent_id, "pay_123")
        real_save = repos.orders.save_order
        repos.orders.save_order = AsyncMock(side_effect=RuntimeError("down"))
        with pytest.raises(ReconciliationRequired) as excinfo:
            await checkout.commit_payment(
                session.reference, "user-1", proof, now=at(1)
            )
        repos.orders.save_order = real_save

        order = await checkout.commit_payment(
            session.reference, "user-1", proof, now=at(2)
        )

        assert order.status is OrderStatus.PAID
        assert await repos.cases.list_cases(False) == []
        case = await repos.cases.get_case(excinfo.value.case_id)
        assert case.resolution is ReconciliationAction.ORDER_RECORDED
        assert case.resolved_by == CHECKOUT_ACTOR
        assert case.resolved_at == at(2)

    @pytest.mark.asyncio
    async def test_repeated_write_failures_share_one_case(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        proof = repos.gateway.proof_for(intent.intent_id, "pay_123")
        repos.orders.save_order = AsyncMock(side_effect=RuntimeError("down"))

        case_ids = set()
        for _ in range(3):
            with pytest.raises(ReconciliationRequired) as excinfo:
                await checkout.commit_payment(
                    session.reference, "user-1", proof
                )
            case_ids.add(excinfo.value.case_id)

        [case] = await repos.cases.list_cases()
        assert case_ids == {case.case_id}

    @pytest.mark.asyncio
    async def test_cart_service_failure_does_not_fail_checkout(
        self, repos, checkout
    ):
        repos.carts.fail_clears = True
        session, intent = await open_upi_checkout(checkout)

        order = await checkout.commit_payment(
            session.reference,
            "user-1",
            repos.gateway.proof_for(intent.intent_id, "pay_123"),
        )

        assert order.status is OrderStatus.PAID

    @pytest.mark.asyncio
    async def test_payment_reference_commits_one_checkout(
        self, repos, checkout
    ):
        first, first_intent = await open_upi_checkout(checkout)
        second, _ = await open_upi_checkout(checkout)
        proof = repos.gateway.proof_for(first_intent.intent_id, "pay_123")
        await checkout.commit_payment(first.reference, "user-1", proof)

        with pytest.raises(CheckoutClosed):
            await checkout.commit_payment(second.reference, "user-1", proof)

    @pytest.mark.asyncio
    async def test_someone_elses_checkout(self, repos, checkout):
        session, intent = await open_upi_checkout(checkout)

        with pytest.raises(CheckoutSessionNotFound):
            await checkout.commit_payment(
                session.reference,
                "user-2",
                repos.gateway.proof_for(intent.intent_id, "pay_123"),
            )


class TestAbandon:
    @pytest.mark.asyncio
    async def test_abandoned_checkout_writes_no_order(self, repos, checkout):
        session, _ = await open_upi_checkout(checkout)

        abandoned = await checkout.abandon_checkout(
            session.reference, "user-1", now=at(1)
        )

        assert abandoned.status is CheckoutStatus.ABANDONED
        assert await repos.orders.list_orders() == []
        assert repos.carts.cleared == []

        # Abandoning twice is a no-op
        again = await checkout.abandon_checkout(session.reference, "user-1")
        assert again.status is CheckoutStatus.ABANDONED

    @pytest.mark.asyncio
    async def test_abandoned_checkout_cannot_be_committed(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        await checkout.abandon_checkout(session.reference, "user-1")

        with pytest.raises(CheckoutClosed):
            await checkout.commit_payment(
                session.reference,
                "user-1",
                repos.gateway.proof_for(intent.intent_id, "pay_123"),
            )

    @pytest.mark.asyncio
    async def test_committed_checkout_cannot_be_abandoned(
        self, repos, checkout
    ):
        session, intent = await open_upi_checkout(checkout)
        await checkout.commit_payment(
            session.reference,
            "user-1",
            repos.gateway.proof_for(intent.intent_id, "pay_123"),
        )

        with pytest.raises(CheckoutClosed):
            await checkout.abandon_checkout(session.reference, "user-1")
