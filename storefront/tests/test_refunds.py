"""
Tests for the refund decision table and once-only refund issuance.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.domain import (
    CancellationStatus,
    DeliveryPhase,
    OrderStatus,
    PaymentMethod,
    PaymentProof,
    ReconciliationAction,
    ReconciliationStatus,
    Refund,
    RefundStatus,
)
from storefront.exceptions import (
    CancellationNotFound,
    InvalidStatusTransition,
    RefundNotAllowed,
    RefundNotFound,
    RefundNotRetryable,
)
from storefront.tests.factories import (
    at,
    minimal_cart,
    minimal_order,
    minimal_request,
)
from storefront.use_cases.refunds import (
    DISPATCH_LEASE,
    NO_PAYMENT_COLLECTED,
    PAYMENT_UNRECONCILED,
    RefundDispatcher,
    refund_required,
)


@pytest.mark.parametrize(
    "phase,method,expected",
    [
        (DeliveryPhase.POST_DELIVERY, PaymentMethod.COD, True),
        (DeliveryPhase.POST_DELIVERY, PaymentMethod.UPI, True),
        (DeliveryPhase.PRE_DELIVERY, PaymentMethod.UPI, True),
        (DeliveryPhase.PRE_DELIVERY, PaymentMethod.COD, False),
    ],
)
def test_refund_decision_table(phase, method, expected):
    assert refund_required(phase, method) is expected


async def approved(repos, order, phase, upi_id=None):
    """Store `order` and an approved request against it."""
    await repos.orders.save_order(order)
    request = minimal_request(
        order_id=order.order_id,
        status=CancellationStatus.APPROVED,
        delivery_phase=phase,
        upi_id=upi_id,
    )
    await repos.requests.insert_pending(request)
    return request


class TestMaybeRefund:
    @pytest.mark.asyncio
    async def test_delivered_cod_order_is_queued_for_manual_payout(
        self, repos, refunds
    ):
        order = minimal_order(
            status=OrderStatus.CANCELLED, delivered_at=at(48)
        )
        request = await approved(
            repos, order, DeliveryPhase.POST_DELIVERY, "asha.rao@okaxis"
        )

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is True
        assert outcome.refund.status is RefundStatus.INITIATED
        assert outcome.refund.refund_amount == Decimal("2499.00")
        assert outcome.refund.upi_id == "asha.rao@okaxis"
        assert outcome.refund.gateway_refund_id is None
        assert repos.gateway.refund_calls == []

    @pytest.mark.asyncio
    async def test_delivered_upi_order_is_refunded_through_gateway(
        self, repos, refunds
    ):
        order = minimal_order(
            status=OrderStatus.CANCELLED,
            payment_method=PaymentMethod.UPI,
            delivered_at=at(48),
        )
        request = await approved(
            repos, order, DeliveryPhase.POST_DELIVERY, "asha.rao@okaxis"
        )

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is True
        assert outcome.refund.gateway_refund_id is not None
        assert outcome.refund.attempts == 1
        [call] = repos.gateway.refund_calls
        assert call.payment_reference == "pay_ord-1"
        assert call.amount == Decimal("2499.00")

    @pytest.mark.asyncio
    async def test_undelivered_upi_order_is_refunded(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is True
        assert outcome.refund.status is RefundStatus.INITIATED
        [call] = repos.gateway.refund_calls
        assert call.idempotency_key == request.request_id

    @pytest.mark.asyncio
    async def test_undelivered_cod_order_gets_no_refund(self, repos, refunds):
        order = minimal_order(status=OrderStatus.CANCELLED)
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is False
        assert outcome.refund is None
        assert outcome.reason == NO_PAYMENT_COLLECTED
        assert await repos.refunds.list_refunds() == []

    @pytest.mark.asyncio
    async def test_pending_request_is_not_refunded(self, repos, refunds):
        order = minimal_order(payment_method=PaymentMethod.UPI)
        request = minimal_request(order_id=order.order_id)

        with pytest.raises(RefundNotAllowed):
            await refunds.maybe_refund(order, request)

    @pytest.mark.asyncio
    async def test_repeat_calls_return_the_same_refund(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        first = await refunds.maybe_refund(order, request)
        second = await refunds.maybe_refund(order, request)

        assert first.refund.refund_id == second.refund.refund_id
        assert len(repos.gateway.refund_calls) == 1

    @pytest.mark.asyncio
    async def test_concurrent_dispatch_issues_one_refund(
        self, repos, refunds
    ):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        outcomes = await asyncio.gather(
            *[refunds.maybe_refund(order, request) for _ in range(4)]
        )

        assert len({o.refund.refund_id for o in outcomes}) == 1
        assert len(await repos.refunds.list_refunds()) == 1
        assert len(repos.gateway.refund_calls) == 1

    @pytest.mark.asyncio
    async def test_gateway_failure_records_failed_refund(
        self, repos, refunds
    ):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        repos.gateway.fail_refunds = True

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is False
        assert outcome.refund.status is RefundStatus.FAILED
        assert outcome.refund.attempts == 1
        assert "unreachable" in outcome.reason


async def flagged_checkout(repos, checkout):
    """A UPI order whose payment proof failed verification."""
    result = await checkout.place_order(
        "user-1", minimal_cart(), "addr-1", PaymentMethod.UPI, now=at(0)
    )
    proof = PaymentProof(
        intent_id=result.intent.intent_id,
        payment_reference="pay_123",
        signature="0" * 64,
    )
    return await checkout.commit_payment(
        result.session.reference, "user-1", proof, now=at(1)
    )


class TestUnreconciledPayment:
    @pytest.mark.asyncio
    async def test_flagged_order_is_not_refunded(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        ).model_copy(
            update={
                "reconciliation_status": (
                    ReconciliationStatus.NEEDS_RECONCILIATION
                )
            }
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        outcome = await refunds.maybe_refund(order, request)

        assert outcome.initiated is False
        assert outcome.refund is None
        assert outcome.reason == PAYMENT_UNRECONCILED
        assert repos.gateway.refund_calls == []
        assert await repos.refunds.get_by_request(request.request_id) is None

    @pytest.mark.asyncio
    async def test_approval_holds_the_refund(
        self, repos, checkout, cancellations
    ):
        order = await flagged_checkout(repos, checkout)
        request = await cancellations.create_request(
            order.order_id, "user-1", "Ordered the wrong size by mistake"
        )

        decided = await cancellations.decide(
            request.request_id, CancellationStatus.APPROVED, "admin-1"
        )

        assert decided.refund.initiated is False
        assert decided.refund.reason == PAYMENT_UNRECONCILED
        assert repos.gateway.refund_calls == []
        cancelled = await repos.orders.get_order(order.order_id)
        assert cancelled.status is OrderStatus.CANCELLED
        assert cancelled.needs_reconciliation

    @pytest.mark.asyncio
    async def test_confirming_the_payment_releases_the_refund(
        self, repos, checkout, cancellations, reconciliation
    ):
        order = await flagged_checkout(repos, checkout)
        request = await cancellations.create_request(
            order.order_id, "user-1", "Ordered the wrong size by mistake"
        )
        await cancellations.approve(request.request_id, "admin-1")
        [case] = await repos.cases.list_cases(False)

        await reconciliation.resolve_case(
            case.case_id, ReconciliationAction.CONFIRM_PAYMENT, "ops-1"
        )

        refund = await repos.refunds.get_by_request(request.request_id)
        assert refund.status is RefundStatus.INITIATED
        [call] = repos.gateway.refund_calls
        assert call.payment_reference == "pay_123"
        settled = await repos.orders.get_order(order.order_id)
        assert settled.status is OrderStatus.CANCELLED
        assert settled.reconciliation_status is ReconciliationStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_voiding_the_payment_refunds_nothing(
        self, repos, checkout, cancellations, reconciliation
    ):
        order = await flagged_checkout(repos, checkout)
        request = await cancellations.create_request(
            order.order_id, "user-1", "Ordered the wrong size by mistake"
        )
        await cancellations.approve(request.request_id, "admin-1")
        [case] = await repos.cases.list_cases(False)

        await reconciliation.resolve_case(
            case.case_id, ReconciliationAction.VOID_ORDER, "ops-1", "fraud"
        )

        assert await repos.refunds.get_by_request(request.request_id) is None
        assert repos.gateway.refund_calls == []
        voided = await repos.orders.get_order(order.order_id)
        assert voided.status is OrderStatus.CANCELLED
        assert voided.reconciliation_status is ReconciliationStatus.RESOLVED


async def interrupted(repos, updated_at):
    """An approved UPI cancellation whose refund was left DISPATCHING."""
    order = minimal_order(
        status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
    )
    request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
    refund = await repos.refunds.claim(
        Refund(
            refund_id="rfd-1",
            request_id=request.request_id,
            order_id=order.order_id,
            refund_amount=order.total_amount,
            payment_reference=order.payment_reference,
            status=RefundStatus.DISPATCHING,
            attempts=1,
            initiated_at=updated_at,
            updated_at=updated_at,
        )
    )
    return request, refund


class TestRetryRefund:
    @pytest.mark.asyncio
    async def test_failed_refund_can_be_retried(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        repos.gateway.fail_refunds = True
        failed = await refunds.maybe_refund(order, request)
        repos.gateway.fail_refunds = False

        outcome = await refunds.retry_refund(request.request_id)

        assert outcome.initiated is True
        assert outcome.refund.refund_id == failed.refund.refund_id
        assert outcome.refund.failure_reason is None
        assert outcome.refund.attempts == 2
        keys = {c.idempotency_key for c in repos.gateway.refund_calls}
        assert keys == {request.request_id}

    @pytest.mark.asyncio
    async def test_initiated_refund_is_not_retried(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        await refunds.maybe_refund(order, request)

        with pytest.raises(RefundNotRetryable):
            await refunds.retry_refund(request.request_id)

    @pytest.mark.asyncio
    async def test_missing_refund(self, refunds):
        with pytest.raises(RefundNotFound):
            await refunds.retry_refund("req-missing")

    @pytest.mark.asyncio
    async def test_interrupted_dispatch_is_reclaimed(self, repos, refunds):
        request, _ = await interrupted(repos, at(2))

        outcome = await refunds.retry_refund(request.request_id)

        assert outcome.initiated is True
        assert outcome.refund.attempts == 2
        assert len(repos.gateway.refund_calls) == 1

    @pytest.mark.asyncio
    async def test_dispatch_in_flight_is_left_alone(self, repos):
        request, _ = await interrupted(repos, at(2))
        refunds = RefundDispatcher(
            order_repo=repos.orders,
            request_repo=repos.requests,
            refund_repo=repos.refunds,
            gateway=repos.gateway,
            clock=lambda: at(2) + DISPATCH_LEASE - timedelta(seconds=1),
        )

        with pytest.raises(RefundNotRetryable):
            await refunds.retry_refund(request.request_id)

        assert repos.gateway.refund_calls == []
        stored = await repos.refunds.get_by_request(request.request_id)
        assert stored.attempts == 1

    @pytest.mark.asyncio
    async def test_taken_over_dispatch_cannot_write_back(self, repos):
        _, refund = await interrupted(repos, at(2))
        takeover = refund.model_copy(update={"attempts": 2})
        assert await repos.refunds.update_dispatching(takeover, 1) is not None

        stale = refund.model_copy(update={"status": RefundStatus.FAILED})

        assert await repos.refunds.update_dispatching(stale, 1) is None
        stored = await repos.refunds.get_by_request(refund.request_id)
        assert stored.status is RefundStatus.DISPATCHING
        assert stored.attempts == 2

    @pytest.mark.asyncio
    async def test_concurrent_retries_reach_the_gateway_once(
        self, repos, refunds
    ):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        repos.gateway.fail_refunds = True
        await refunds.maybe_refund(order, request)
        repos.gateway.fail_refunds = False
        issue = repos.gateway.refund

        async def slow_refund(instruction):
            await asyncio.sleep(0)
            return await issue(instruction)

        repos.gateway.refund = slow_refund

        results = await asyncio.gather(
            refunds.retry_refund(request.request_id),
            refunds.retry_refund(request.request_id),
            return_exceptions=True,
        )

        refused = [r for r in results if isinstance(r, RefundNotRetryable)]
        issued = [r for r in results if not isinstance(r, Exception)]
        assert len(refused) == 1
        assert len(issued) == 1
        assert issued[0].refund.attempts == 2
        # The failed first attempt plus a single retry
        assert len(repos.gateway.refund_calls) == 2


class TestDispatchForRequest:
    @pytest.mark.asyncio
    async def test_issues_a_refund_when_none_exists(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)

        outcome = await refunds.dispatch_for_request(request.request_id)

        assert outcome.initiated is True

    @pytest.mark.asyncio
    async def test_retries_a_failed_refund(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        repos.gateway.fail_refunds = True
        await refunds.dispatch_for_request(request.request_id)
        repos.gateway.fail_refunds = False

        outcome = await refunds.dispatch_for_request(request.request_id)

        assert outcome.refund.status is RefundStatus.INITIATED
        assert len(repos.gateway.refund_calls) == 2

    @pytest.mark.asyncio
    async def test_reports_a_settled_refund(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        await refunds.dispatch_for_request(request.request_id)

        outcome = await refunds.dispatch_for_request(request.request_id)

        assert outcome.initiated is True
        assert len(repos.gateway.refund_calls) == 1

    @pytest.mark.asyncio
    async def test_unknown_request(self, refunds):
        with pytest.raises(CancellationNotFound):
            await refunds.dispatch_for_request("req-missing")


class TestMarkCompleted:
    @pytest.mark.asyncio
    async def test_initiated_refund_is_completed(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        await refunds.maybe_refund(order, request)

        refund = await refunds.mark_completed(
            order.order_id, "admin-1", now=at(72)
        )

        assert refund.status is RefundStatus.REFUND_COMPLETED
        assert refund.completed_at == at(72)
        assert refund.completed_by == "admin-1"

        # Completing twice is a no-op
        again = await refunds.mark_completed(order.order_id, "admin-2")
        assert again.completed_by == "admin-1"

    @pytest.mark.asyncio
    async def test_failed_refund_cannot_be_completed(self, repos, refunds):
        order = minimal_order(
            status=OrderStatus.CANCELLED, payment_method=PaymentMethod.UPI
        )
        request = await approved(repos, order, DeliveryPhase.PRE_DELIVERY)
        repos.gateway.fail_refunds = True
        await refunds.maybe_refund(order, request)

        with pytest.raises(InvalidStatusTransition):
            await refunds.mark_completed(order.order_id, "admin-1")

    @pytest.mark.asyncio
    async def test_order_without_refund(self, refunds):
        with pytest.raises(RefundNotFound):
            await refunds.mark_completed("ord-missing", "admin-1")


@pytest.mark.asyncio
async def test_list_refunds_by_status(repos, refunds):
    ok = minimal_order(
        order_id="ord-1",
        status=OrderStatus.CANCELLED,
        payment_method=PaymentMethod.UPI,
    )
    ok_request = await approved(repos, ok, DeliveryPhase.PRE_DELIVERY)
    await refunds.maybe_refund(ok, ok_request)

    broken = minimal_order(
        order_id="ord-2",
        status=OrderStatus.CANCELLED,
        payment_method=PaymentMethod.UPI,
    )
    await repos.orders.save_order(broken)
    broken_request = minimal_request(
        request_id="req-2",
        order_id="ord-2",
        status=CancellationStatus.APPROVED,
    )
    await repos.requests.insert_pending(broken_request)
    repos.gateway.fail_refunds = True
    await refunds.maybe_refund(broken, broken_request)

    failed = await refunds.list_refunds(RefundStatus.FAILED)

    assert [r.order_id for r in failed] == ["ord-2"]
    assert len(await refunds.list_refunds()) == 2
