"""
Tests for the order ledger: ownership, status progression and
compare-and-swap writes.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from hypothesis import given
from hypothesis import strategies as st

from storefront.domain import (
    OrderStatus,
    ReconciliationStatus,
    is_legal_transition,
)
from storefront.exceptions import InvalidStatusTransition, OrderNotFound
from storefront.tests.factories import at, minimal_order
from storefront.use_cases.orders import (
    MAX_WRITE_ATTEMPTS,
    OrderLedgerUseCase,
    apply_status,
)

statuses = st.sampled_from(list(OrderStatus))


@given(current=statuses, new=statuses)
def test_cancelled_is_terminal_and_never_repeated(current, new):
    if current is OrderStatus.CANCELLED:
        assert not is_legal_transition(current, new)
    if current is new:
        assert not is_legal_transition(current, new)
    if new is OrderStatus.CANCELLED and current is not OrderStatus.CANCELLED:
        assert is_legal_transition(current, new)


def test_skipping_to_delivered_stamps_shipped_at():
    order = minimal_order(status=OrderStatus.PENDING)

    delivered = apply_status(order, OrderStatus.DELIVERED, at(5))

    assert delivered.shipped_at == at(5)
    assert delivered.delivered_at == at(5)


class TestReads:
    @pytest.mark.asyncio
    async def test_owner_sees_the_order(self, ledger):
        await ledger.create(minimal_order())

        order = await ledger.get_order("ord-1", "user-1")

        assert order.order_id == "ord-1"

    @pytest.mark.asyncio
    async def test_other_customers_get_not_found(self, ledger):
        await ledger.create(minimal_order())

        with pytest.raises(OrderNotFound):
            await ledger.get_order("ord-1", "user-2")

    @pytest.mark.asyncio
    async def test_create_is_idempotent(self, ledger):
        first = await ledger.create(minimal_order())
        again = await ledger.create(
            minimal_order(status=OrderStatus.DELIVERED)
        )

        assert again.status is first.status

    @pytest.mark.asyncio
    async def test_list_user_orders_newest_first(self, ledger):
        await ledger.create(minimal_order("ord-1", created_at=at(0)))
        await ledger.create(minimal_order("ord-2", created_at=at(1)))
        await ledger.create(minimal_order("ord-3", user_id="user-2"))

        orders = await ledger.list_user_orders("user-1")

        assert [o.order_id for o in orders] == ["ord-2", "ord-1"]

    @pytest.mark.asyncio
    async def test_list_orders_by_status(self, ledger):
        await ledger.create(minimal_order("ord-1"))
        await ledger.create(minimal_order("ord-2", status=OrderStatus.PAID))

        paid = await ledger.list_orders(OrderStatus.PAID)

        assert [o.order_id for o in paid] == ["ord-2"]


class TestAdvanceStatus:
    @pytest.mark.asyncio
    async def test_forward_moves_stamp_timestamps(self, ledger):
        await ledger.create(minimal_order(status=OrderStatus.PAID))

        shipped = await ledger.advance_status(
            "ord-1", OrderStatus.SHIPPED, now=at(24)
        )
        delivered = await ledger.advance_status(
            "ord-1", OrderStatus.DELIVERED, now=at(48)
        )

        assert shipped.shipped_at == at(24)
        assert delivered.shipped_at == at(24)
        assert delivered.delivered_at == at(48)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "current,new",
        [
            (OrderStatus.DELIVERED, OrderStatus.SHIPPED),
            (OrderStatus.PAID, OrderStatus.PAID),
            (OrderStatus.CANCELLED, OrderStatus.PAID),
            (OrderStatus.CANCELLED, OrderStatus.CANCELLED),
        ],
    )
    async def test_illegal_moves_are_refused(self, ledger, current, new):
        await ledger.create(minimal_order(status=current))

        with pytest.raises(InvalidStatusTransition):
            await ledger.advance_status("ord-1", new)

        assert (await ledger.get_order("ord-1")).status is current

    @pytest.mark.asyncio
    async def test_unknown_order(self, ledger):
        with pytest.raises(OrderNotFound):
            await ledger.advance_status("ord-missing", OrderStatus.PAID)

    @pytest.mark.asyncio
    async def test_concurrent_changes_apply_once(self, ledger):
        await ledger.create(minimal_order(status=OrderStatus.PAID))

        results = await asyncio.gather(
            ledger.advance_status("ord-1", OrderStatus.SHIPPED),
            ledger.advance_status("ord-1", OrderStatus.SHIPPED),
            return_exceptions=True,
        )

        shipped = [r for r in results if not isinstance(r, Exception)]
        refused = [
            r for r in results if isinstance(r, InvalidStatusTransition)
        ]
        assert len(shipped) == 1
        assert len(refused) == 1


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_stamps_cancelled_at(self, ledger):
        await ledger.create(minimal_order(status=OrderStatus.PAID))

        cancelled = await ledger.cancel("ord-1", now=at(3))

        assert cancelled.status is OrderStatus.CANCELLED
        assert cancelled.cancelled_at == at(3)

    @pytest.mark.asyncio
    async def test_cancel_twice_keeps_the_first_timestamp(self, ledger):
        await ledger.create(minimal_order())
        await ledger.cancel("ord-1", now=at(3))

        again = await ledger.cancel("ord-1", now=at(4))

        assert again.cancelled_at == at(3)


class TestReconciliationFlags:
    @pytest.mark.asyncio
    async def test_flag_then_clear_on_payment(self, ledger):
        await ledger.create(minimal_order())
        flagged = await ledger.flag_for_reconciliation("ord-1", "bad proof")

        paid = await ledger.mark_paid(
            "ord-1", clear_reconciliation=True, note="checked by hand"
        )

        assert flagged.reconciliation_status is (
            ReconciliationStatus.NEEDS_RECONCILIATION
        )
        assert paid.status is OrderStatus.PAID
        assert paid.reconciliation_status is ReconciliationStatus.RESOLVED
        assert paid.reconciliation_note == "checked by hand"

    @pytest.mark.asyncio
    async def test_cancelled_order_cannot_be_paid(self, ledger):
        await ledger.create(minimal_order(status=OrderStatus.CANCELLED))

        with pytest.raises(InvalidStatusTransition):
            await ledger.mark_paid("ord-1")

    @pytest.mark.asyncio
    async def test_void_cancels_and_clears_the_flag(self, ledger):
        await ledger.create(minimal_order())
        await ledger.flag_for_reconciliation("ord-1", "bad proof")

        voided = await ledger.void("ord-1", "refunded off-platform", at(5))

        assert voided.status is OrderStatus.CANCELLED
        assert voided.reconciliation_status is ReconciliationStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_confirming_a_cancelled_order_only_clears_the_flag(
        self, ledger
    ):
        await ledger.create(minimal_order())
        await ledger.flag_for_reconciliation("ord-1", "bad proof")
        await ledger.cancel("ord-1", at(3))

        confirmed = await ledger.mark_paid("ord-1", clear_reconciliation=True)

        assert confirmed.status is OrderStatus.CANCELLED
        assert confirmed.reconciliation_status is (
            ReconciliationStatus.RESOLVED
        )

    @pytest.mark.asyncio
    async def test_verified_order_cannot_be_voided(self, ledger):
        await ledger.create(minimal_order(status=OrderStatus.PAID))

        with pytest.raises(InvalidStatusTransition):
            await ledger.void("ord-1", "looks wrong", at(5))

        assert (await ledger.get_order("ord-1")).status is OrderStatus.PAID


@pytest.mark.asyncio
async def test_write_gives_up_after_repeated_conflicts(repos):
    await repos.orders.save_order(minimal_order(status=OrderStatus.PAID))
    repos.orders.update_order = AsyncMock(return_value=None)
    ledger = OrderLedgerUseCase(repos.orders)

    with pytest.raises(InvalidStatusTransition):
        await ledger.advance_status("ord-1", OrderStatus.SHIPPED)

    assert repos.orders.update_order.await_count == MAX_WRITE_ATTEMPTS
