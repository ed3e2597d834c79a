"""
Order ledger use case.

The ledger is the only code that changes an order's status. Every write is
a compare-and-swap on the status the change was computed from; when another
writer got there first the change is recomputed against the fresh order,
which may then turn out to be illegal.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from storefront.domain import (
    ORDER_PROGRESSION,
    Order,
    OrderStatus,
    ReconciliationStatus,
    is_legal_transition,
    utcnow,
)
from storefront.exceptions import InvalidStatusTransition, OrderNotFound
from storefront.repositories import OrderRepository
from storefront.validation import ensure_order_repository

logger = logging.getLogger(__name__)

MAX_WRITE_ATTEMPTS = 5


def apply_status(order: Order, new_status: OrderStatus, at: datetime) -> Order:
    """Return `order` moved to `new_status`, stamping lifecycle timestamps.

    `shipped_at` and `delivered_at` are set the first time the order
    reaches (or skips past) those steps and are never cleared.
    """
    update: dict = {"status": new_status}
    if new_status is OrderStatus.CANCELLED:
        update["cancelled_at"] = at
    else:
        rank = ORDER_PROGRESSION[new_status]
        if (
            rank >= ORDER_PROGRESSION[OrderStatus.SHIPPED]
            and order.shipped_at is None
        ):
            update["shipped_at"] = at
        if new_status is OrderStatus.DELIVERED and order.delivered_at is None:
            update["delivered_at"] = at
    return order.model_copy(update=update)


class OrderLedgerUseCase:
    """
    Reads and status changes for orders.

    Used directly by the HTTP layer for customer and admin order views, and
    by the cancellation, checkout and reconciliation use cases whenever they
    need an order's status to change.
    """

    def __init__(self, order_repo: OrderRepository) -> None:
        self.order_repo = ensure_order_repository(order_repo)

    async def new_order_id(self) -> str:
        return await self.order_repo.generate_order_id()

    async def create(self, order: Order) -> Order:
        """Record a new order. Re-recording the same id is a no-op."""
        stored = await self.order_repo.save_order(order)
        logger.info(
            "Order recorded",
            extra={
                "order_id": stored.order_id,
                "user_id": stored.user_id,
                "status": stored.status.value,
                "payment_method": stored.payment_method.value,
                "total_amount": str(stored.total_amount),
            },
        )
        return stored

    async def get_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> Order:
        """Fetch an order; with `user_id`, only if that customer owns it."""
        order = await self.order_repo.get_order(order_id)
        if order is None or (user_id is not None and order.user_id != user_id):
            logger.info(
                "Order not found for caller",
                extra={"order_id": order_id, "user_id": user_id},
            )
            raise OrderNotFound(f"Order {order_id} not found")
        return order

    async def find_order(self, order_id: str) -> Optional[Order]:
        return await self.order_repo.get_order(order_id)

    async def list_user_orders(self, user_id: str) -> List[Order]:
        return await self.order_repo.list_orders_for_user(user_id)

    async def list_orders(
        self, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        return await self.order_repo.list_orders(status)

    async def advance_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        now: Optional[datetime] = None,
    ) -> Order:
        """Admin status change. Only forward moves (or cancellation).

        Raises:
            OrderNotFound: no such order
            InvalidStatusTransition: the move would go backwards, repeat the
                current status or leave CANCELLED
        """
        at = now or utcnow()

        def change(order: Order) -> Optional[Order]:
            if not is_legal_transition(order.status, new_status):
                raise InvalidStatusTransition(
                    f"Order {order.order_id} cannot move from "
                    f"{order.status.value} to {new_status.value}"
                )
            return apply_status(order, new_status, at)

        order = await self._write(order_id, change)
        logger.info(
            "Order status advanced",
            extra={"order_id": order_id, "new_status": new_status.value},
        )
        return order

    async def cancel(
        self, order_id: str, now: Optional[datetime] = None
    ) -> Order:
        """Cancel an order. Cancelling a cancelled order is a no-op."""
        at = now or utcnow()

        def change(order: Order) -> Optional[Order]:
            if order.status is OrderStatus.CANCELLED:
                return None
            return apply_status(order, OrderStatus.CANCELLED, at)

        order = await self._write(order_id, change)
        logger.info(
            "Order cancelled",
            extra={"order_id": order_id, "cancelled_at": str(order.cancelled_at)},
        )
        return order

    async def mark_paid(
        self,
        order_id: str,
        clear_reconciliation: bool = False,
        note: Optional[str] = None,
    ) -> Order:
        """Record a verified payment: PENDING -> PAID.

        An order already at PAID or beyond is left as it is. With
        `clear_reconciliation`, a NEEDS_RECONCILIATION flag is resolved in
        the same write; a flagged order that was cancelled meanwhile stays
        cancelled and only loses the flag.
        """

        def change(order: Order) -> Optional[Order]:
            update: dict = {}
            if order.status is OrderStatus.PENDING:
                update["status"] = OrderStatus.PAID
            elif order.status is OrderStatus.CANCELLED and not (
                clear_reconciliation and order.needs_reconciliation
            ):
                raise InvalidStatusTransition(
                    f"Order {order.order_id} is cancelled and cannot be paid"
                )
            if clear_reconciliation and order.needs_reconciliation:
                update["reconciliation_status"] = ReconciliationStatus.RESOLVED
                update["reconciliation_note"] = note
            if not update:
                return None
            return order.model_copy(update=update)

        return await self._write(order_id, change)

    async def flag_for_reconciliation(self, order_id: str, note: str) -> Order:
        """Mark an order as disagreeing with its payment record."""

        def change(order: Order) -> Optional[Order]:
            if order.needs_reconciliation:
                return None
            return order.model_copy(
                update={
                    "reconciliation_status": (
                        ReconciliationStatus.NEEDS_RECONCILIATION
                    ),
                    "reconciliation_note": note,
                }
            )

        order = await self._write(order_id, change)
        logger.error(
            "Order flagged for reconciliation",
            extra={"order_id": order_id, "note": note},
        )
        return order

    async def void(
        self, order_id: str, note: Optional[str], now: Optional[datetime] = None
    ) -> Order:
        """Cancel an order as the outcome of reconciliation.

        Raises:
            InvalidStatusTransition: the order's payment was verified, so
                voiding it would keep the money; it has to be cancelled
                through a cancellation request and refunded instead
        """
        at = now or utcnow()

        def change(order: Order) -> Optional[Order]:
            if (
                order.status is OrderStatus.CANCELLED
                and not order.needs_reconciliation
            ):
                return None
            if (
                order.status is not OrderStatus.PENDING
                and not order.needs_reconciliation
            ):
                raise InvalidStatusTransition(
                    f"Order {order.order_id} is {order.status.value} with a "
                    f"verified payment and cannot be voided"
                )
            if order.status is not OrderStatus.CANCELLED:
                order = apply_status(order, OrderStatus.CANCELLED, at)
            if order.needs_reconciliation:
                order = order.model_copy(
                    update={
                        "reconciliation_status": ReconciliationStatus.RESOLVED,
                        "reconciliation_note": note,
                    }
                )
            return order

        return await self._write(order_id, change)

    async def _write(
        self,
        order_id: str,
        change: Callable[[Order], Optional[Order]],
    ) -> Order:
        """Apply `change` to the current order with compare-and-swap.

        `change` returns the new order, or None when nothing needs writing.
        It is re-run against the fresh order after a lost race.
        """
        for attempt in range(1, MAX_WRITE_ATTEMPTS + 1):
            current = await self.order_repo.get_order(order_id)
            if current is None:
                raise OrderNotFound(f"Order {order_id} not found")

            updated = change(current)
            if updated is None:
                return current

            stored = await self.order_repo.update_order(updated, current.status)
            if stored is not None:
                return stored

            logger.warning(
                "Order changed concurrently, retrying write",
                extra={
                    "order_id": order_id,
                    "expected_status": current.status.value,
                    "attempt": attempt,
                },
            )

        raise InvalidStatusTransition(
            f"Order {order_id} kept changing; gave up after "
            f"{MAX_WRITE_ATTEMPTS} attempts"
        )
