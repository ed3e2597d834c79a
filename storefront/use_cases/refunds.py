"""
Refund dispatch following an approved cancellation.

Whether money goes back is decided by one table, evaluated once per
resolution:

    ============== ============== =====================================
    Delivery phase Payment method Action
    ============== ============== =====================================
    POST_DELIVERY  any            refund the order's total amount
    PRE_DELIVERY   prepaid (upi)  refund (payment was collected)
    PRE_DELIVERY   cod            no refund (nothing was collected)
    ============== ============== =====================================

Issuance is once-only per cancellation request: the refund record is
claimed in the store before the gateway is called, and the request id is
the gateway idempotency key.

An order whose payment never verified (flagged NEEDS_RECONCILIATION) gets
no refund until an operator confirms the payment; confirming it releases
the refund through `dispatch_for_order`.
"""

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from storefront.domain import (
    CancellationRequest,
    CancellationStatus,
    DeliveryPhase,
    Order,
    PaymentMethod,
    Refund,
    RefundInstruction,
    RefundOutcome,
    RefundStatus,
    utcnow,
)
from storefront.exceptions import (
    CancellationNotFound,
    InvalidStatusTransition,
    OrderNotFound,
    RefundNotAllowed,
    RefundNotFound,
    RefundNotRetryable,
)
from storefront.repositories import (
    CancellationRequestRepository,
    OrderRepository,
    PaymentGateway,
    RefundRepository,
)
from storefront.validation import (
    ensure_cancellation_request_repository,
    ensure_order_repository,
    ensure_payment_gateway,
    ensure_refund_repository,
)

logger = logging.getLogger(__name__)

NO_PAYMENT_COLLECTED = (
    "Cash on delivery order cancelled before delivery; no payment was "
    "collected"
)

PAYMENT_UNRECONCILED = (
    "Payment for this order has not been verified; the refund is held "
    "until its reconciliation case is resolved"
)

# A DISPATCHING refund younger than this is still in flight.
DISPATCH_LEASE = timedelta(minutes=5)


def refund_required(phase: DeliveryPhase, method: PaymentMethod) -> bool:
    """Evaluate the refund decision table for one approved request."""
    if phase is DeliveryPhase.POST_DELIVERY:
        return True
    return method.is_prepaid


def refund_outcome(refund: Refund) -> RefundOutcome:
    """Describe a stored refund to callers."""
    if refund.status in (RefundStatus.INITIATED, RefundStatus.REFUND_COMPLETED):
        return RefundOutcome(initiated=True, refund=refund)
    if refund.status is RefundStatus.FAILED:
        return RefundOutcome(
            initiated=False,
            refund=refund,
            reason=refund.failure_reason or "Refund failed",
        )
    return RefundOutcome(
        initiated=False, refund=refund, reason="Refund dispatch in progress"
    )


class RefundDispatcher:
    """
    Decides on and issues refunds for approved cancellation requests.

    The dispatcher runs both in-process (called by the cancellation use
    case) and inside RefundDispatchWorkflow, where its repositories are
    workflow proxies. For that reason it reads time only through `clock`
    and gets every id from a repository.
    """

    def __init__(
        self,
        order_repo: OrderRepository,
        request_repo: CancellationRequestRepository,
        refund_repo: RefundRepository,
        gateway: PaymentGateway,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.order_repo = ensure_order_repository(order_repo)
        self.request_repo = ensure_cancellation_request_repository(
            request_repo
        )
        self.refund_repo = ensure_refund_repository(refund_repo)
        self.gateway = ensure_payment_gateway(gateway)
        self.clock = clock

    async def maybe_refund(
        self, order: Order, request: CancellationRequest
    ) -> RefundOutcome:
        """Refund an approved request if the decision table says so.

        Calling this again for the same request returns the refund that
        already exists instead of issuing another.

        Raises:
            RefundNotAllowed: the request is not APPROVED
        """
        if request.status is not CancellationStatus.APPROVED:
            raise RefundNotAllowed(
                f"Cancellation request {request.request_id} is "
                f"{request.status.value}; only approved requests are refunded"
            )

        if not refund_required(request.delivery_phase, order.payment_method):
            logger.info(
                "No refund due for approved request",
                extra={
                    "request_id": request.request_id,
                    "order_id": order.order_id,
                    "delivery_phase": request.delivery_phase.value,
                    "payment_method": order.payment_method.value,
                },
            )
            return RefundOutcome(initiated=False, reason=NO_PAYMENT_COLLECTED)

        existing = await self.refund_repo.get_by_request(request.request_id)
        if existing is not None:
            logger.info(
                "Refund already exists for request",
                extra={
                    "request_id": request.request_id,
                    "refund_id": existing.refund_id,
                    "refund_status": existing.status.value,
                },
            )
            return refund_outcome(existing)

        if order.needs_reconciliation:
            logger.warning(
                "Refund held for an unreconciled payment",
                extra={
                    "request_id": request.request_id,
                    "order_id": order.order_id,
                    "payment_reference": order.payment_reference,
                },
            )
            return RefundOutcome(initiated=False, reason=PAYMENT_UNRECONCILED)

        at = self.clock()
        refund_id = await self.refund_repo.generate_refund_id()
        candidate = Refund(
            refund_id=refund_id,
            request_id=request.request_id,
            order_id=order.order_id,
            refund_amount=order.total_amount,
            upi_id=request.upi_id,
            payment_reference=order.payment_reference,
            status=RefundStatus.DISPATCHING,
            attempts=1,
            initiated_at=at,
            updated_at=at,
        )

        claimed = await self.refund_repo.claim(candidate)
        if claimed is None:
            winner = await self.refund_repo.get_by_request(request.request_id)
            if winner is None:
                raise RefundNotFound(
                    f"Refund claim for request {request.request_id} was "
                    f"refused but no refund exists"
                )
            logger.info(
                "Lost refund claim to a concurrent dispatch",
                extra={
                    "request_id": request.request_id,
                    "refund_id": winner.refund_id,
                },
            )
            return refund_outcome(winner)

        logger.info(
            "Refund claimed",
            extra={
                "request_id": request.request_id,
                "refund_id": claimed.refund_id,
                "amount": str(claimed.refund_amount),
            },
        )
        return await self._issue(claimed)

    async def retry_refund(self, request_id: str) -> RefundOutcome:
        """Operator retry for a refund whose gateway call failed.

        A refund stuck in DISPATCHING for longer than DISPATCH_LEASE (the
        process died mid-call) is re-issued as well. Either way the retry
        first claims the refund by raising `attempts` with compare-and-swap,
        so of two concurrent retries only one reaches the gateway.

        Raises:
            RefundNotFound: the request has no refund
            RefundNotRetryable: the refund was initiated or completed, is
                still being dispatched, or another retry claimed it first
        """
        refund = await self.refund_repo.get_by_request(request_id)
        if refund is None:
            raise RefundNotFound(f"No refund for request {request_id}")

        if refund.status not in (RefundStatus.FAILED, RefundStatus.DISPATCHING):
            raise RefundNotRetryable(
                f"Refund {refund.refund_id} is {refund.status.value}"
            )

        now = self.clock()
        if (
            refund.status is RefundStatus.DISPATCHING
            and now - refund.updated_at < DISPATCH_LEASE
        ):
            raise RefundNotRetryable(
                f"Refund {refund.refund_id} is being dispatched"
            )

        reclaimed = refund.model_copy(
            update={
                "status": RefundStatus.DISPATCHING,
                "attempts": refund.attempts + 1,
                "updated_at": now,
            }
        )
        if refund.status is RefundStatus.FAILED:
            claimed = await self.refund_repo.update_refund(
                reclaimed, RefundStatus.FAILED
            )
        else:
            claimed = await self.refund_repo.update_dispatching(
                reclaimed, refund.attempts
            )
        if claimed is None:
            raise RefundNotRetryable(
                f"Refund {refund.refund_id} is already being retried"
            )
        refund = claimed

        logger.info(
            "Retrying refund",
            extra={
                "request_id": request_id,
                "refund_id": refund.refund_id,
                "attempts": refund.attempts,
            },
        )
        return await self._issue(refund)

    async def dispatch_for_request(self, request_id: str) -> RefundOutcome:
        """Bring an approved request's refund to its next settled state.

        Issues the refund when there is none, retries it when it failed or
        was interrupted, and otherwise reports it.
        """
        request = await self.request_repo.get_request(request_id)
        if request is None:
            raise CancellationNotFound(
                f"Cancellation request {request_id} not found"
            )

        existing = await self.refund_repo.get_by_request(request_id)
        if existing is not None and existing.status in (
            RefundStatus.FAILED,
            RefundStatus.DISPATCHING,
        ):
            return await self.retry_refund(request_id)

        order = await self.order_repo.get_order(request.order_id)
        if order is None:
            raise OrderNotFound(f"Order {request.order_id} not found")
        return await self.maybe_refund(order, request)

    async def dispatch_for_order(self, order_id: str) -> RefundOutcome:
        """Issue the refund an approved cancellation of `order_id` is owed.

        Used once a held refund may go out, i.e. after the order's payment
        was confirmed by reconciliation.
        """
        request = await self.request_repo.get_latest_for_order(order_id)
        if request is None or request.status is not CancellationStatus.APPROVED:
            return RefundOutcome(
                initiated=False,
                reason=f"Order {order_id} has no approved cancellation",
            )
        return await self.dispatch_for_request(request.request_id)

    async def mark_completed(
        self, order_id: str, actor: str, now: Optional[datetime] = None
    ) -> Refund:
        """Record that an initiated refund reached the customer."""
        refund = await self.get_refund_for_order(order_id)
        if refund.status is RefundStatus.REFUND_COMPLETED:
            return refund
        if refund.status is not RefundStatus.INITIATED:
            raise InvalidStatusTransition(
                f"Refund {refund.refund_id} is {refund.status.value}; only "
                f"initiated refunds can be completed"
            )

        at = now or self.clock()
        stored = await self.refund_repo.update_refund(
            refund.model_copy(
                update={
                    "status": RefundStatus.REFUND_COMPLETED,
                    "completed_at": at,
                    "completed_by": actor,
                    "updated_at": at,
                }
            ),
            RefundStatus.INITIATED,
        )
        if stored is None:
            return await self.get_refund_for_order(order_id)

        logger.info(
            "Refund marked completed",
            extra={
                "order_id": order_id,
                "refund_id": stored.refund_id,
                "actor": actor,
            },
        )
        return stored

    async def get_refund_for_order(self, order_id: str) -> Refund:
        refund = await self.refund_repo.get_by_order(order_id)
        if refund is None:
            raise RefundNotFound(f"No refund for order {order_id}")
        return refund

    async def list_refunds(
        self, status: Optional[RefundStatus] = None
    ) -> List[Refund]:
        return await self.refund_repo.list_refunds(status)

    async def _issue(self, refund: Refund) -> RefundOutcome:
        """Move a DISPATCHING refund to INITIATED or FAILED."""
        if refund.payment_reference is None:
            # No gateway payment: queued for manual payout to the UPI id.
            updated = refund.model_copy(
                update={
                    "status": RefundStatus.INITIATED,
                    "updated_at": self.clock(),
                }
            )
            logger.info(
                "Refund queued for manual payout",
                extra={
                    "refund_id": refund.refund_id,
                    "order_id": refund.order_id,
                    "upi_id": refund.upi_id,
                },
            )
        else:
            instruction = RefundInstruction(
                idempotency_key=refund.request_id,
                payment_reference=refund.payment_reference,
                amount=refund.refund_amount,
                notes={
                    "order_id": refund.order_id,
                    "refund_id": refund.refund_id,
                },
            )
            try:
                result = await self.gateway.refund(instruction)
            except Exception as e:
                logger.error(
                    "Gateway refund failed",
                    extra={
                        "refund_id": refund.refund_id,
                        "request_id": refund.request_id,
                        "attempts": refund.attempts,
                        "error_type": type(e).__name__,
                        "error": str(e),
                    },
                    exc_info=True,
                )
                updated = refund.model_copy(
                    update={
                        "status": RefundStatus.FAILED,
                        "failure_reason": str(e) or type(e).__name__,
                        "updated_at": self.clock(),
                    }
                )
            else:
                logger.info(
                    "Gateway refund initiated",
                    extra={
                        "refund_id": refund.refund_id,
                        "gateway_refund_id": result.gateway_refund_id,
                        "amount": str(result.amount),
                    },
                )
                updated = refund.model_copy(
                    update={
                        "status": RefundStatus.INITIATED,
                        "gateway_refund_id": result.gateway_refund_id,
                        "failure_reason": None,
                        "updated_at": self.clock(),
                    }
                )

        stored = await self.refund_repo.update_dispatching(
            updated, refund.attempts
        )
        if stored is None:
            current = await self.refund_repo.get_by_request(refund.request_id)
            if current is None:
                raise RefundNotFound(
                    f"Refund {refund.refund_id} disappeared during dispatch"
                )
            return refund_outcome(current)
        return refund_outcome(stored)
