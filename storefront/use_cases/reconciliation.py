"""
Operator path for orders whose payment and order records disagree.

Cases are opened by checkout when an order write fails after a payment was
collected, or when a freshly created order fails verification. An operator
lists open cases, optionally asks for a re-verification, and closes each
case by confirming the payment or voiding the order. The only case closed
without an operator is an ORDER_CREATION_FAILED one whose order a retried
commit went on to write.
"""

import logging
from datetime import datetime
from typing import List, Optional

from storefront.domain import (
    CheckoutSession,
    Order,
    OrderStatus,
    PaymentProof,
    ReconciliationAction,
    ReconciliationCase,
    ReconciliationKind,
    utcnow,
)
from storefront.exceptions import (
    AlreadyResolved,
    CheckoutSessionNotFound,
    InvalidResolution,
    OrderNotFound,
    ReconciliationCaseNotFound,
)
from storefront.repositories import (
    CheckoutSessionRepository,
    PaymentGateway,
    ReconciliationRepository,
)
from storefront.use_cases.orders import OrderLedgerUseCase
from storefront.use_cases.refunds import RefundDispatcher
from storefront.validation import (
    ensure_checkout_session_repository,
    ensure_payment_gateway,
    ensure_reconciliation_repository,
)

logger = logging.getLogger(__name__)

REVERIFY_ACTOR = "system:reverify"
CHECKOUT_ACTOR = "system:checkout"


class ReconciliationUseCase:
    def __init__(
        self,
        ledger: OrderLedgerUseCase,
        case_repo: ReconciliationRepository,
        session_repo: CheckoutSessionRepository,
        gateway: PaymentGateway,
        refunds: Optional[RefundDispatcher] = None,
    ) -> None:
        self.ledger = ledger
        self.refunds = refunds
        self.case_repo = ensure_reconciliation_repository(case_repo)
        self.session_repo = ensure_checkout_session_repository(session_repo)
        self.gateway = ensure_payment_gateway(gateway)

    async def open_case(
        self,
        kind: ReconciliationKind,
        reference: str,
        detail: str,
        order_id: Optional[str] = None,
        proof: Optional[PaymentProof] = None,
        now: Optional[datetime] = None,
    ) -> ReconciliationCase:
        """Persist a consistency hazard for an operator to resolve."""
        case = ReconciliationCase(
            case_id=await self.case_repo.generate_case_id(),
            kind=kind,
            reference=reference,
            order_id=order_id,
            payment_reference=proof.payment_reference if proof else None,
            proof=proof,
            detail=detail,
            created_at=now or utcnow(),
        )
        stored = await self.case_repo.open_case(case)
        if stored.case_id != case.case_id:
            logger.warning(
                "Reconciliation case already open for checkout",
                extra={
                    "case_id": stored.case_id,
                    "kind": kind.value,
                    "reference": reference,
                    "detail": detail,
                },
            )
            return stored
        logger.error(
            "Reconciliation case opened",
            extra={
                "case_id": stored.case_id,
                "kind": kind.value,
                "reference": reference,
                "order_id": order_id,
                "payment_reference": stored.payment_reference,
                "detail": detail,
            },
        )
        return stored

    async def close_recorded_order(
        self, reference: str, order_id: str, now: Optional[datetime] = None
    ) -> Optional[ReconciliationCase]:
        """Close the ORDER_CREATION_FAILED case of a checkout whose order
        has since been written, so nobody acts on it any more."""
        case = await self.case_repo.find_open_case(
            reference, ReconciliationKind.ORDER_CREATION_FAILED
        )
        if case is None:
            return None
        closed = await self.case_repo.resolve_case(
            case.case_id,
            ReconciliationAction.ORDER_RECORDED,
            CHECKOUT_ACTOR,
            f"Order {order_id} recorded by a later commit",
            now or utcnow(),
        )
        if closed is not None:
            logger.info(
                "Reconciliation case closed by checkout",
                extra={
                    "case_id": case.case_id,
                    "reference": reference,
                    "order_id": order_id,
                },
            )
        return closed

    async def list_open_cases(self) -> List[ReconciliationCase]:
        return await self.case_repo.list_cases(False)

    async def list_cases(
        self, resolved: Optional[bool] = None
    ) -> List[ReconciliationCase]:
        return await self.case_repo.list_cases(resolved)

    async def get_case(self, case_id: str) -> ReconciliationCase:
        case = await self.case_repo.get_case(case_id)
        if case is None:
            raise ReconciliationCaseNotFound(
                f"Reconciliation case {case_id} not found"
            )
        return case

    async def reverify(
        self, case_id: str, now: Optional[datetime] = None
    ) -> ReconciliationCase:
        """Ask the gateway again whether the payment proof is authentic.

        On success the payment is confirmed (creating the order first when
        the original write failed) and the case is closed. Otherwise the
        case is returned still open.
        """
        case = await self.get_case(case_id)
        if case.resolved:
            return case
        if case.proof is None:
            logger.warning(
                "Case has no payment proof to re-verify",
                extra={"case_id": case_id},
            )
            return case

        session = await self._session(case.reference)
        order_id = case.order_id or session.order_id
        if order_id is None:
            logger.warning(
                "Case has no order id to verify against",
                extra={"case_id": case_id, "reference": case.reference},
            )
            return case

        try:
            verified = await self.gateway.verify(
                case.proof.intent_id, case.proof, order_id
            )
        except Exception as e:
            logger.error(
                "Re-verification could not reach the gateway",
                extra={
                    "case_id": case_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            return case

        if not verified:
            logger.warning(
                "Re-verification still failing",
                extra={"case_id": case_id, "order_id": order_id},
            )
            return case

        logger.info(
            "Re-verification succeeded",
            extra={"case_id": case_id, "order_id": order_id},
        )
        return await self.resolve_case(
            case_id,
            ReconciliationAction.CONFIRM_PAYMENT,
            REVERIFY_ACTOR,
            "Payment verified on re-check",
            now,
        )

    async def resolve_case(
        self,
        case_id: str,
        action: ReconciliationAction,
        actor: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReconciliationCase:
        """Close a case by confirming the payment or voiding the order.

        CONFIRM_PAYMENT moves the order to PAID, recording it from its
        checkout session first if it was never written; an order that was
        cancelled in the meantime gets its held refund. VOID_ORDER cancels
        the order if one exists and its payment never verified. Either way
        the order's reconciliation flag is cleared.

        Raises:
            ReconciliationCaseNotFound: no such case
            AlreadyResolved: the case was closed with a different action
            InvalidResolution: the action is not one an operator can take
            InvalidStatusTransition: VOID_ORDER on an order whose payment
                was verified
        """
        if action is ReconciliationAction.ORDER_RECORDED:
            raise InvalidResolution(
                f"{action.value} is recorded by checkout, not by operators"
            )
        at = now or utcnow()
        case = await self.get_case(case_id)
        if case.resolved:
            if case.resolution is action:
                return case
            raise AlreadyResolved(
                f"Reconciliation case {case_id} was already resolved with "
                f"{case.resolution.value if case.resolution else 'no action'}"
            )

        if action is ReconciliationAction.CONFIRM_PAYMENT:
            await self._confirm_payment(case, note, at)
        else:
            await self._void_order(case, note, at)

        closed = await self.case_repo.resolve_case(
            case_id, action, actor, note, at
        )
        if closed is None:
            closed = await self.get_case(case_id)
            if closed.resolution is not action:
                raise AlreadyResolved(
                    f"Reconciliation case {case_id} was resolved "
                    f"concurrently"
                )

        logger.info(
            "Reconciliation case resolved",
            extra={
                "case_id": case_id,
                "action": action.value,
                "actor": actor,
                "order_id": closed.order_id,
            },
        )
        return closed

    async def _confirm_payment(
        self, case: ReconciliationCase, note: Optional[str], at: datetime
    ) -> Order:
        order_id = case.order_id
        if case.kind is ReconciliationKind.ORDER_CREATION_FAILED:
            session = await self._session(case.reference)
            order_id = order_id or session.order_id
            if order_id is None:
                raise OrderNotFound(
                    f"Checkout {case.reference} never had an order id"
                )
            await self.ledger.create(
                session.to_order(
                    order_id,
                    case.payment_reference or session.payment_reference,
                    at,
                )
            )
        if order_id is None:
            raise OrderNotFound(f"Case {case.case_id} has no order")
        order = await self.ledger.mark_paid(
            order_id, clear_reconciliation=True, note=note
        )
        if order.status is OrderStatus.CANCELLED and self.refunds is not None:
            outcome = await self.refunds.dispatch_for_order(order_id)
            logger.info(
                "Held refund released after payment confirmation",
                extra={
                    "case_id": case.case_id,
                    "order_id": order_id,
                    "refund_initiated": outcome.initiated,
                    "refund_reason": outcome.reason,
                },
            )
        return order

    async def _void_order(
        self, case: ReconciliationCase, note: Optional[str], at: datetime
    ) -> Optional[Order]:
        if case.order_id is None:
            return None
        try:
            return await self.ledger.void(case.order_id, note, at)
        except OrderNotFound:
            logger.info(
                "No order to void for case",
                extra={"case_id": case.case_id, "order_id": case.order_id},
            )
            return None

    async def _session(self, reference: str) -> CheckoutSession:
        session = await self.session_repo.get_session(reference)
        if session is None:
            raise CheckoutSessionNotFound(
                f"Checkout session {reference} not found"
            )
        return session
