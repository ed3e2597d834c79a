"""
Cancellation request workflow.

A request goes (none) -> PENDING -> APPROVED | REJECTED. Its delivery
phase is fixed when it is filed; approving it cancels the order and hands
it to the refund dispatcher.
"""

import logging
from datetime import datetime
from typing import List, Optional

from storefront.delivery import classify
from storefront.domain import (
    CancellationDecision,
    CancellationEvidence,
    CancellationRequest,
    CancellationStatus,
    DeliveryPhase,
    OrderStatus,
    RefundOutcome,
    VideoAttachment,
    utcnow,
)
from storefront.exceptions import (
    AlreadyCancelled,
    AlreadyResolved,
    CancellationNotFound,
    DuplicateRequest,
    EvidenceUploadFailed,
    InTransit,
    InvalidEvidence,
    MissingEvidence,
    OrderNotFound,
)
from storefront.repositories import (
    CancellationRequestRepository,
    EvidenceStorage,
)
from storefront.use_cases.orders import OrderLedgerUseCase
from storefront.use_cases.refunds import RefundDispatcher
from storefront.validation import (
    ensure_cancellation_request_repository,
    ensure_evidence_storage,
    normalize_reason,
    validate_upi_id,
    validate_video_upload,
)

logger = logging.getLogger(__name__)


class CancellationUseCase:
    """
    Files, evidences and resolves cancellation requests.

    Architectural Notes:
    - Ordering of checks on filing is part of the contract: ownership,
      order status, reason, then evidence. A shipped order is refused
      before its reason is even looked at.
    - Uniqueness of the PENDING request per order and the one-shot
      resolution are enforced by the request store, so concurrent filings
      or two admins clicking at once cannot both win.
    """

    def __init__(
        self,
        ledger: OrderLedgerUseCase,
        request_repo: CancellationRequestRepository,
        evidence_storage: EvidenceStorage,
        refunds: RefundDispatcher,
    ) -> None:
        self.ledger = ledger
        self.request_repo = ensure_cancellation_request_repository(
            request_repo
        )
        self.evidence_storage = ensure_evidence_storage(evidence_storage)
        self.refunds = refunds

    async def create_request(
        self,
        order_id: str,
        user_id: str,
        reason: str,
        evidence: Optional[CancellationEvidence] = None,
        now: Optional[datetime] = None,
    ) -> CancellationRequest:
        """File a cancellation request for one of the caller's orders.

        The order's own status is not changed. If a video attachment is
        supplied it is uploaded once the request exists; when that upload
        fails the request is kept and EvidenceUploadFailed tells the caller
        which request to retry `upload_video` for.

        Raises:
            OrderNotFound, AlreadyCancelled, InTransit, InvalidReason,
            MissingEvidence, InvalidUpiId, InvalidEvidence,
            DuplicateRequest, EvidenceUploadFailed
        """
        filed_at = now or utcnow()
        logger.info(
            "Filing cancellation request",
            extra={"order_id": order_id, "user_id": user_id},
        )

        order = await self.ledger.get_order(order_id, user_id)

        if order.status is OrderStatus.CANCELLED:
            raise AlreadyCancelled(f"Order {order_id} is already cancelled")
        if order.status is OrderStatus.SHIPPED:
            raise InTransit(
                "Cannot cancel: order already shipped, please wait for "
                "delivery"
            )

        clean_reason = normalize_reason(reason)
        phase = classify(order, filed_at)

        upi_id: Optional[str] = None
        video_url: Optional[str] = None
        attachment: Optional[VideoAttachment] = None
        if phase is DeliveryPhase.POST_DELIVERY:
            evidence = evidence or CancellationEvidence()
            if not evidence.upi_id or not evidence.has_video:
                raise MissingEvidence(
                    "A video and a UPI id are required to cancel a "
                    "delivered order"
                )
            upi_id = validate_upi_id(evidence.upi_id)
            video_url = evidence.video_url
            attachment = evidence.video
            if attachment is not None:
                validate_video_upload(
                    attachment.data,
                    attachment.content_type,
                    attachment.filename,
                )

        request = CancellationRequest(
            request_id=await self.request_repo.generate_request_id(),
            order_id=order.order_id,
            user_id=user_id,
            reason=clean_reason,
            status=CancellationStatus.PENDING,
            delivery_phase=phase,
            video_url=video_url,
            video_uploaded_at=filed_at if video_url else None,
            upi_id=upi_id,
            created_at=filed_at,
            updated_at=filed_at,
        )

        stored = await self.request_repo.insert_pending(request)
        if stored is None:
            logger.info(
                "Duplicate cancellation request refused",
                extra={"order_id": order_id, "user_id": user_id},
            )
            raise DuplicateRequest(
                f"Order {order_id} already has a pending cancellation "
                f"request"
            )

        logger.info(
            "Cancellation request filed",
            extra={
                "request_id": stored.request_id,
                "order_id": order_id,
                "delivery_phase": phase.value,
            },
        )

        if attachment is not None and video_url is None:
            stored = await self._store_video(stored, attachment, filed_at)

        return stored

    async def upload_video(
        self,
        request_id: str,
        user_id: str,
        attachment: VideoAttachment,
        now: Optional[datetime] = None,
    ) -> CancellationRequest:
        """Attach (or replace) the evidence video of a pending request."""
        request = await self.request_repo.get_request(request_id)
        if request is None or request.user_id != user_id:
            raise CancellationNotFound(
                f"Cancellation request {request_id} not found"
            )
        if request.is_resolved:
            raise AlreadyResolved(
                f"Cancellation request {request_id} is already "
                f"{request.status.value}"
            )
        if request.delivery_phase is not DeliveryPhase.POST_DELIVERY:
            raise InvalidEvidence(
                "Evidence is only taken for delivered orders"
            )

        validate_video_upload(
            attachment.data, attachment.content_type, attachment.filename
        )
        return await self._store_video(request, attachment, now or utcnow())

    async def decide(
        self,
        request_id: str,
        decision: CancellationStatus,
        actor: str,
        now: Optional[datetime] = None,
    ) -> CancellationDecision:
        """Approve or reject a pending request.

        Resolving again with the same decision returns the stored request;
        for an approval it also re-drives the order cancel and the refund,
        both of which are idempotent, so a crash between steps heals on
        retry.

        Raises:
            CancellationNotFound: no such request
            AlreadyResolved: the request was resolved the other way
        """
        if decision is CancellationStatus.PENDING:
            raise ValueError("Decision must be APPROVED or REJECTED")

        resolved_at = now or utcnow()
        request = await self.request_repo.get_request(request_id)
        if request is None:
            raise CancellationNotFound(
                f"Cancellation request {request_id} not found"
            )

        if not request.is_resolved:
            won = await self.request_repo.resolve(
                request_id, decision, actor, resolved_at
            )
            if won is not None:
                request = won
                logger.info(
                    "Cancellation request resolved",
                    extra={
                        "request_id": request_id,
                        "decision": decision.value,
                        "actor": actor,
                    },
                )
            else:
                reloaded = await self.request_repo.get_request(request_id)
                if reloaded is None:
                    raise CancellationNotFound(
                        f"Cancellation request {request_id} not found"
                    )
                request = reloaded

        if request.status is not decision:
            raise AlreadyResolved(
                f"Cancellation request {request_id} is already "
                f"{request.status.value}"
            )

        refund: Optional[RefundOutcome] = None
        if decision is CancellationStatus.APPROVED:
            refund = await self._carry_out_approval(request, resolved_at)

        return CancellationDecision(request=request, refund=refund)

    async def resolve(
        self,
        request_id: str,
        decision: CancellationStatus,
        actor: str,
        now: Optional[datetime] = None,
    ) -> CancellationRequest:
        decided = await self.decide(request_id, decision, actor, now)
        return decided.request

    async def approve(
        self, request_id: str, actor: str, now: Optional[datetime] = None
    ) -> CancellationRequest:
        return await self.resolve(
            request_id, CancellationStatus.APPROVED, actor, now
        )

    async def reject(
        self, request_id: str, actor: str, now: Optional[datetime] = None
    ) -> CancellationRequest:
        return await self.resolve(
            request_id, CancellationStatus.REJECTED, actor, now
        )

    async def get_request(self, request_id: str) -> CancellationRequest:
        request = await self.request_repo.get_request(request_id)
        if request is None:
            raise CancellationNotFound(
                f"Cancellation request {request_id} not found"
            )
        return request

    async def get_request_for_order(
        self, order_id: str, user_id: Optional[str] = None
    ) -> CancellationRequest:
        """Latest request for an order; with `user_id`, only the owner's."""
        if user_id is not None:
            await self.ledger.get_order(order_id, user_id)
        request = await self.request_repo.get_latest_for_order(order_id)
        if request is None:
            raise CancellationNotFound(
                f"No cancellation request for order {order_id}"
            )
        return request

    async def list_requests(
        self, status: Optional[CancellationStatus] = None
    ) -> List[CancellationRequest]:
        return await self.request_repo.list_requests(status)

    async def list_pending(self) -> List[CancellationRequest]:
        return await self.request_repo.list_requests(
            CancellationStatus.PENDING
        )

    async def _carry_out_approval(
        self, request: CancellationRequest, at: datetime
    ) -> RefundOutcome:
        try:
            order = await self.ledger.cancel(request.order_id, at)
        except OrderNotFound:
            logger.error(
                "Approved request points at a missing order",
                extra={
                    "request_id": request.request_id,
                    "order_id": request.order_id,
                },
            )
            raise

        outcome = await self.refunds.maybe_refund(order, request)
        logger.info(
            "Refund dispatch finished for approved request",
            extra={
                "request_id": request.request_id,
                "order_id": order.order_id,
                "refund_initiated": outcome.initiated,
                "refund_reason": outcome.reason,
            },
        )
        return outcome

    async def _store_video(
        self,
        request: CancellationRequest,
        attachment: VideoAttachment,
        at: datetime,
    ) -> CancellationRequest:
        try:
            url = await self.evidence_storage.upload_video(
                request.request_id, attachment
            )
        except Exception as e:
            logger.error(
                "Evidence upload failed",
                extra={
                    "request_id": request.request_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise EvidenceUploadFailed(
                "Video upload failed; please retry the upload",
                request_id=request.request_id,
            ) from e

        updated = await self.request_repo.attach_video(
            request.request_id, url, at
        )
        if updated is None:
            raise AlreadyResolved(
                f"Cancellation request {request.request_id} was resolved "
                f"before its video was stored"
            )

        logger.info(
            "Evidence video stored",
            extra={"request_id": request.request_id, "video_url": url},
        )
        return updated
