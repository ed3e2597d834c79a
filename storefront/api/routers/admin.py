"""
Admin API router.

Every route requires the X-Admin-Id header; the id is recorded as the actor
on whatever the route changes. Listings are paginated.
"""

import logging
from typing import Optional, cast

from fastapi import APIRouter, Depends
from fastapi_pagination import Page, paginate

from storefront.api.dependencies import (
    get_admin_id,
    get_cancellation_use_case,
    get_order_ledger,
    get_reconciliation_use_case,
    get_refund_dispatcher,
)
from storefront.api.requests import ResolveCaseRequest, UpdateOrderStatusRequest
from storefront.domain import (
    CancellationDecision,
    CancellationRequest,
    CancellationStatus,
    Order,
    OrderStatus,
    ReconciliationCase,
    Refund,
    RefundOutcome,
    RefundStatus,
)
from storefront.use_cases import (
    CancellationUseCase,
    OrderLedgerUseCase,
    ReconciliationUseCase,
    RefundDispatcher,
)

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(get_admin_id)])


@router.get("/orders", response_model=Page[Order])
async def list_orders(
    status: Optional[OrderStatus] = None,
    ledger: OrderLedgerUseCase = Depends(get_order_ledger),
) -> Page[Order]:
    orders = await ledger.list_orders(status)
    return cast(Page[Order], paginate(orders))


@router.patch("/orders/{order_id}/status", response_model=Order)
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    admin_id: str = Depends(get_admin_id),
    ledger: OrderLedgerUseCase = Depends(get_order_ledger),
) -> Order:
    logger.info(
        "Order status change requested",
        extra={
            "order_id": order_id,
            "new_status": request.status.value,
            "actor": admin_id,
        },
    )
    return await ledger.advance_status(order_id, request.status)


@router.get(
    "/cancellation-requests", response_model=Page[CancellationRequest]
)
async def list_cancellation_requests(
    status: Optional[CancellationStatus] = None,
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> Page[CancellationRequest]:
    requests = await cancellations.list_requests(status)
    return cast(Page[CancellationRequest], paginate(requests))


@router.post(
    "/cancellation-requests/{request_id}/approve",
    response_model=CancellationDecision,
)
async def approve_cancellation_request(
    request_id: str,
    admin_id: str = Depends(get_admin_id),
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> CancellationDecision:
    """
    Approve a request: the order is cancelled and, where the refund table
    calls for it, a refund is issued. A refund that could not reach the
    payment provider is reported in `refund` and does not undo the
    approval.
    """
    return await cancellations.decide(
        request_id, CancellationStatus.APPROVED, admin_id
    )


@router.post(
    "/cancellation-requests/{request_id}/reject",
    response_model=CancellationDecision,
)
async def reject_cancellation_request(
    request_id: str,
    admin_id: str = Depends(get_admin_id),
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> CancellationDecision:
    return await cancellations.decide(
        request_id, CancellationStatus.REJECTED, admin_id
    )


@router.get("/refunds", response_model=Page[Refund])
async def list_refunds(
    status: Optional[RefundStatus] = None,
    refunds: RefundDispatcher = Depends(get_refund_dispatcher),
) -> Page[Refund]:
    return cast(Page[Refund], paginate(await refunds.list_refunds(status)))


@router.get("/refunds/{order_id}", response_model=Refund)
async def get_refund(
    order_id: str,
    refunds: RefundDispatcher = Depends(get_refund_dispatcher),
) -> Refund:
    return await refunds.get_refund_for_order(order_id)


@router.post("/refunds/{request_id}/retry", response_model=RefundOutcome)
async def retry_refund(
    request_id: str,
    admin_id: str = Depends(get_admin_id),
    refunds: RefundDispatcher = Depends(get_refund_dispatcher),
) -> RefundOutcome:
    logger.info(
        "Refund retry requested",
        extra={"request_id": request_id, "actor": admin_id},
    )
    return await refunds.retry_refund(request_id)


@router.patch("/refunds/{order_id}/complete", response_model=Refund)
async def complete_refund(
    order_id: str,
    admin_id: str = Depends(get_admin_id),
    refunds: RefundDispatcher = Depends(get_refund_dispatcher),
) -> Refund:
    """Record that an initiated refund has been paid out."""
    return await refunds.mark_completed(order_id, admin_id)


@router.get("/reconciliation", response_model=Page[ReconciliationCase])
async def list_reconciliation_cases(
    resolved: Optional[bool] = False,
    reconciliation: ReconciliationUseCase = Depends(
        get_reconciliation_use_case
    ),
) -> Page[ReconciliationCase]:
    cases = await reconciliation.list_cases(resolved)
    return cast(Page[ReconciliationCase], paginate(cases))


@router.post(
    "/reconciliation/{case_id}/reverify", response_model=ReconciliationCase
)
async def reverify_case(
    case_id: str,
    reconciliation: ReconciliationUseCase = Depends(
        get_reconciliation_use_case
    ),
) -> ReconciliationCase:
    return await reconciliation.reverify(case_id)


@router.post(
    "/reconciliation/{case_id}/resolve", response_model=ReconciliationCase
)
async def resolve_case(
    case_id: str,
    request: ResolveCaseRequest,
    admin_id: str = Depends(get_admin_id),
    reconciliation: ReconciliationUseCase = Depends(
        get_reconciliation_use_case
    ),
) -> ReconciliationCase:
    return await reconciliation.resolve_case(
        case_id, request.action, admin_id, request.note
    )
