"""
Customer order API router.

Every route only ever shows the caller's own orders; someone else's order
is reported as not found.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from storefront.api.dependencies import (
    get_cancellation_use_case,
    get_order_ledger,
    get_user_id,
)
from storefront.api.responses import DeliveryPhaseResponse
from storefront.delivery import classify
from storefront.domain import (
    CancellationRequest,
    DeliveryPhase,
    Order,
    utcnow,
)
from storefront.use_cases import CancellationUseCase, OrderLedgerUseCase

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[Order])
async def list_my_orders(
    user_id: str = Depends(get_user_id),
    ledger: OrderLedgerUseCase = Depends(get_order_ledger),
) -> List[Order]:
    orders = await ledger.list_user_orders(user_id)
    logger.debug(
        "Orders listed for customer",
        extra={"user_id": user_id, "count": len(orders)},
    )
    return orders


@router.get("/{order_id}", response_model=Order)
async def get_my_order(
    order_id: str,
    user_id: str = Depends(get_user_id),
    ledger: OrderLedgerUseCase = Depends(get_order_ledger),
) -> Order:
    return await ledger.get_order(order_id, user_id)


@router.get("/{order_id}/delivery-phase", response_model=DeliveryPhaseResponse)
async def get_delivery_phase(
    order_id: str,
    user_id: str = Depends(get_user_id),
    ledger: OrderLedgerUseCase = Depends(get_order_ledger),
) -> DeliveryPhaseResponse:
    """Tell the client which cancellation form to show."""
    order = await ledger.get_order(order_id, user_id)
    phase = classify(order, utcnow())
    return DeliveryPhaseResponse(
        order_id=order_id,
        delivery_phase=phase,
        evidence_required=phase is DeliveryPhase.POST_DELIVERY,
    )


@router.get(
    "/{order_id}/cancellation-request", response_model=CancellationRequest
)
async def get_my_cancellation_request(
    order_id: str,
    user_id: str = Depends(get_user_id),
    cancellations: CancellationUseCase = Depends(get_cancellation_use_case),
) -> CancellationRequest:
    return await cancellations.get_request_for_order(order_id, user_id)
