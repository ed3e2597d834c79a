"""
Checkout API router.

Routes:
- POST /checkout - place an order (cod) or open a prepaid checkout
- GET /checkout/{reference} - fetch an open or closed checkout
- POST /checkout/{reference}/commit - commit a completed payment
- POST /checkout/{reference}/abandon - give up on a prepaid checkout

These routes are mounted with the '/checkout' prefix in the main app.
"""

import logging

from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_checkout_use_case, get_user_id
from storefront.api.requests import CheckoutRequest, CommitPaymentRequest
from storefront.domain import CheckoutResult, CheckoutSession, Order
from storefront.use_cases import CheckoutUseCase

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=CheckoutResult, status_code=201)
async def place_order(
    request: CheckoutRequest,
    user_id: str = Depends(get_user_id),
    checkout: CheckoutUseCase = Depends(get_checkout_use_case),
) -> CheckoutResult:
    """
    Price the cart and either record a cash-on-delivery order or open a
    prepaid checkout. For prepaid methods the response carries the payment
    intent the client hands to the payment provider; no order exists until
    the payment is committed.
    """
    logger.info(
        "Checkout requested",
        extra={
            "user_id": user_id,
            "payment_method": request.payment_method.value,
            "item_count": len(request.items),
        },
    )
    return await checkout.place_order(
        user_id,
        request.cart_for(user_id),
        request.address_id,
        request.payment_method,
    )


@router.get("/{reference}", response_model=CheckoutSession)
async def get_checkout(
    reference: str,
    user_id: str = Depends(get_user_id),
    checkout: CheckoutUseCase = Depends(get_checkout_use_case),
) -> CheckoutSession:
    return await checkout.get_session(reference, user_id)


@router.post("/{reference}/commit", response_model=Order)
async def commit_payment(
    reference: str,
    request: CommitPaymentRequest,
    user_id: str = Depends(get_user_id),
    checkout: CheckoutUseCase = Depends(get_checkout_use_case),
) -> Order:
    """Record the order for a completed payment and verify it."""
    logger.info(
        "Payment commit requested",
        extra={
            "reference": reference,
            "user_id": user_id,
            "payment_reference": request.payment_reference,
        },
    )
    return await checkout.commit_payment(
        reference, user_id, request.to_proof()
    )


@router.post("/{reference}/abandon", response_model=CheckoutSession)
async def abandon_checkout(
    reference: str,
    user_id: str = Depends(get_user_id),
    checkout: CheckoutUseCase = Depends(get_checkout_use_case),
) -> CheckoutSession:
    return await checkout.abandon_checkout(reference, user_id)
