"""
Checkout orchestration.

Cash on delivery orders are recorded straight away. Prepaid orders go
through three explicit phases:

1. Intent: price the cart, create a gateway intent against a disposable
   `chk_` reference and keep an OPEN checkout session. No order exists.
2. Collection: the client drives the provider's payment widget with the
   intent. This engine takes no part and simply waits.
3. Commit: on the provider's success callback the order is recorded, then
   the payment proof is verified against it. A cancelled or failed
   collection abandons the session instead; no order is written and the
   cart is left alone.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from pydantic import BaseModel

from storefront.domain import (
    Cart,
    CheckoutResult,
    CheckoutSession,
    CheckoutStatus,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentProof,
    ReconciliationKind,
    ReconciliationStatus,
    money,
    utcnow,
)
from storefront.exceptions import (
    CheckoutClosed,
    CheckoutSessionNotFound,
    EmptyCart,
    MissingAddress,
    ProductNotFound,
    ReconciliationRequired,
)
from storefront.repositories import (
    AddressRepository,
    CartRepository,
    CatalogRepository,
    CheckoutSessionRepository,
    PaymentGateway,
)
from storefront.use_cases.orders import OrderLedgerUseCase
from storefront.use_cases.reconciliation import ReconciliationUseCase
from storefront.validation import (
    ensure_address_repository,
    ensure_cart_repository,
    ensure_catalog_repository,
    ensure_checkout_session_repository,
    ensure_payment_gateway,
)

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


class PricedCart(BaseModel):
    """Line items and totals snapshotted from the catalog."""

    items: List[OrderItem]
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


class CheckoutUseCase:
    """
    Turns carts into orders.

    Architectural Notes:
    - For prepaid methods the commit phase is the only place an order is
      created, and it is idempotent on the provider's payment reference: a
      callback that fires twice yields one order.
    - A verification failure after the order was written never deletes the
      order and never marks it paid. The order is flagged and a
      reconciliation case is opened.
    """

    def __init__(
        self,
        ledger: OrderLedgerUseCase,
        session_repo: CheckoutSessionRepository,
        gateway: PaymentGateway,
        catalog: CatalogRepository,
        addresses: AddressRepository,
        carts: CartRepository,
        reconciliation: ReconciliationUseCase,
    ) -> None:
        self.ledger = ledger
        self.session_repo = ensure_checkout_session_repository(session_repo)
        self.gateway = ensure_payment_gateway(gateway)
        self.catalog = ensure_catalog_repository(catalog)
        self.addresses = ensure_address_repository(addresses)
        self.carts = ensure_cart_repository(carts)
        self.reconciliation = reconciliation

    async def place_order(
        self,
        user_id: str,
        cart: Cart,
        address_id: str,
        payment_method: PaymentMethod,
        now: Optional[datetime] = None,
    ) -> CheckoutResult:
        """Start checkout for a cart.

        Returns:
            CheckoutResult with `order` for cash on delivery, or with
            `session` and `intent` for a prepaid method awaiting collection.

        Raises:
            EmptyCart, MissingAddress, ProductNotFound, PaymentGatewayError
        """
        at = now or utcnow()
        logger.info(
            "Placing order",
            extra={
                "user_id": user_id,
                "payment_method": payment_method.value,
                "item_count": len(cart.items),
            },
        )

        if not cart.items:
            raise EmptyCart("Cart is empty")

        address = await self.addresses.get_address(address_id)
        if address is None or address.user_id != user_id:
            raise MissingAddress(f"Delivery address {address_id} not found")

        priced = await self.price_cart(cart)

        if not payment_method.is_prepaid:
            order = Order(
                order_id=await self.ledger.new_order_id(),
                user_id=user_id,
                status=OrderStatus.PENDING,
                payment_method=payment_method,
                items=priced.items,
                total_amount=priced.total_amount,
                discount_amount=priced.discount_amount,
                tax_amount=priced.tax_amount,
                address=address.snapshot(),
                created_at=at,
            )
            order = await self.ledger.create(order)
            await self._clear_cart(user_id)
            return CheckoutResult(order=order)

        reference = await self.session_repo.generate_reference()
        try:
            intent = await self.gateway.create_intent(
                priced.total_amount, reference
            )
        except Exception as e:
            logger.error(
                "Payment intent creation failed",
                extra={
                    "reference": reference,
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            raise

        session = await self.session_repo.save_session(
            CheckoutSession(
                reference=reference,
                user_id=user_id,
                payment_method=payment_method,
                intent_id=intent.intent_id,
                amount=priced.total_amount,
                items=priced.items,
                discount_amount=priced.discount_amount,
                tax_amount=priced.tax_amount,
                address=address.snapshot(),
                status=CheckoutStatus.OPEN,
                created_at=at,
                updated_at=at,
            )
        )
        logger.info(
            "Checkout session opened",
            extra={
                "reference": reference,
                "intent_id": intent.intent_id,
                "amount": str(priced.total_amount),
            },
        )
        return CheckoutResult(session=session, intent=intent)

    async def commit_payment(
        self,
        reference: str,
        user_id: str,
        proof: PaymentProof,
        now: Optional[datetime] = None,
    ) -> Order:
        """Commit phase, run on the provider's success callback.

        Returns:
            The order: PAID when the proof verified, otherwise PENDING and
            flagged NEEDS_RECONCILIATION.

        Raises:
            CheckoutSessionNotFound: unknown reference or not the caller's
            CheckoutClosed: the session was abandoned, or committed with a
                different payment reference
            ReconciliationRequired: the payment was collected but the order
                could not be written
        """
        at = now or utcnow()
        session = await self._owned_session(reference, user_id)

        if session.status is CheckoutStatus.OPEN:
            claimed = await self.session_repo.claim_commit(
                reference,
                proof.payment_reference,
                await self.ledger.new_order_id(),
                at,
            )
            if claimed is not None:
                session = claimed
            else:
                session = await self._owned_session(reference, user_id)
                if session.status is CheckoutStatus.OPEN:
                    raise CheckoutClosed(
                        f"Payment {proof.payment_reference} is already "
                        f"committed to another checkout"
                    )

        if session.status is CheckoutStatus.ABANDONED:
            raise CheckoutClosed(f"Checkout {reference} was abandoned")

        if session.payment_reference != proof.payment_reference:
            logger.warning(
                "Commit replayed with a different payment reference",
                extra={
                    "reference": reference,
                    "committed_payment": session.payment_reference,
                    "offered_payment": proof.payment_reference,
                },
            )
            raise CheckoutClosed(
                f"Checkout {reference} was already committed"
            )

        order_id, committed_reference = self._commit_keys(session)
        order = await self.ledger.find_order(order_id)
        if order is None:
            order = await self._record_order(
                session, order_id, committed_reference, proof, at
            )
        await self.reconciliation.close_recorded_order(reference, order_id, at)

        if (
            order.status is OrderStatus.PENDING
            and order.reconciliation_status is ReconciliationStatus.NONE
        ):
            order = await self._verify(session, order, proof, at)

        await self._clear_cart(user_id)
        return order

    async def abandon_checkout(
        self, reference: str, user_id: str, now: Optional[datetime] = None
    ) -> CheckoutSession:
        """The customer cancelled or the payment widget errored."""
        session = await self._owned_session(reference, user_id)
        if session.status is CheckoutStatus.ABANDONED:
            return session
        if session.status is CheckoutStatus.COMMITTED:
            raise CheckoutClosed(f"Checkout {reference} was already committed")

        abandoned = await self.session_repo.abandon(reference, now or utcnow())
        if abandoned is None:
            session = await self._owned_session(reference, user_id)
            if session.status is not CheckoutStatus.ABANDONED:
                raise CheckoutClosed(
                    f"Checkout {reference} was already committed"
                )
            return session

        logger.info(
            "Checkout abandoned",
            extra={"reference": reference, "user_id": user_id},
        )
        return abandoned

    async def get_session(self, reference: str, user_id: str) -> CheckoutSession:
        return await self._owned_session(reference, user_id)

    async def price_cart(self, cart: Cart) -> PricedCart:
        """Snapshot catalog prices for every cart line.

        unit price = price * (1 - discount% / 100), and the order total is
        the sum of discounted lines plus tax on them. Every amount is
        rounded half up to two places.
        """
        items: List[OrderItem] = []
        discount = Decimal("0")
        tax = Decimal("0")
        subtotal = Decimal("0")

        for line in cart.items:
            product = await self.catalog.get_product(line.product_id)
            if product is None:
                raise ProductNotFound(f"Product {line.product_id} not found")

            line_discount = product.price * product.discount_percent / HUNDRED
            unit_price = money(product.price - line_discount)
            line_total = unit_price * line.quantity

            discount += line_discount * line.quantity
            tax += line_total * product.tax_rate
            subtotal += line_total
            items.append(
                OrderItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=unit_price,
                    variant=line.variant,
                )
            )

        tax_amount = money(tax)
        return PricedCart(
            items=items,
            discount_amount=money(discount),
            tax_amount=tax_amount,
            total_amount=money(subtotal + tax_amount),
        )

    def _commit_keys(self, session: CheckoutSession) -> Tuple[str, str]:
        if session.order_id is None or session.payment_reference is None:
            raise CheckoutClosed(
                f"Checkout {session.reference} has no committed payment"
            )
        return session.order_id, session.payment_reference

    async def _record_order(
        self,
        session: CheckoutSession,
        order_id: str,
        payment_reference: str,
        proof: PaymentProof,
        at: datetime,
    ) -> Order:
        try:
            return await self.ledger.create(
                session.to_order(order_id, payment_reference, at)
            )
        except Exception as e:
            logger.error(
                "Payment collected but the order could not be recorded",
                extra={
                    "reference": session.reference,
                    "order_id": order_id,
                    "payment_reference": payment_reference,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            case = await self.reconciliation.open_case(
                ReconciliationKind.ORDER_CREATION_FAILED,
                session.reference,
                f"Order write failed: {type(e).__name__}: {e}",
                order_id=order_id,
                proof=proof,
                now=at,
            )
            raise ReconciliationRequired(
                "Your payment was received and your order is being "
                "processed by our support team",
                case_id=case.case_id,
                order_id=order_id,
            ) from e

    async def _verify(
        self,
        session: CheckoutSession,
        order: Order,
        proof: PaymentProof,
        at: datetime,
    ) -> Order:
        detail: Optional[str] = None
        try:
            verified = await self.gateway.verify(
                session.intent_id, proof, order.order_id
            )
            if not verified:
                detail = "Payment signature did not verify"
        except Exception as e:
            logger.error(
                "Payment verification call failed",
                extra={
                    "order_id": order.order_id,
                    "intent_id": session.intent_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
            detail = f"Verification error: {type(e).__name__}: {e}"

        if detail is None:
            paid = await self.ledger.mark_paid(order.order_id)
            logger.info(
                "Payment verified",
                extra={
                    "order_id": order.order_id,
                    "payment_reference": proof.payment_reference,
                },
            )
            return paid

        flagged = await self.ledger.flag_for_reconciliation(
            order.order_id, detail
        )
        await self.reconciliation.open_case(
            ReconciliationKind.VERIFICATION_FAILED,
            session.reference,
            detail,
            order_id=order.order_id,
            proof=proof,
            now=at,
        )
        return flagged

    async def _owned_session(
        self, reference: str, user_id: str
    ) -> CheckoutSession:
        session = await self.session_repo.get_session(reference)
        if session is None or session.user_id != user_id:
            raise CheckoutSessionNotFound(f"Checkout {reference} not found")
        return session

    async def _clear_cart(self, user_id: str) -> None:
        try:
            await self.carts.clear_cart(user_id)
        except Exception as e:
            logger.warning(
                "Failed to clear cart after order",
                extra={
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error": str(e),
                },
                exc_info=True,
            )
