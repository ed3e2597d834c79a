"""
Repository and collaborator interfaces defined as Protocols.

All repository operations in this module follow these principles:

- **Idempotency**: Reads are side-effect free. Writes are either
  idempotent (saving the same record twice stores it once) or expressed as
  compare-and-swap transitions that report, rather than raise, when the
  record was not in the expected state. Callers decide what a lost race
  means in business terms.

- **Store-enforced uniqueness**: "at most one unresolved cancellation
  request per order", "at most one refund per request" and "one checkout
  commit per payment reference" are enforced by the store itself, not by a
  read-then-write in the caller. Two racing writers can never both succeed.

- **Workflow Safety**: All operations are safe to call from deterministic
  workflow contexts. Non-deterministic operations (ID generation, network
  calls) live behind these methods so a workflow can delegate them to
  activities.

- **Domain Objects**: Methods accept and return domain objects or
  primitives, never framework-specific types.

In Temporal workflow contexts, these protocols are implemented by workflow
proxies that delegate to activities for durability and proper error
handling.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol, runtime_checkable

from storefront.domain import (
    Address,
    CancellationRequest,
    CancellationStatus,
    CheckoutSession,
    GatewayRefund,
    Order,
    OrderStatus,
    PaymentIntent,
    PaymentProof,
    ProductPricing,
    ReconciliationAction,
    ReconciliationCase,
    ReconciliationKind,
    Refund,
    RefundInstruction,
    RefundStatus,
    VideoAttachment,
)


@runtime_checkable
class OrderRepository(Protocol):
    """The order ledger's storage.

    The ledger is the only writer of order status. Every status change is a
    compare-and-swap on the status the caller last observed, so a stale
    writer (an admin advancing an order while an approval cancels it)
    loses cleanly instead of overwriting.
    """

    async def generate_order_id(self) -> str:
        """Generate a unique order identifier.

        Implementation Notes:
        - Non-deterministic; in workflows this must run as an activity
        """
        ...

    async def save_order(self, order: Order) -> Order:
        """Insert a new order.

        Args:
            order: Fully priced order, normally in PENDING status

        Returns:
            The stored order. If an order with the same id already exists
            the existing record is returned unchanged, which makes replays
            of a checkout commit safe.
        """
        ...

    async def get_order(self, order_id: str) -> Optional[Order]:
        """Retrieve an order by id, or None if it does not exist."""
        ...

    async def list_orders(
        self, status: Optional[OrderStatus] = None
    ) -> List[Order]:
        """List orders, newest first, optionally filtered by status."""
        ...

    async def list_orders_for_user(self, user_id: str) -> List[Order]:
        """List one customer's orders, newest first."""
        ...

    async def update_order(
        self, order: Order, expected_status: OrderStatus
    ) -> Optional[Order]:
        """Replace an order if its stored status still equals
        `expected_status`.

        Args:
            order: The new state of the order
            expected_status: Status the caller based the change on

        Returns:
            The stored order on success, None when the order is missing or
            its status has moved on.
        """
        ...


@runtime_checkable
class CancellationRequestRepository(Protocol):
    """Storage for cancellation requests.

    Enforces that an order has at most one PENDING request, and that a
    request leaves PENDING exactly once.
    """

    async def generate_request_id(self) -> str:
        ...

    async def insert_pending(
        self, request: CancellationRequest
    ) -> Optional[CancellationRequest]:
        """Insert a PENDING request.

        Returns:
            The stored request, or None if the order already has an
            unresolved request. The check and the insert are atomic.
        """
        ...

    async def get_request(
        self, request_id: str
    ) -> Optional[CancellationRequest]:
        ...

    async def get_latest_for_order(
        self, order_id: str
    ) -> Optional[CancellationRequest]:
        """Most recently filed request for an order, resolved or not."""
        ...

    async def list_requests(
        self, status: Optional[CancellationStatus] = None
    ) -> List[CancellationRequest]:
        """List requests, newest first, optionally filtered by status."""
        ...

    async def resolve(
        self,
        request_id: str,
        decision: CancellationStatus,
        actor: str,
        resolved_at: datetime,
    ) -> Optional[CancellationRequest]:
        """Move a request from PENDING to `decision`.

        Returns:
            The resolved request, or None if it is missing or was no
            longer PENDING. Only one concurrent caller can get a request
            back.
        """
        ...

    async def attach_video(
        self, request_id: str, video_url: str, uploaded_at: datetime
    ) -> Optional[CancellationRequest]:
        """Record the evidence video on a PENDING request.

        Returns:
            The updated request, or None if it is missing or resolved.
        """
        ...


@runtime_checkable
class RefundRepository(Protocol):
    """Storage for refunds, at most one per cancellation request."""

    async def generate_refund_id(self) -> str:
        ...

    async def claim(self, refund: Refund) -> Optional[Refund]:
        """Insert a refund unless one exists for `refund.request_id`.

        Returns:
            The stored refund, or None when the request already has one.
            This is the once-only guard for refund issuance.
        """
        ...

    async def get_by_request(self, request_id: str) -> Optional[Refund]:
        ...

    async def get_by_order(self, order_id: str) -> Optional[Refund]:
        """Most recent refund for an order."""
        ...

    async def list_refunds(
        self, status: Optional[RefundStatus] = None
    ) -> List[Refund]:
        ...

    async def update_refund(
        self, refund: Refund, expected_status: RefundStatus
    ) -> Optional[Refund]:
        """Replace a refund if its stored status equals `expected_status`.

        Returns:
            The stored refund on success, None otherwise.
        """
        ...

    async def update_dispatching(
        self, refund: Refund, expected_attempts: int
    ) -> Optional[Refund]:
        """Replace a DISPATCHING refund whose stored attempts still equal
        `expected_attempts`.

        Every dispatch claims the refund by raising `attempts`, so a
        dispatch that was taken over can neither re-claim nor overwrite it.

        Returns:
            The stored refund on success, None otherwise.
        """
        ...


@runtime_checkable
class CheckoutSessionRepository(Protocol):
    """Storage for checkout sessions created in the intent phase."""

    async def generate_reference(self) -> str:
        """Generate a locally unique `chk_` reference."""
        ...

    async def save_session(self, session: CheckoutSession) -> CheckoutSession:
        ...

    async def get_session(self, reference: str) -> Optional[CheckoutSession]:
        ...

    async def claim_commit(
        self,
        reference: str,
        payment_reference: str,
        order_id: str,
        committed_at: datetime,
    ) -> Optional[CheckoutSession]:
        """Move a session from OPEN to COMMITTED.

        The order id is assigned here, before the order exists, so a
        replay of the same commit finds the id it must (re)create.

        Returns:
            The committed session, or None if it was not OPEN.
        """
        ...

    async def abandon(
        self, reference: str, abandoned_at: datetime
    ) -> Optional[CheckoutSession]:
        """Move a session from OPEN to ABANDONED, None if it was not OPEN."""
        ...


@runtime_checkable
class ReconciliationRepository(Protocol):
    """Storage for cases where payment and order records disagree."""

    async def generate_case_id(self) -> str:
        ...

    async def open_case(self, case: ReconciliationCase) -> ReconciliationCase:
        """Store a new case.

        At most one case of a kind is open per checkout reference: when
        one already is, it is returned and `case` is not stored.
        """
        ...

    async def get_case(self, case_id: str) -> Optional[ReconciliationCase]:
        ...

    async def find_open_case(
        self, reference: str, kind: ReconciliationKind
    ) -> Optional[ReconciliationCase]:
        """The open case of `kind` for a checkout reference, if any."""
        ...

    async def list_cases(
        self, resolved: Optional[bool] = None
    ) -> List[ReconciliationCase]:
        """List cases, oldest first, optionally filtered on resolution."""
        ...

    async def resolve_case(
        self,
        case_id: str,
        action: ReconciliationAction,
        actor: str,
        note: Optional[str],
        resolved_at: datetime,
    ) -> Optional[ReconciliationCase]:
        """Close an open case, None if it is missing or already closed."""
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """The external payment provider.

    Failures to reach the provider, or refusals it reports, surface as
    PaymentGatewayError.
    """

    async def create_intent(
        self, amount: Decimal, reference: str
    ) -> PaymentIntent:
        """Create an amount-bound payment intent for a checkout reference."""
        ...

    async def verify(
        self, intent_id: str, proof: PaymentProof, order_id: str
    ) -> bool:
        """Check the provider's success callback against the intent.

        Returns:
            True when the proof is authentic for `intent_id`.
        """
        ...

    async def refund(self, instruction: RefundInstruction) -> GatewayRefund:
        """Refund a captured payment.

        The instruction carries an idempotency key; repeating a call with
        the same key must not pay out twice.
        """
        ...


@runtime_checkable
class EvidenceStorage(Protocol):
    """Where evidence videos are kept."""

    async def upload_video(
        self, request_id: str, attachment: VideoAttachment
    ) -> str:
        """Store a video bound to a cancellation request, returning its URL.

        Uploading again for the same request replaces the earlier object.
        """
        ...


@runtime_checkable
class CatalogRepository(Protocol):
    async def get_product(self, product_id: str) -> Optional[ProductPricing]:
        ...


@runtime_checkable
class AddressRepository(Protocol):
    async def get_address(self, address_id: str) -> Optional[Address]:
        ...


@runtime_checkable
class CartRepository(Protocol):
    async def clear_cart(self, user_id: str) -> None:
        ...
