"""
Error taxonomy for the order, checkout and cancellation engine.

Every error a use case raises on purpose derives from StorefrontError and
carries the HTTP status the API layer reports it with. The families are:

- ValidationFailure: bad input, rejected before any side effect.
- NotFoundError: the addressed record does not exist (or is not yours).
- ConflictError: business policy forbids the operation in the current state.
- ExternalDependencyError: a collaborator (gateway, storage) failed; local
  state is left consistent and the caller may retry.
- ReconciliationRequired: payment and order records disagree; an operator
  case was opened.
"""

from typing import Optional


class StorefrontError(Exception):
    """Base class for errors raised by storefront use cases."""

    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(StorefrontError):
    http_status = 400


class InvalidReason(ValidationFailure):
    pass


class MissingEvidence(ValidationFailure):
    pass


class InvalidEvidence(ValidationFailure):
    pass


class InvalidUpiId(ValidationFailure):
    pass


class MissingAddress(ValidationFailure):
    pass


class EmptyCart(ValidationFailure):
    pass


class InvalidResolution(ValidationFailure):
    pass


class NotFoundError(StorefrontError):
    http_status = 404


class OrderNotFound(NotFoundError):
    pass


class CancellationNotFound(NotFoundError):
    pass


class RefundNotFound(NotFoundError):
    pass


class CheckoutSessionNotFound(NotFoundError):
    pass


class ProductNotFound(NotFoundError):
    pass


class ReconciliationCaseNotFound(NotFoundError):
    pass


class ConflictError(StorefrontError):
    http_status = 409


class AlreadyCancelled(ConflictError):
    pass


class InTransit(ConflictError):
    pass


class DuplicateRequest(ConflictError):
    pass


class AlreadyResolved(ConflictError):
    pass


class InvalidStatusTransition(ConflictError):
    pass


class UnclassifiableOrder(ConflictError):
    pass


class RefundNotAllowed(ConflictError):
    pass


class RefundNotRetryable(ConflictError):
    pass


class CheckoutClosed(ConflictError):
    pass


class ExternalDependencyError(StorefrontError):
    http_status = 503


class PaymentGatewayError(ExternalDependencyError):
    pass


class EvidenceUploadFailed(ExternalDependencyError):
    """Video storage failed. The request itself, if any, is kept."""

    def __init__(self, message: str, request_id: Optional[str] = None):
        super().__init__(message)
        self.request_id = request_id


class ReconciliationRequired(StorefrontError):
    """Payment and order records disagree and need an operator."""

    http_status = 202

    def __init__(
        self,
        message: str,
        case_id: str,
        order_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.case_id = case_id
        self.order_id = order_id
