"""
Runtime validation utilities for ensuring architectural contracts and
customer input integrity.

This module provides functions to validate:

- Repository and collaborator implementations against their Protocols
  using @runtime_checkable.
- Cancellation input: reasons, UPI ids and evidence video uploads.

The goal is to catch configuration and data errors early at critical
application boundaries, before anything is persisted.
"""

import logging
import os
import re
from typing import Any, Type, TypeVar

from storefront.domain import ALLOWED_VIDEO_CONTENT_TYPES, video_media_type
from storefront.exceptions import InvalidEvidence, InvalidReason, InvalidUpiId

logger = logging.getLogger(__name__)

P = TypeVar("P")

MIN_REASON_LENGTH = 10

# local@provider, e.g. "asha.k-92@okaxis"
UPI_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{2,256}@[A-Za-z][A-Za-z0-9]{1,63}$")

MAX_VIDEO_BYTES = 50 * 1024 * 1024


class RepositoryValidationError(Exception):
    """Raised when repository contract validation fails"""

    pass


def validate_repository_protocol(
    repository: object, protocol: Type[P]
) -> None:
    """
    Validate that a repository implementation satisfies a protocol contract.

    Uses Python's built-in isinstance() with @runtime_checkable for robust,
    idiomatic protocol validation.

    Args:
        repository: The repository implementation to validate
        protocol: The protocol class to validate against

    Raises:
        RepositoryValidationError: If validation fails
    """
    logger.debug(
        "Validating repository protocol",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )

    if not isinstance(repository, protocol):
        error_message = (
            f"Repository {type(repository).__name__} does not implement "
            f"{protocol.__name__} protocol. Missing or incorrect methods."
        )

        logger.error(
            "Repository protocol validation failed",
            extra={
                "repository_type": type(repository).__name__,
                "protocol_name": protocol.__name__,
            },
        )

        raise RepositoryValidationError(error_message)

    logger.debug(
        "Repository protocol validation passed",
        extra={
            "repository_type": type(repository).__name__,
            "protocol_name": protocol.__name__,
        },
    )


def ensure_repository_protocol(repository: object, protocol: Type[P]) -> P:
    """
    Validate and return a repository with proper type annotation.

    This provides both runtime validation and static type checking benefits.
    """
    validate_repository_protocol(repository, protocol)
    return repository  # type: ignore[return-value]


def normalize_reason(reason: str) -> str:
    """Strip a cancellation reason and enforce its minimum length."""
    stripped = (reason or "").strip()
    if len(stripped) < MIN_REASON_LENGTH:
        raise InvalidReason(
            f"Reason must be at least {MIN_REASON_LENGTH} characters"
        )
    return stripped


def validate_upi_id(upi_id: str) -> str:
    """Check that a refund destination looks like `local@provider`."""
    candidate = (upi_id or "").strip()
    if not UPI_ID_PATTERN.match(candidate):
        raise InvalidUpiId(f"Invalid UPI id: {upi_id!r}")
    return candidate


def validate_video_upload(
    data: bytes, declared_content_type: str, filename: str
) -> None:
    """
    Validate security constraints on an evidence video upload.

    Raises:
        InvalidEvidence: If the upload is not an acceptable video
    """
    if filename.startswith("."):
        raise InvalidEvidence(
            "Hidden files (starting with '.') are not allowed"
        )

    media_type = video_media_type(declared_content_type)
    if media_type not in ALLOWED_VIDEO_CONTENT_TYPES:
        raise InvalidEvidence(
            f"Evidence must be an MP4, WebM, MOV, AVI or MKV video, got "
            f"{declared_content_type}"
        )

    if not data:
        raise InvalidEvidence("Video file cannot be empty")

    if len(data) > MAX_VIDEO_BYTES:
        raise InvalidEvidence(
            f"Video exceeds the {MAX_VIDEO_BYTES} byte upload limit"
        )

    executable_signatures = [
        b"MZ",  # Windows PE
        b"\x7fELF",  # Linux ELF
        b"\xca\xfe\xba\xbe",  # Java class file
        b"PK\x03\x04",  # ZIP
    ]
    for sig in executable_signatures:
        if data.startswith(sig):
            raise InvalidEvidence(
                f"File appears to be executable but declared as "
                f"{declared_content_type}"
            )


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe storage.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for storage
    """
    # Remove path components
    sanitized = os.path.basename(filename.strip())

    # Replace dangerous characters with underscores
    sanitized = re.sub(r'[<>:"/\\|?*]', "_", sanitized)

    # Remove control characters
    sanitized = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", sanitized)

    if len(sanitized) > 255:
        name, ext = os.path.splitext(sanitized)
        sanitized = name[: 255 - len(ext)] + ext

    if not sanitized:
        sanitized = "evidence.mp4"

    return sanitized


# Convenience functions for common validation patterns
def ensure_order_repository(repo: object) -> Any:
    """Ensure an object satisfies the OrderRepository protocol"""
    from storefront.repositories import OrderRepository

    return ensure_repository_protocol(repo, OrderRepository)  # type: ignore[type-abstract]


def ensure_cancellation_request_repository(repo: object) -> Any:
    """Ensure an object satisfies the CancellationRequestRepository protocol"""
    from storefront.repositories import CancellationRequestRepository

    return ensure_repository_protocol(repo, CancellationRequestRepository)  # type: ignore[type-abstract]


def ensure_refund_repository(repo: object) -> Any:
    """Ensure an object satisfies the RefundRepository protocol"""
    from storefront.repositories import RefundRepository

    return ensure_repository_protocol(repo, RefundRepository)  # type: ignore[type-abstract]


def ensure_checkout_session_repository(repo: object) -> Any:
    """Ensure an object satisfies the CheckoutSessionRepository protocol"""
    from storefront.repositories import CheckoutSessionRepository

    return ensure_repository_protocol(repo, CheckoutSessionRepository)  # type: ignore[type-abstract]


def ensure_reconciliation_repository(repo: object) -> Any:
    """Ensure an object satisfies the ReconciliationRepository protocol"""
    from storefront.repositories import ReconciliationRepository

    return ensure_repository_protocol(repo, ReconciliationRepository)  # type: ignore[type-abstract]


def ensure_payment_gateway(gateway: object) -> Any:
    """Ensure an object satisfies the PaymentGateway protocol"""
    from storefront.repositories import PaymentGateway

    return ensure_repository_protocol(gateway, PaymentGateway)  # type: ignore[type-abstract]


def ensure_evidence_storage(storage: object) -> Any:
    """Ensure an object satisfies the EvidenceStorage protocol"""
    from storefront.repositories import EvidenceStorage

    return ensure_repository_protocol(storage, EvidenceStorage)  # type: ignore[type-abstract]


def ensure_catalog_repository(repo: object) -> Any:
    from storefront.repositories import CatalogRepository

    return ensure_repository_protocol(repo, CatalogRepository)  # type: ignore[type-abstract]


def ensure_address_repository(repo: object) -> Any:
    from storefront.repositories import AddressRepository

    return ensure_repository_protocol(repo, AddressRepository)  # type: ignore[type-abstract]


def ensure_cart_repository(repo: object) -> Any:
    from storefront.repositories import CartRepository

    return ensure_repository_protocol(repo, CartRepository)  # type: ignore[type-abstract]
