"""
Booking reconciliation exceptions.

Exception Hierarchy:
    BookingError (base for the booking domain)
    ├── SignatureInvalidError - Webhook signature/timestamp rejected (HTTP 400)
    ├── PayloadDecodeError - Verified body that cannot be decoded
    ├── UnresolvableCorrelationError - No booking matches the event
    ├── BookingNotFoundError - Booking lookup by ID failed
    ├── StuckProcessingError - Ledger row abandoned mid-processing
    └── ProviderCallError - A provider command failed
        ├── RetryableProviderError - Transient; provider should redeliver
        └── FatalProviderError - Permanent; booking moves to FAILED

    ConcurrencyConflictError - Version guard matched no row (inherits ConflictError)

Duplicate deliveries are not errors: the ledger reports them as
AlreadyHandled and the webhook is acknowledged.

Usage:
    from bookings.exceptions import ConcurrencyConflictError

    if rows_updated == 0:
        raise ConcurrencyConflictError(
            f"Booking {booking_id} was modified by another process",
            details={"booking_id": str(booking_id), "expected_version": 3},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from bookings.adapters.types import ProviderError


class BookingError(BaseApplicationError):
    """Base exception for booking reconciliation."""

    default_error_code: str = "BOOKING_ERROR"


class SignatureInvalidError(BookingError):
    """
    Raised when a webhook cannot be authenticated.

    Never retried internally. The webhook view answers 400 so the
    provider's backoff does not loop against a permanently bad signature.
    """

    default_error_code: str = "SIGNATURE_INVALID"


class PayloadDecodeError(BookingError, ValidationError):
    """Raised when a verified body is not a well-formed provider event."""

    default_error_code: str = "PAYLOAD_INVALID"


class UnresolvableCorrelationError(BookingError):
    """
    Raised when no booking matches an event's correlation token.

    The event is dead-lettered with its payload; it must never create a
    booking implicitly.
    """

    default_error_code: str = "UNRESOLVABLE_CORRELATION"


class BookingNotFoundError(BookingError, NotFoundError):
    default_error_code: str = "BOOKING_NOT_FOUND"


class StuckProcessingError(BookingError):
    """Recorded by the ledger sweep on rows left PENDING past the grace period."""

    default_error_code: str = "STUCK_PROCESSING"


class ConcurrencyConflictError(BookingError, ConflictError):
    """
    Raised when a guarded booking write affects zero rows.

    Another writer committed first; the coordinator reloads the booking
    and recomputes the transition.
    """

    default_error_code: str = "CONCURRENCY_CONFLICT"


class ProviderCallError(BookingError, ExternalServiceError):
    """
    A command against a provider failed.

    Wraps the normalized ProviderError value returned by an adapter so
    the coordinator can unwind the current attempt.
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(self, error: ProviderError, command_type: str = ""):
        self.provider_error = error
        self.command_type = command_type
        super().__init__(
            error.message,
            error_code=error.kind,
            details={
                "provider": error.provider,
                "kind": error.kind,
                "command": command_type,
                **error.details,
            },
        )


class RetryableProviderError(ProviderCallError):
    """Transient provider failure (rate limit, timeout, 5xx)."""

    is_retryable = True


class FatalProviderError(ProviderCallError):
    """Permanent provider failure (auth, declined, invalid request)."""

    is_retryable = False
