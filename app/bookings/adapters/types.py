"""
Result and error value types shared by the provider adapters.

Adapters never let SDK or HTTP exceptions cross their boundary. Every
call returns either a result dataclass or a ProviderError value
(PaymentError / SchedulingError) classified into a closed taxonomy, so
callers decide retry-vs-fatal without knowing provider exception types.

Usage:
    result = StripeAdapter.create_refund(charge_id, booking_id=booking.id)
    if isinstance(result, PaymentError):
        if result.is_retryable:
            ...
"""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings
from django.db import models


class ProviderErrorKind(models.TextChoices):
    """
    Normalized provider error categories.

    RATE_LIMIT and UNKNOWN (connection failures, timeouts, 5xx) are
    retryable. The rest are permanent for the given request.
    """

    AUTHENTICATION = "AUTHENTICATION", "Authentication"
    CARD_DECLINED = "CARD_DECLINED", "Card Declined"
    RATE_LIMIT = "RATE_LIMIT", "Rate Limit"
    INVALID_REQUEST = "INVALID_REQUEST", "Invalid Request"
    UNKNOWN = "UNKNOWN", "Unknown"


RETRYABLE_KINDS = frozenset({ProviderErrorKind.RATE_LIMIT, ProviderErrorKind.UNKNOWN})


@dataclass(frozen=True)
class ProviderError:
    """
    Normalized failure of a provider call.

    Attributes:
        kind: ProviderErrorKind value
        message: Human-readable description (safe to log)
        provider: "stripe" or "calendly"
        provider_code: Provider-specific code, if any
        details: Extra context (status code, decline code, ...)
    """

    kind: str
    message: str
    provider: str = ""
    provider_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


@dataclass(frozen=True)
class PaymentError(ProviderError):
    provider: str = "stripe"


@dataclass(frozen=True)
class SchedulingError(ProviderError):
    provider: str = "calendly"


# =============================================================================
# Payment Results
# =============================================================================


@dataclass
class CheckoutSessionResult:
    """
    Result of creating a Checkout Session.

    Attributes:
        session_id: Checkout Session ID (cs_xxx)
        redirect_url: Hosted checkout page for the client
        raw_response: Full Stripe response dict (for debugging)
    """

    session_id: str
    redirect_url: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionSnapshot:
    """
    Point-in-time view of a Checkout Session, used for backfill.

    Attributes:
        status: open, complete or expired
        payment_status: paid, unpaid or no_payment_required
        payment_intent_id: PaymentIntent that holds the charge, if any
    """

    session_id: str
    status: str
    payment_status: str
    payment_intent_id: str | None = None
    amount_total: int | None = None
    currency: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.status == "complete" and self.payment_status == "paid"


@dataclass
class RefundResult:
    refund_id: str
    status: str
    amount_cents: int | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class VoidResult:
    """
    Outcome of voiding a checkout session.

    action is one of: expired, refunded, noop.
    """

    action: str
    session_id: str
    refund: RefundResult | None = None
    payment_intent_id: str | None = None


# =============================================================================
# Scheduling Results
# =============================================================================


@dataclass
class SchedulingLinkResult:
    scheduling_url: str
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class SchedulingAck:
    external_event_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for provider calls.

    Format: "{operation}:{booking_id}:{attempt}:{hash}"

    The key is a pure function of its inputs, so a coordinator retry
    after a crash mid-command sends the same key and the provider
    returns the original object instead of creating a second one.

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="issue_refund",
            entity_id=booking.id,
        )
        # "issue_refund:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]
        return f"{operation}:{entity_str}:{attempt}:{short_hash}"
