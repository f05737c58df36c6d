"""
Provider adapters for the booking engine.

- StripeAdapter: checkout sessions and refunds (payment orchestrator)
- CalendlyAdapter: scheduling links and event cancellation (scheduling orchestrator)

Both return result dataclasses or ProviderError values, never raise.
"""

from bookings.adapters.calendly_adapter import CalendlyAdapter, InviteeContact
from bookings.adapters.stripe_adapter import StripeAdapter
from bookings.adapters.types import (
    CheckoutSessionResult,
    IdempotencyKeyGenerator,
    PaymentError,
    ProviderError,
    ProviderErrorKind,
    RefundResult,
    SchedulingAck,
    SchedulingError,
    SchedulingLinkResult,
    SessionSnapshot,
    VoidResult,
)

__all__ = [
    "CalendlyAdapter",
    "CheckoutSessionResult",
    "IdempotencyKeyGenerator",
    "InviteeContact",
    "PaymentError",
    "ProviderError",
    "ProviderErrorKind",
    "RefundResult",
    "SchedulingAck",
    "SchedulingError",
    "SchedulingLinkResult",
    "SessionSnapshot",
    "StripeAdapter",
    "VoidResult",
]
