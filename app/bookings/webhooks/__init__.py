"""
Inbound webhook handling for Stripe and Calendly.

Bodies are verified against the provider's signing secrets, then
decoded into NormalizedEvent values for the state machine. The HTTP
views live in bookings.webhooks.views and are wired in bookings.urls.
"""

from bookings.webhooks.decoders import decode_event, parse_payload, provider_event_type
from bookings.webhooks.verification import (
    CALENDLY_SIGNATURE_HEADER,
    STRIPE_SIGNATURE_HEADER,
    SignatureVerifier,
    VerifiedEvent,
    compute_signature,
    parse_signature_header,
)

__all__ = [
    "CALENDLY_SIGNATURE_HEADER",
    "STRIPE_SIGNATURE_HEADER",
    "SignatureVerifier",
    "VerifiedEvent",
    "compute_signature",
    "decode_event",
    "parse_payload",
    "parse_signature_header",
    "provider_event_type",
]
