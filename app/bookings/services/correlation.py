"""
Correlation between provider events and bookings.

Outbound: every provider call that can produce a webhook embeds the
booking ID.
    - Calendly: scheduling link UTM parameters, utm_content="booking_id=<uuid>"
    - Stripe: checkout session (and PaymentIntent) metadata {"booking_id": "<uuid>"}

Inbound: CorrelationResolver maps a NormalizedEvent back to an existing
booking ID, or None. It never creates bookings: an event that matches
nothing is dead-lettered by the coordinator.
"""

from __future__ import annotations

import uuid
from urllib.parse import parse_qs, urlencode

from django.conf import settings

from core.services import BaseService

from bookings.models import Booking
from bookings.state_machines import NormalizedEvent

CORRELATION_KEY = "booking_id"

# NormalizedEvent.lookup_refs key → Booking column
REFERENCE_LOOKUPS = {
    "payment_session_id": "payment_session_id",
    "payment_charge_id": "payment_charge_id",
    "scheduling_event_id": "scheduling_event_id",
}


def scheduling_tracking(booking_id: uuid.UUID) -> dict[str, str]:
    """UTM parameters appended to a booking's scheduling link."""
    return {
        "utm_source": settings.BOOKING_UTM_SOURCE,
        "utm_campaign": settings.BOOKING_UTM_CAMPAIGN,
        "utm_content": urlencode({CORRELATION_KEY: str(booking_id)}),
    }


def payment_metadata(booking_id: uuid.UUID) -> dict[str, str]:
    """Metadata attached to a booking's checkout session."""
    return {CORRELATION_KEY: str(booking_id)}


def parse_correlation_token(token: str | None) -> uuid.UUID | None:
    """
    Extract a booking ID from a correlation token.

    Accepts the query-string form written into utm_content
    ("booking_id=<uuid>", possibly with other keys) and a bare UUID as
    written into checkout metadata.
    """
    if not token:
        return None

    candidate = token.strip()
    if "=" in candidate:
        values = parse_qs(candidate).get(CORRELATION_KEY)
        if not values:
            return None
        candidate = values[0]

    try:
        return uuid.UUID(candidate)
    except ValueError:
        return None


class CorrelationResolver(BaseService):
    """
    Resolve inbound events to booking IDs.

    Usage:
        booking_id = CorrelationResolver.resolve(event)
        if booking_id is None:
            # dead-letter
    """

    @classmethod
    def resolve(cls, event: NormalizedEvent) -> uuid.UUID | None:
        """
        Find the booking an event belongs to.

        The embedded token is authoritative: when one is present it must
        name an existing booking. Only token-less events (for example a
        charge.refunded created from the dashboard) fall back to the
        provider identifiers already stored on a booking.

        Returns:
            Booking ID, or None if the event cannot be matched
        """
        log_context = {
            "delivery_id": event.delivery_id,
            "event_type": event.event_type,
            "provider": event.provider,
        }

        if event.correlation_token:
            booking_id = parse_correlation_token(event.correlation_token)
            if booking_id and Booking.objects.filter(pk=booking_id).exists():
                return booking_id
            cls.get_logger().warning(
                "Correlation token does not match a booking",
                extra={**log_context, "token": event.correlation_token[:100]},
            )
            return None

        for ref_name, value in event.lookup_refs.items():
            column = REFERENCE_LOOKUPS.get(ref_name)
            if not column or not value:
                continue
            booking_id = (
                Booking.objects.filter(**{column: value})
                .values_list("id", flat=True)
                .first()
            )
            if booking_id:
                cls.get_logger().info(
                    "Resolved booking by provider reference",
                    extra={**log_context, "reference": ref_name, "booking_id": str(booking_id)},
                )
                return booking_id

        cls.get_logger().warning("Event carries no resolvable reference", extra=log_context)
        return None
