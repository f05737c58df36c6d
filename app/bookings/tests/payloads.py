"""
Provider webhook bodies and signing helpers for booking tests.

The builders return the JSON shapes Calendly and Stripe actually send,
trimmed to the fields the decoders read.

Usage:
    from bookings.tests.payloads import calendly_invitee_created, sign_body

    body = json.dumps(calendly_invitee_created(booking.id)).encode()
    header = sign_body(body, secret="calendly-secret")
"""

import time
import uuid

from bookings.services import payment_metadata, scheduling_tracking
from bookings.webhooks import compute_signature

CALENDLY_API = "https://api.calendly.com"

STRIPE_TEST_SECRET = "whsec_test_secret"
CALENDLY_TEST_SECRET = "calendly_test_signing_key"


def sign_body(body: bytes, secret: str, timestamp: int | None = None) -> str:
    """Build a "t=<unix>,v1=<hex>" signature header for a body."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    return f"t={timestamp},v1={compute_signature(secret, timestamp, body)}"


# =============================================================================
# Calendly
# =============================================================================


def _invitee(
    booking_id,
    event_uuid: str,
    invitee_uuid: str,
    start_time: str,
    end_time: str,
) -> dict:
    tracking = {"utm_source": None, "utm_campaign": None, "utm_content": None}
    if booking_id is not None:
        tracking.update(scheduling_tracking(booking_id))
    return {
        "uri": f"{CALENDLY_API}/scheduled_events/{event_uuid}/invitees/{invitee_uuid}",
        "email": "client@example.com",
        "name": "Test Client",
        "status": "active",
        "rescheduled": False,
        "old_invitee": None,
        "new_invitee": None,
        "cancellation": None,
        "tracking": tracking,
        "scheduled_event": {
            "uri": f"{CALENDLY_API}/scheduled_events/{event_uuid}",
            "start_time": start_time,
            "end_time": end_time,
            "status": "active",
        },
    }


def calendly_invitee_created(
    booking_id,
    event_uuid: str = "EVT-UUID-1",
    invitee_uuid: str = "INV-UUID-1",
    start_time: str = "2026-11-02T15:00:00.000000Z",
    end_time: str = "2026-11-02T16:00:00.000000Z",
    old_invitee: str | None = None,
    created_at: str = "2026-10-18T12:00:00.000000Z",
) -> dict:
    invitee = _invitee(booking_id, event_uuid, invitee_uuid, start_time, end_time)
    invitee["old_invitee"] = old_invitee
    return {
        "event": "invitee.created",
        "created_at": created_at,
        "created_by": f"{CALENDLY_API}/users/HOST-UUID",
        "payload": invitee,
    }


def calendly_invitee_canceled(
    booking_id,
    event_uuid: str = "EVT-UUID-1",
    invitee_uuid: str = "INV-UUID-1",
    reason: str = "Something came up",
    canceler_type: str = "invitee",
    rescheduled: bool = False,
    created_at: str = "2026-10-18T13:00:00.000000Z",
) -> dict:
    invitee = _invitee(
        booking_id,
        event_uuid,
        invitee_uuid,
        "2026-11-02T15:00:00.000000Z",
        "2026-11-02T16:00:00.000000Z",
    )
    invitee["status"] = "canceled"
    invitee["rescheduled"] = rescheduled
    invitee["cancellation"] = {
        "canceled_by": "Test Client",
        "reason": reason,
        "canceler_type": canceler_type,
    }
    return {
        "event": "invitee.canceled",
        "created_at": created_at,
        "created_by": f"{CALENDLY_API}/users/HOST-UUID",
        "payload": invitee,
    }


# =============================================================================
# Stripe
# =============================================================================


def checkout_session(
    booking_id,
    session_id: str = "cs_test_123",
    payment_intent: str | None = "pi_test_123",
    payment_status: str = "paid",
    status: str = "complete",
    amount_total: int = 15000,
    currency: str = "usd",
) -> dict:
    metadata = payment_metadata(booking_id) if booking_id is not None else {}
    return {
        "id": session_id,
        "object": "checkout.session",
        "client_reference_id": str(booking_id) if booking_id is not None else None,
        "payment_intent": payment_intent,
        "payment_status": payment_status,
        "status": status,
        "amount_total": amount_total,
        "currency": currency,
        "metadata": metadata,
    }


def stripe_event(event_type: str, obj: dict, event_id: str | None = None) -> dict:
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": 1792310400,
        "livemode": False,
        "data": {"object": obj},
    }


def stripe_checkout_completed(booking_id, event_id: str | None = None, **session) -> dict:
    return stripe_event(
        "checkout.session.completed",
        checkout_session(booking_id, **session),
        event_id=event_id,
    )


def stripe_checkout_expired(booking_id, event_id: str | None = None, **session) -> dict:
    session.setdefault("payment_status", "unpaid")
    session.setdefault("status", "expired")
    session.setdefault("payment_intent", None)
    return stripe_event(
        "checkout.session.expired",
        checkout_session(booking_id, **session),
        event_id=event_id,
    )


def stripe_payment_failed(
    booking_id,
    payment_intent: str = "pi_test_123",
    message: str = "Your card was declined.",
    event_id: str | None = None,
) -> dict:
    return stripe_event(
        "payment_intent.payment_failed",
        {
            "id": payment_intent,
            "object": "payment_intent",
            "amount": 15000,
            "currency": "usd",
            "metadata": payment_metadata(booking_id),
            "last_payment_error": {"message": message, "code": "card_declined"},
        },
        event_id=event_id,
    )


def stripe_charge_refunded(
    booking_id,
    payment_intent: str = "pi_test_123",
    amount: int = 15000,
    amount_refunded: int = 15000,
    event_id: str | None = None,
) -> dict:
    metadata = payment_metadata(booking_id) if booking_id is not None else {}
    return stripe_event(
        "charge.refunded",
        {
            "id": "ch_test_123",
            "object": "charge",
            "payment_intent": payment_intent,
            "amount": amount,
            "amount_refunded": amount_refunded,
            "currency": "usd",
            "metadata": metadata,
        },
        event_id=event_id,
    )
