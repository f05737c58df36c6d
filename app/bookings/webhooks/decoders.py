"""
Decode verified provider payloads into NormalizedEvent values.

All provider-schema knowledge lives here so the state machine only ever
sees the closed EventType enum. decode_event() returns None for event
types the engine does not act on and raises PayloadDecodeError for
bodies that are not well-formed provider events.

Calendly:
    invitee.created                      → scheduling.confirmed
    invitee.created (old_invitee set)    → scheduling.rescheduled
    invitee.canceled                     → scheduling.canceled
    invitee.canceled (rescheduled=true)  → unsupported

Stripe:
    checkout.session.completed (paid)           → payment.succeeded
    checkout.session.async_payment_succeeded    → payment.succeeded
    checkout.session.async_payment_failed       → payment.failed
    payment_intent.payment_failed               → payment.failed
    checkout.session.expired                    → payment.expired
    charge.refunded                             → payment.refunded
"""

from __future__ import annotations

import json
from datetime import datetime, timezone as dt_timezone
from typing import Any

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from bookings.exceptions import PayloadDecodeError
from bookings.state_machines import (
    CancellationInitiator,
    EventType,
    NormalizedEvent,
    PaymentDetails,
    Provider,
    SchedulingDetails,
)

PAID_STATUSES = frozenset({"paid", "no_payment_required"})


def parse_payload(raw_body: bytes) -> dict[str, Any]:
    """Parse a verified body into a JSON object."""
    try:
        payload = json.loads(raw_body)
    except ValueError as e:
        raise PayloadDecodeError("Webhook body is not valid JSON", details={"error": str(e)})
    if not isinstance(payload, dict):
        raise PayloadDecodeError("Webhook body must be a JSON object")
    return payload


def provider_event_type(provider: str, payload: dict[str, Any]) -> str:
    """Raw provider event name ("invitee.created", "charge.refunded", ...)."""
    key = "event" if provider == Provider.SCHEDULING else "type"
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def decode_event(
    provider: str,
    delivery_id: str,
    payload: dict[str, Any],
    received_at: datetime | None = None,
) -> NormalizedEvent | None:
    """
    Decode a provider payload.

    Args:
        provider: Provider value
        delivery_id: Ledger key of the delivery
        payload: Parsed JSON body
        received_at: Fallback occurrence time when the payload has none

    Returns:
        NormalizedEvent, or None when the event type is not acted on

    Raises:
        PayloadDecodeError: Body is missing required fields
    """
    received_at = received_at or timezone.now()
    if provider == Provider.SCHEDULING:
        return _decode_calendly(delivery_id, payload, received_at)
    if provider == Provider.PAYMENT:
        return _decode_stripe(delivery_id, payload, received_at)
    raise PayloadDecodeError(f"Unknown provider: {provider}")


# =============================================================================
# Calendly
# =============================================================================


def _last_segment(uri: str | None) -> str:
    if not uri:
        return ""
    return uri.rstrip("/").rsplit("/", 1)[-1]


def _parse_time(value: Any) -> datetime | None:
    if not isinstance(value, str):
        return None
    return parse_datetime(value)


def _decode_calendly(
    delivery_id: str,
    body: dict[str, Any],
    received_at: datetime,
) -> NormalizedEvent | None:
    event_name = provider_event_type(Provider.SCHEDULING, body)
    invitee = body.get("payload")
    if not event_name or not isinstance(invitee, dict):
        raise PayloadDecodeError(
            "Calendly webhook must contain 'event' and 'payload'",
            details={"delivery_id": delivery_id},
        )

    if event_name == "invitee.created":
        event_type = (
            EventType.SCHEDULING_RESCHEDULED
            if invitee.get("old_invitee")
            else EventType.SCHEDULING_CONFIRMED
        )
    elif event_name == "invitee.canceled":
        if invitee.get("rescheduled"):
            # The replacement invitee.created carries the new slot
            return None
        event_type = EventType.SCHEDULING_CANCELED
    else:
        return None

    scheduled_event = invitee.get("scheduled_event") or {}
    event_uri = scheduled_event.get("uri") if isinstance(scheduled_event, dict) else None
    if not event_uri and isinstance(invitee.get("event"), str):
        event_uri = invitee["event"]
    external_event_id = _last_segment(event_uri)
    if not external_event_id:
        raise PayloadDecodeError(
            "Calendly payload has no scheduled event URI",
            details={"delivery_id": delivery_id},
        )

    cancellation = invitee.get("cancellation") or {}
    canceled_by = (
        CancellationInitiator.BUILDER
        if cancellation.get("canceler_type") == "host"
        else CancellationInitiator.CLIENT
    )

    tracking = invitee.get("tracking") or {}
    return NormalizedEvent(
        provider=Provider.SCHEDULING,
        event_type=event_type,
        delivery_id=delivery_id,
        occurred_at=_parse_time(body.get("created_at")) or received_at,
        provider_event_type=event_name,
        correlation_token=tracking.get("utm_content") or None,
        scheduling=SchedulingDetails(
            external_event_id=external_event_id,
            external_invitee_id=_last_segment(invitee.get("uri")),
            start_time=_parse_time(scheduled_event.get("start_time")),
            end_time=_parse_time(scheduled_event.get("end_time")),
            cancel_reason=cancellation.get("reason") or None,
            canceled_by=canceled_by,
        ),
    )


# =============================================================================
# Stripe
# =============================================================================


def _object_id(value: Any) -> str | None:
    if isinstance(value, dict):
        return value.get("id")
    return value if isinstance(value, str) else None


def _decode_stripe(
    delivery_id: str,
    body: dict[str, Any],
    received_at: datetime,
) -> NormalizedEvent | None:
    event_name = provider_event_type(Provider.PAYMENT, body)
    obj = (body.get("data") or {}).get("object")
    if not event_name or not isinstance(obj, dict):
        raise PayloadDecodeError(
            "Stripe event must contain 'type' and 'data.object'",
            details={"delivery_id": delivery_id},
        )

    created = body.get("created")
    occurred_at = (
        datetime.fromtimestamp(created, tz=dt_timezone.utc)
        if isinstance(created, (int, float))
        else received_at
    )
    metadata = obj.get("metadata") or {}

    def build(event_type: str, details: PaymentDetails, token: str | None) -> NormalizedEvent:
        return NormalizedEvent(
            provider=Provider.PAYMENT,
            event_type=event_type,
            delivery_id=delivery_id,
            occurred_at=occurred_at,
            provider_event_type=event_name,
            correlation_token=token,
            payment=details,
        )

    if event_name.startswith("checkout.session."):
        session_token = metadata.get("booking_id") or obj.get("client_reference_id")
        details = PaymentDetails(
            session_id=obj.get("id"),
            charge_id=_object_id(obj.get("payment_intent")),
            amount_cents=obj.get("amount_total"),
            currency=obj.get("currency"),
        )
        if event_name == "checkout.session.completed":
            if obj.get("payment_status") not in PAID_STATUSES:
                # Delayed payment methods follow up with async_payment_*
                return None
            return build(EventType.PAYMENT_SUCCEEDED, details, session_token)
        if event_name == "checkout.session.async_payment_succeeded":
            return build(EventType.PAYMENT_SUCCEEDED, details, session_token)
        if event_name == "checkout.session.async_payment_failed":
            return build(EventType.PAYMENT_FAILED, details, session_token)
        if event_name == "checkout.session.expired":
            return build(EventType.PAYMENT_EXPIRED, details, session_token)
        return None

    if event_name == "payment_intent.payment_failed":
        last_error = obj.get("last_payment_error") or {}
        details = PaymentDetails(
            charge_id=obj.get("id"),
            amount_cents=obj.get("amount"),
            currency=obj.get("currency"),
            failure_message=last_error.get("message"),
        )
        return build(EventType.PAYMENT_FAILED, details, metadata.get("booking_id"))

    if event_name == "charge.refunded":
        details = PaymentDetails(
            charge_id=_object_id(obj.get("payment_intent")),
            amount_cents=obj.get("amount"),
            currency=obj.get("currency"),
            refunded_amount_cents=obj.get("amount_refunded"),
        )
        return build(EventType.PAYMENT_REFUNDED, details, metadata.get("booking_id"))

    return None
