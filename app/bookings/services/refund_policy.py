"""
Refund policies for canceling a paid booking.

A policy is any callable (BookingState, canceled_at) -> int | None:

- None: refund the full charge
- 0: no refund
- n > 0: refund n cents

The active policy is the dotted path in settings.BOOKING_REFUND_POLICY.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from django.conf import settings
from django.utils.module_loading import import_string

from bookings.state_machines import BookingState, RefundPolicy, full_refund

FULL_REFUND_NOTICE = timedelta(hours=24)
HALF_REFUND_NOTICE = timedelta(hours=12)


def tiered_refund(state: BookingState, canceled_at: datetime) -> int | None:
    """
    Refund by notice given before the session starts.

    24h or more: full refund. 12-24h: half of the charge. Under 12h: none.
    Bookings without a known start time get a full refund.
    """
    start_time = state.scheduling_ref.start_time if state.scheduling_ref else None
    if start_time is None:
        return None

    notice = start_time - canceled_at
    if notice >= FULL_REFUND_NOTICE:
        return None
    if notice >= HALF_REFUND_NOTICE:
        charged = state.payment_ref.amount_cents if state.payment_ref else None
        return (charged or state.amount_cents) // 2
    return 0


def get_refund_policy() -> RefundPolicy:
    """Load the configured refund policy."""
    path = getattr(settings, "BOOKING_REFUND_POLICY", "")
    if not path:
        return full_refund
    return import_string(path)


__all__ = ["full_refund", "get_refund_policy", "tiered_refund"]
