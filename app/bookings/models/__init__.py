"""
Booking domain models.

- Booking: aggregate root tracking the booking lifecycle
- BookingTransition: append-only history of persisted transitions
- WebhookDelivery: idempotency ledger of inbound webhook deliveries
- DeadLetterEvent: events parked for manual reconciliation
"""

from bookings.models.booking import Booking, BookingTransition
from bookings.models.dead_letter import DeadLetterEvent
from bookings.models.webhook_delivery import WebhookDelivery

__all__ = [
    "Booking",
    "BookingTransition",
    "DeadLetterEvent",
    "WebhookDelivery",
]
