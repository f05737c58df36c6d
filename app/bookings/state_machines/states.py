"""
State enums for booking models.

These are Django TextChoices for database storage and admin integration.

Booking Lifecycle:
    PENDING_SCHEDULING → PENDING_PAYMENT → CONFIRMED (happy path)
    PENDING_SCHEDULING / PENDING_PAYMENT / CONFIRMED → CANCELED
    CONFIRMED → REFUNDED
    any non-terminal → FAILED (fatal provider error)

Terminal states: CANCELED, REFUNDED, FAILED

WebhookDelivery Outcomes:
    PENDING → APPLIED | IGNORED_STALE | IGNORED_UNSUPPORTED | ERROR
    ERROR → PENDING (provider retry, sweep or replay)
"""

from django.db import models


class BookingStatus(models.TextChoices):
    """
    Lifecycle states of a Booking.

    Terminal states absorb every event: once a booking is CANCELED,
    REFUNDED or FAILED nothing moves it again.
    """

    PENDING_SCHEDULING = "PENDING_SCHEDULING", "Pending Scheduling"
    PENDING_PAYMENT = "PENDING_PAYMENT", "Pending Payment"
    CONFIRMED = "CONFIRMED", "Confirmed"
    CANCELED = "CANCELED", "Canceled"
    REFUNDED = "REFUNDED", "Refunded"
    FAILED = "FAILED", "Failed"

    @classmethod
    def terminal(cls) -> frozenset:
        return frozenset({cls.CANCELED, cls.REFUNDED, cls.FAILED})


class PaymentStatus(models.TextChoices):
    """Payment status recorded on a booking's payment reference."""

    UNPAID = "UNPAID", "Unpaid"
    PAID = "PAID", "Paid"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED", "Partially Refunded"


class CancellationInitiator(models.TextChoices):
    """Who canceled a booking."""

    CLIENT = "CLIENT", "Client"
    BUILDER = "BUILDER", "Builder"
    SYSTEM = "SYSTEM", "System"


class Provider(models.TextChoices):
    """External systems that deliver webhooks."""

    SCHEDULING = "SCHEDULING", "Scheduling (Calendly)"
    PAYMENT = "PAYMENT", "Payment (Stripe)"


class EventType(models.TextChoices):
    """
    Closed set of internal event types.

    Provider-specific names (invitee.created, checkout.session.completed,
    ...) are mapped onto these by the decoders; the state machine only
    ever sees these values.
    """

    SCHEDULING_CONFIRMED = "scheduling.confirmed", "Scheduling Confirmed"
    SCHEDULING_CANCELED = "scheduling.canceled", "Scheduling Canceled"
    SCHEDULING_RESCHEDULED = "scheduling.rescheduled", "Scheduling Rescheduled"
    PAYMENT_SUCCEEDED = "payment.succeeded", "Payment Succeeded"
    PAYMENT_FAILED = "payment.failed", "Payment Failed"
    PAYMENT_REFUNDED = "payment.refunded", "Payment Refunded"
    PAYMENT_EXPIRED = "payment.expired", "Payment Expired"


class DeliveryOutcome(models.TextChoices):
    """
    Processing outcome of a WebhookDelivery ledger row.

    REJECTED_SIGNATURE and IGNORED_DUPLICATE are reported to callers but
    never stored: rejected deliveries get no ledger row, and duplicates
    keep the outcome of the first delivery.
    """

    PENDING = "PENDING", "Pending"
    APPLIED = "APPLIED", "Applied"
    IGNORED_DUPLICATE = "IGNORED_DUPLICATE", "Ignored (Duplicate)"
    IGNORED_STALE = "IGNORED_STALE", "Ignored (Stale)"
    IGNORED_UNSUPPORTED = "IGNORED_UNSUPPORTED", "Ignored (Unsupported)"
    REJECTED_SIGNATURE = "REJECTED_SIGNATURE", "Rejected (Signature)"
    ERROR = "ERROR", "Error"


class DeadLetterStatus(models.TextChoices):
    """Manual triage status of a dead-lettered event."""

    PENDING = "PENDING", "Pending"
    RESOLVED = "RESOLVED", "Resolved"
    IGNORED = "IGNORED", "Ignored"


class DeadLetterReason(models.TextChoices):
    """Why an event could not be processed automatically."""

    UNRESOLVABLE_CORRELATION = "UNRESOLVABLE_CORRELATION", "Unresolvable Correlation"
    CONCURRENCY_EXHAUSTED = "CONCURRENCY_EXHAUSTED", "Concurrency Retries Exhausted"
    PAYLOAD_INVALID = "PAYLOAD_INVALID", "Payload Invalid"
