import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

BOOKING_STATUS_CHOICES = [
    ("PENDING_SCHEDULING", "Pending Scheduling"),
    ("PENDING_PAYMENT", "Pending Payment"),
    ("CONFIRMED", "Confirmed"),
    ("CANCELED", "Canceled"),
    ("REFUNDED", "Refunded"),
    ("FAILED", "Failed"),
]

PAYMENT_STATUS_CHOICES = [
    ("UNPAID", "Unpaid"),
    ("PAID", "Paid"),
    ("FAILED", "Failed"),
    ("REFUNDED", "Refunded"),
    ("PARTIALLY_REFUNDED", "Partially Refunded"),
]

CANCELLATION_INITIATOR_CHOICES = [
    ("CLIENT", "Client"),
    ("BUILDER", "Builder"),
    ("SYSTEM", "System"),
]

PROVIDER_CHOICES = [
    ("SCHEDULING", "Scheduling (Calendly)"),
    ("PAYMENT", "Payment (Stripe)"),
]

EVENT_TYPE_CHOICES = [
    ("scheduling.confirmed", "Scheduling Confirmed"),
    ("scheduling.canceled", "Scheduling Canceled"),
    ("scheduling.rescheduled", "Scheduling Rescheduled"),
    ("payment.succeeded", "Payment Succeeded"),
    ("payment.failed", "Payment Failed"),
    ("payment.refunded", "Payment Refunded"),
    ("payment.expired", "Payment Expired"),
]

DELIVERY_OUTCOME_CHOICES = [
    ("PENDING", "Pending"),
    ("APPLIED", "Applied"),
    ("IGNORED_DUPLICATE", "Ignored (Duplicate)"),
    ("IGNORED_STALE", "Ignored (Stale)"),
    ("IGNORED_UNSUPPORTED", "Ignored (Unsupported)"),
    ("REJECTED_SIGNATURE", "Rejected (Signature)"),
    ("ERROR", "Error"),
]

DEAD_LETTER_STATUS_CHOICES = [
    ("PENDING", "Pending"),
    ("RESOLVED", "Resolved"),
    ("IGNORED", "Ignored"),
]

DEAD_LETTER_REASON_CHOICES = [
    ("UNRESOLVABLE_CORRELATION", "Unresolvable Correlation"),
    ("CONCURRENCY_EXHAUSTED", "Concurrency Retries Exhausted"),
    ("PAYLOAD_INVALID", "Payload Invalid"),
]


def timestamp_fields():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Booking",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "status",
                    models.CharField(
                        choices=BOOKING_STATUS_CHOICES,
                        db_index=True,
                        default="PENDING_SCHEDULING",
                        help_text="Current lifecycle state",
                        max_length=32,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Optimistic locking version - incremented on each transition",
                    ),
                ),
                (
                    "client_id",
                    models.CharField(
                        db_index=True,
                        help_text="External ID of the client who booked",
                        max_length=255,
                    ),
                ),
                (
                    "builder_id",
                    models.CharField(
                        db_index=True,
                        help_text="External ID of the builder providing the session",
                        max_length=255,
                    ),
                ),
                (
                    "session_type_id",
                    models.CharField(
                        help_text="Scheduling provider event type identifier",
                        max_length=255,
                    ),
                ),
                (
                    "client_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Invitee name pre-filled on the scheduling page",
                        max_length=255,
                    ),
                ),
                (
                    "client_email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Invitee email used for notifications",
                        max_length=254,
                    ),
                ),
                (
                    "amount_cents",
                    models.PositiveIntegerField(
                        help_text="Session price in smallest currency unit",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "scheduling_url",
                    models.URLField(
                        blank=True,
                        default="",
                        help_text="Single-use scheduling link handed to the client",
                        max_length=2048,
                    ),
                ),
                (
                    "scheduling_event_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Scheduling provider event UUID",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "scheduling_invitee_id",
                    models.CharField(
                        blank=True,
                        help_text="Scheduling provider invitee UUID",
                        max_length=255,
                        null=True,
                    ),
                ),
                ("start_time", models.DateTimeField(blank=True, null=True)),
                ("end_time", models.DateTimeField(blank=True, null=True)),
                (
                    "payment_session_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Checkout Session ID (cs_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "payment_charge_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe PaymentIntent ID (pi_xxx) that captured the charge",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "payment_amount_cents",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Amount the provider reports as charged",
                        null=True,
                    ),
                ),
                (
                    "payment_currency",
                    models.CharField(blank=True, max_length=3, null=True),
                ),
                (
                    "payment_status",
                    models.CharField(
                        blank=True,
                        choices=PAYMENT_STATUS_CHOICES,
                        max_length=32,
                        null=True,
                    ),
                ),
                (
                    "checkout_url",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Hosted checkout page URL for the client",
                    ),
                ),
                ("cancellation_reason", models.TextField(blank=True, null=True)),
                (
                    "cancellation_initiated_by",
                    models.CharField(
                        blank=True,
                        choices=CANCELLATION_INITIATOR_CHOICES,
                        max_length=16,
                        null=True,
                    ),
                ),
                ("refund_issued", models.BooleanField(default=False)),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Provider error that moved the booking to FAILED",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="booking_status_created_idx",
                    ),
                    models.Index(
                        fields=["client_id", "created_at"],
                        name="booking_client_created_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingTransition",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "from_status",
                    models.CharField(choices=BOOKING_STATUS_CHOICES, max_length=32),
                ),
                (
                    "to_status",
                    models.CharField(choices=BOOKING_STATUS_CHOICES, max_length=32),
                ),
                (
                    "event_type",
                    models.CharField(
                        blank=True,
                        choices=EVENT_TYPE_CHOICES,
                        default="",
                        help_text="Internal event that caused the transition",
                        max_length=64,
                    ),
                ),
                (
                    "delivery_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Webhook delivery that caused the transition",
                        max_length=255,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        help_text="Booking version written by this transition",
                    ),
                ),
                (
                    "commands",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Commands issued by the transition",
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transitions",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking Transition",
                "verbose_name_plural": "Booking Transitions",
                "ordering": ["booking", "version"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("booking", "version"),
                        name="unique_booking_transition_version",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookDelivery",
            fields=[
                *timestamp_fields(),
                (
                    "delivery_id",
                    models.CharField(
                        help_text="Provider-assigned delivery ID - unique constraint for idempotency",
                        max_length=255,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=PROVIDER_CHOICES,
                        help_text="Provider that sent the webhook",
                        max_length=16,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Internal event type (blank if unsupported or undecodable)",
                        max_length=64,
                    ),
                ),
                (
                    "provider_event_type",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider event name (e.g., 'invitee.created')",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(default=dict, help_text="Verified webhook body"),
                ),
                (
                    "outcome",
                    models.CharField(
                        choices=DELIVERY_OUTCOME_CHOICES,
                        db_index=True,
                        default="PENDING",
                        max_length=32,
                    ),
                ),
                (
                    "received_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the delivery was first received",
                    ),
                ),
                (
                    "claimed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When processing was last claimed",
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the outcome was committed",
                        null=True,
                    ),
                ),
                (
                    "attempts",
                    models.PositiveSmallIntegerField(
                        default=1,
                        help_text="Number of processing claims",
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error details for ERROR outcomes",
                        null=True,
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        help_text="Booking the delivery resolved to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="deliveries",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Delivery",
                "verbose_name_plural": "Webhook Deliveries",
                "ordering": ["-received_at"],
                "indexes": [
                    models.Index(
                        fields=["provider", "event_type", "received_at"],
                        name="delivery_triage_idx",
                    ),
                    models.Index(
                        fields=["outcome", "claimed_at"],
                        name="delivery_sweep_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="DeadLetterEvent",
            fields=[
                *timestamp_fields(),
                uuid_pk(),
                (
                    "provider",
                    models.CharField(choices=PROVIDER_CHOICES, max_length=16),
                ),
                (
                    "event_type",
                    models.CharField(blank=True, default="", max_length=64),
                ),
                (
                    "provider_event_type",
                    models.CharField(blank=True, default="", max_length=100),
                ),
                (
                    "reason",
                    models.CharField(
                        choices=DEAD_LETTER_REASON_CHOICES,
                        db_index=True,
                        max_length=40,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=DEAD_LETTER_STATUS_CHOICES,
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        default=dict,
                        help_text="Full verified payload for manual reconciliation",
                    ),
                ),
                ("error_message", models.TextField(blank=True, default="")),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                ("resolution_note", models.TextField(blank=True, default="")),
                (
                    "delivery",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="dead_letters",
                        to="bookings.webhookdelivery",
                    ),
                ),
                (
                    "resolved_booking",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="resolved_dead_letters",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Dead Letter Event",
                "verbose_name_plural": "Dead Letter Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="dead_letter_status_idx",
                    ),
                ],
            },
        ),
    ]
