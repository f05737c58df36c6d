"""
WebhookDelivery model: the idempotency ledger.

One row per distinct provider delivery. The delivery_id primary key is
the uniqueness constraint that arbitrates duplicates: the first request
to insert it owns processing, every later request with the same ID is a
duplicate. Rows are append-only and never deleted.

Usage:
    from bookings.services import IdempotencyLedger

    decision = IdempotencyLedger.begin_processing(
        delivery_id=event_id,
        provider=Provider.PAYMENT,
        payload=payload,
    )
    if decision.proceed:
        ...
        IdempotencyLedger.commit(event_id, DeliveryOutcome.APPLIED)
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel

from bookings.state_machines import DeliveryOutcome, Provider


class WebhookDelivery(BaseModel):
    """
    Ledger entry for one inbound webhook delivery.

    Processing Flow:
        1. Signature verified (rejected deliveries never get a row)
        2. Row inserted as PENDING with claimed_at = now
        3. Event decoded, correlated and applied
        4. Outcome committed (APPLIED / IGNORED_* / ERROR)

    Recovery:
        ERROR rows are re-claimed by the provider's next retry.
        PENDING rows older than the grace period are reset to ERROR by
        the sweep task and re-driven from the stored payload.

    Fields:
        delivery_id: Provider event ID (Stripe) or body digest (Calendly)
        provider: SCHEDULING or PAYMENT
        event_type: Internal EventType, blank when unsupported
        provider_event_type: Raw provider event name
        payload: Verified JSON body, kept for replay and dead-letter triage
        outcome: Processing outcome
        attempts: Number of times processing was claimed
    """

    # ==========================================================================
    # Identification
    # ==========================================================================

    delivery_id = models.CharField(
        max_length=255,
        primary_key=True,
        help_text="Provider-assigned delivery ID - unique constraint for idempotency",
    )

    provider = models.CharField(
        max_length=16,
        choices=Provider.choices,
        help_text="Provider that sent the webhook",
    )

    event_type = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Internal event type (blank if unsupported or undecodable)",
    )

    provider_event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Provider event name (e.g., 'invitee.created')",
    )

    # ==========================================================================
    # Payload & Correlation
    # ==========================================================================

    payload = models.JSONField(
        default=dict,
        help_text="Verified webhook body",
    )

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="deliveries",
        help_text="Booking the delivery resolved to",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    outcome = models.CharField(
        max_length=32,
        choices=DeliveryOutcome.choices,
        default=DeliveryOutcome.PENDING,
        db_index=True,
    )

    received_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the delivery was first received",
    )

    claimed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When processing was last claimed",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the outcome was committed",
    )

    attempts = models.PositiveSmallIntegerField(
        default=1,
        help_text="Number of processing claims",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error details for ERROR outcomes",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-received_at"]
        verbose_name = "Webhook Delivery"
        verbose_name_plural = "Webhook Deliveries"
        indexes = [
            models.Index(
                fields=["provider", "event_type", "received_at"],
                name="delivery_triage_idx",
            ),
            models.Index(fields=["outcome", "claimed_at"], name="delivery_sweep_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookDelivery({self.delivery_id}, {self.outcome})"

    @property
    def is_pending(self) -> bool:
        return self.outcome == DeliveryOutcome.PENDING

    @property
    def is_retryable(self) -> bool:
        return self.outcome == DeliveryOutcome.ERROR
