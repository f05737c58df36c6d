"""
DeadLetterEvent model for events that need manual reconciliation.

Verified webhooks that cannot be applied automatically land here with
their full payload instead of being dropped: an event whose correlation
token matches no booking, an event whose booking kept losing the
optimistic-concurrency race, or a body that could not be decoded.

Usage:
    python manage.py dead_letter list
    python manage.py dead_letter resolve <id> --booking <booking_id>
    python manage.py dead_letter ignore <id>
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from bookings.state_machines import DeadLetterReason, DeadLetterStatus, Provider


class DeadLetterEvent(UUIDPrimaryKeyMixin, BaseModel):
    """Event parked for operator triage."""

    delivery = models.ForeignKey(
        "bookings.WebhookDelivery",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="dead_letters",
    )

    provider = models.CharField(max_length=16, choices=Provider.choices)

    event_type = models.CharField(max_length=64, blank=True, default="")

    provider_event_type = models.CharField(max_length=100, blank=True, default="")

    reason = models.CharField(
        max_length=40,
        choices=DeadLetterReason.choices,
        db_index=True,
    )

    status = models.CharField(
        max_length=16,
        choices=DeadLetterStatus.choices,
        default=DeadLetterStatus.PENDING,
        db_index=True,
    )

    payload = models.JSONField(
        default=dict,
        help_text="Full verified payload for manual reconciliation",
    )

    error_message = models.TextField(blank=True, default="")

    # ==========================================================================
    # Resolution
    # ==========================================================================

    resolved_booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="resolved_dead_letters",
    )

    resolved_at = models.DateTimeField(null=True, blank=True)

    resolution_note = models.TextField(blank=True, default="")

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Dead Letter Event"
        verbose_name_plural = "Dead Letter Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="dead_letter_status_idx"),
        ]

    def __str__(self) -> str:
        return f"DeadLetterEvent({self.id}, {self.reason}, {self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == DeadLetterStatus.PENDING

    def mark_resolved(self, booking, note: str = "") -> None:
        """
        Mark as resolved against a booking.

        Note: Does not save - caller must save after calling.
        """
        self.status = DeadLetterStatus.RESOLVED
        self.resolved_booking = booking
        self.resolved_at = timezone.now()
        self.resolution_note = note

    def mark_ignored(self, note: str = "") -> None:
        """
        Mark as ignored (no booking should change).

        Note: Does not save - caller must save after calling.
        """
        self.status = DeadLetterStatus.IGNORED
        self.resolved_at = timezone.now()
        self.resolution_note = note
