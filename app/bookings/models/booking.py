"""
Booking aggregate and its transition history.

Booking is the single source of truth for a client's reserved, paid
session with a builder. Its status is only ever written by the
reconciliation coordinator through BookingStore, which guards every
write with the version field (optimistic concurrency).

Usage:
    from bookings.models import Booking
    from bookings.state_machines import BookingStatus

    booking = Booking.objects.create(
        client_id="user_123",
        builder_id="builder_456",
        session_type_id="evt-type-uuid",
        amount_cents=15000,
        currency="usd",
    )
    booking.status   # BookingStatus.PENDING_SCHEDULING

    state = booking.to_state()   # immutable snapshot for the state machine
"""

from __future__ import annotations

from typing import Any

from django.db import models
from django.db.models import F

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from bookings.state_machines import (
    BookingState,
    BookingStatus,
    Cancellation,
    CancellationInitiator,
    EventType,
    PaymentRef,
    PaymentStatus,
    SchedulingRef,
)


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client's booking of a builder's session type.

    The id doubles as the correlation token: it is embedded in the
    scheduling link (UTM content) and in checkout session metadata so
    inbound webhooks can be matched back to this row.

    Status Flow:
        PENDING_SCHEDULING → PENDING_PAYMENT → CONFIRMED → REFUNDED
        (any non-terminal) → CANCELED / FAILED

    Invariants:
        - CANCELED, REFUNDED and FAILED are terminal
        - version increases by one on every persisted transition
        - scheduling ids never change once set; reschedules only move
          start_time / end_time
    """

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = models.CharField(
        max_length=32,
        choices=BookingStatus.choices,
        default=BookingStatus.PENDING_SCHEDULING,
        db_index=True,
        help_text="Current lifecycle state",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Optimistic locking version - incremented on each transition",
    )

    # ==========================================================================
    # Participants (opaque, owned by other systems)
    # ==========================================================================

    client_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="External ID of the client who booked",
    )

    builder_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="External ID of the builder providing the session",
    )

    session_type_id = models.CharField(
        max_length=255,
        help_text="Scheduling provider event type identifier",
    )

    client_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Invitee name pre-filled on the scheduling page",
    )

    client_email = models.EmailField(
        blank=True,
        default="",
        help_text="Invitee email used for notifications",
    )

    # ==========================================================================
    # Price
    # ==========================================================================

    amount_cents = models.PositiveIntegerField(
        help_text="Session price in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # Scheduling Reference
    # ==========================================================================

    scheduling_url = models.URLField(
        max_length=2048,
        blank=True,
        default="",
        help_text="Single-use scheduling link handed to the client",
    )

    scheduling_event_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Scheduling provider event UUID",
    )

    scheduling_invitee_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Scheduling provider invitee UUID",
    )

    start_time = models.DateTimeField(null=True, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Payment Reference
    # ==========================================================================

    payment_session_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Checkout Session ID (cs_xxx)",
    )

    payment_charge_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent ID (pi_xxx) that captured the charge",
    )

    payment_amount_cents = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Amount the provider reports as charged",
    )

    payment_currency = models.CharField(max_length=3, null=True, blank=True)

    payment_status = models.CharField(
        max_length=32,
        choices=PaymentStatus.choices,
        null=True,
        blank=True,
    )

    checkout_url = models.TextField(
        blank=True,
        default="",
        help_text="Hosted checkout page URL for the client",
    )

    # ==========================================================================
    # Cancellation / Failure
    # ==========================================================================

    cancellation_reason = models.TextField(null=True, blank=True)

    cancellation_initiated_by = models.CharField(
        max_length=16,
        choices=CancellationInitiator.choices,
        null=True,
        blank=True,
    )

    refund_issued = models.BooleanField(default=False)

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Provider error that moved the booking to FAILED",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=["status", "created_at"], name="booking_status_created_idx"),
            models.Index(fields=["client_id", "created_at"], name="booking_client_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status})"

    def save(self, *args, **kwargs) -> None:
        """
        Save with version increment on updates.

        Transitions never go through here (BookingStore writes with a
        guarded UPDATE); this keeps manual edits, e.g. from the admin,
        visible to concurrent writers as well.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def is_terminal(self) -> bool:
        return self.status in BookingStatus.terminal()

    # ==========================================================================
    # State Snapshot Conversion
    # ==========================================================================

    def to_state(self) -> BookingState:
        """Build the immutable snapshot the state machine operates on."""
        scheduling_ref = None
        if self.scheduling_event_id:
            scheduling_ref = SchedulingRef(
                external_event_id=self.scheduling_event_id,
                external_invitee_id=self.scheduling_invitee_id or "",
                start_time=self.start_time,
                end_time=self.end_time,
            )

        payment_ref = None
        if self.payment_session_id:
            payment_ref = PaymentRef(
                external_session_id=self.payment_session_id,
                external_charge_id=self.payment_charge_id,
                amount_cents=self.payment_amount_cents,
                currency=self.payment_currency,
                payment_status=self.payment_status or PaymentStatus.UNPAID,
            )

        cancellation = None
        if self.cancellation_reason is not None:
            cancellation = Cancellation(
                reason=self.cancellation_reason,
                initiated_by=self.cancellation_initiated_by or "",
                refund_issued=self.refund_issued,
            )

        return BookingState(
            booking_id=self.id,
            status=self.status,
            amount_cents=self.amount_cents,
            currency=self.currency,
            version=self.version,
            scheduling_ref=scheduling_ref,
            payment_ref=payment_ref,
            cancellation=cancellation,
        )

    @staticmethod
    def fields_from_state(state: BookingState) -> dict[str, Any]:
        """Column values for persisting a snapshot (version excluded)."""
        scheduling = state.scheduling_ref
        payment = state.payment_ref
        cancellation = state.cancellation
        return {
            "status": state.status,
            "scheduling_event_id": scheduling.external_event_id if scheduling else None,
            "scheduling_invitee_id": scheduling.external_invitee_id if scheduling else None,
            "start_time": scheduling.start_time if scheduling else None,
            "end_time": scheduling.end_time if scheduling else None,
            "payment_session_id": payment.external_session_id if payment else None,
            "payment_charge_id": payment.external_charge_id if payment else None,
            "payment_amount_cents": payment.amount_cents if payment else None,
            "payment_currency": payment.currency if payment else None,
            "payment_status": payment.payment_status if payment else None,
            "cancellation_reason": cancellation.reason if cancellation else None,
            "cancellation_initiated_by": (
                cancellation.initiated_by if cancellation else None
            ),
            "refund_issued": cancellation.refund_issued if cancellation else False,
        }


class BookingTransition(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only history of persisted booking transitions.

    One row per successful guarded write, including the commands that
    were issued, so support can see why a booking ended where it did.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="transitions",
    )

    from_status = models.CharField(max_length=32, choices=BookingStatus.choices)
    to_status = models.CharField(max_length=32, choices=BookingStatus.choices)

    event_type = models.CharField(
        max_length=64,
        choices=EventType.choices,
        blank=True,
        default="",
        help_text="Internal event that caused the transition",
    )

    delivery_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Webhook delivery that caused the transition",
    )

    version = models.PositiveIntegerField(
        help_text="Booking version written by this transition",
    )

    commands = models.JSONField(
        default=list,
        blank=True,
        help_text="Commands issued by the transition",
    )

    class Meta:
        ordering = ["booking", "version"]
        verbose_name = "Booking Transition"
        verbose_name_plural = "Booking Transitions"
        constraints = [
            models.UniqueConstraint(
                fields=["booking", "version"],
                name="unique_booking_transition_version",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.booking_id}: {self.from_status} → {self.to_status} (v{self.version})"
