"""
Tests for booking Celery tasks.

Tests cover:
- Stuck ledger rows are reset and queued for re-drive
- Re-drive processes the stored payload exactly once
- Payment backfill for lost Stripe webhooks
- Notification emails
- Scheduling hold release and its retry behavior
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from bookings.adapters import (
    CalendlyAdapter,
    PaymentError,
    ProviderErrorKind,
    SchedulingAck,
    SchedulingError,
    SessionSnapshot,
    StripeAdapter,
)
from bookings.exceptions import RetryableProviderError
from bookings.models import Booking, WebhookDelivery
from bookings.services import IdempotencyLedger, ReconciliationCoordinator
from bookings.state_machines import BookingStatus, DeliveryOutcome, PaymentStatus, Provider
from bookings.tasks import (
    BACKFILL_AFTER,
    backfill_pending_payments,
    redrive_delivery,
    release_scheduling_hold,
    send_booking_notification,
    sweep_stuck_deliveries,
)
from bookings.tests.factories import WebhookDeliveryFactory
from bookings.tests.payloads import checkout_session, stripe_checkout_completed


def make_stale(booking: Booking) -> None:
    """Age a booking past the backfill threshold without bumping its version."""
    Booking.objects.filter(pk=booking.pk).update(
        updated_at=timezone.now() - BACKFILL_AFTER - timedelta(minutes=1)
    )


def paid_snapshot(booking: Booking) -> SessionSnapshot:
    session = checkout_session(booking.id)
    return SessionSnapshot(
        session_id=session["id"],
        status="complete",
        payment_status="paid",
        payment_intent_id="pi_test_123",
        amount_total=15000,
        currency="usd",
        metadata=session["metadata"],
        raw_response=session,
    )


# =============================================================================
# Ledger Sweep
# =============================================================================


class TestSweepStuckDeliveries:
    def test_resets_and_queues_stale_rows(self, db):
        """PENDING rows past the grace period are marked ERROR and re-driven."""
        WebhookDeliveryFactory(
            delivery_id="evt_stuck",
            outcome=DeliveryOutcome.PENDING,
            claimed_at=timezone.now() - timedelta(minutes=10),
            processed_at=None,
        )

        with patch("bookings.tasks.redrive_delivery.delay") as mock_delay:
            result = sweep_stuck_deliveries()

        assert result == {"reset_count": 1, "queued_count": 1}
        mock_delay.assert_called_once_with("evt_stuck")
        assert WebhookDelivery.objects.get(pk="evt_stuck").outcome == DeliveryOutcome.ERROR

    def test_nothing_to_sweep(self, db):
        """Fresh PENDING rows are left to their worker."""
        WebhookDeliveryFactory(outcome=DeliveryOutcome.PENDING, processed_at=None)

        with patch("bookings.tasks.redrive_delivery.delay") as mock_delay:
            result = sweep_stuck_deliveries()

        assert result == {"reset_count": 0, "queued_count": 0}
        mock_delay.assert_not_called()


class TestRedriveDelivery:
    def test_redrive_applies_stored_payload(self, awaiting_payment_booking):
        payload = stripe_checkout_completed(awaiting_payment_booking.id, event_id="evt_redrive")
        WebhookDeliveryFactory(
            delivery_id="evt_redrive",
            payload=payload,
            outcome=DeliveryOutcome.ERROR,
        )

        result = redrive_delivery("evt_redrive")

        assert result["status"] == "applied"
        assert result["outcome"] == DeliveryOutcome.APPLIED
        awaiting_payment_booking.refresh_from_db()
        assert awaiting_payment_booking.status == BookingStatus.CONFIRMED

    def test_applied_delivery_is_not_reprocessed(self, db):
        WebhookDeliveryFactory(delivery_id="evt_done", outcome=DeliveryOutcome.APPLIED)

        result = redrive_delivery("evt_done")

        assert result["status"] == "already_handled"
        assert result["outcome"] == DeliveryOutcome.APPLIED

    def test_missing_delivery(self, db):
        assert redrive_delivery("evt_missing")["status"] == "not_found"


# =============================================================================
# Payment Backfill
# =============================================================================


class TestBackfillPendingPayments:
    def test_paid_session_confirms_booking(self, awaiting_payment_booking):
        """A paid session whose webhook was lost is applied from the API."""
        booking = awaiting_payment_booking
        make_stale(booking)

        with patch.object(StripeAdapter, "retrieve_session", return_value=paid_snapshot(booking)):
            result = backfill_pending_payments()

        assert result == {"checked_count": 1, "applied_count": 1}
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == PaymentStatus.PAID
        assert WebhookDelivery.objects.filter(pk="backfill:cs_test_123:complete").exists()

    def test_late_real_webhook_is_stale_after_backfill(self, awaiting_payment_booking):
        booking = awaiting_payment_booking
        make_stale(booking)
        with patch.object(StripeAdapter, "retrieve_session", return_value=paid_snapshot(booking)):
            backfill_pending_payments()

        payload = stripe_checkout_completed(booking.id, event_id="evt_late")
        decision = IdempotencyLedger.begin_processing(
            delivery_id="evt_late", provider=Provider.PAYMENT, payload=payload
        )
        result = ReconciliationCoordinator.process(decision.delivery)

        assert result.outcome == DeliveryOutcome.IGNORED_STALE
        booking.refresh_from_db()
        assert booking.version == 2

    def test_open_session_is_left_alone(self, awaiting_payment_booking):
        booking = awaiting_payment_booking
        make_stale(booking)
        snapshot = SessionSnapshot(session_id="cs_test_123", status="open", payment_status="unpaid")

        with patch.object(StripeAdapter, "retrieve_session", return_value=snapshot):
            result = backfill_pending_payments()

        assert result == {"checked_count": 1, "applied_count": 0}
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING_PAYMENT

    def test_recent_bookings_are_skipped(self, awaiting_payment_booking):
        with patch.object(StripeAdapter, "retrieve_session") as mock_retrieve:
            result = backfill_pending_payments()

        assert result["checked_count"] == 0
        mock_retrieve.assert_not_called()

    def test_stripe_error_is_skipped(self, awaiting_payment_booking):
        make_stale(awaiting_payment_booking)
        error = PaymentError(kind=ProviderErrorKind.RATE_LIMIT, message="Stripe rate limit exceeded")

        with patch.object(StripeAdapter, "retrieve_session", return_value=error):
            result = backfill_pending_payments()

        assert result == {"checked_count": 1, "applied_count": 0}


# =============================================================================
# Notifications
# =============================================================================


class TestSendBookingNotification:
    def test_confirmation_email(self, confirmed_booking, mailoutbox):
        result = send_booking_notification(str(confirmed_booking.id), {"type": "send_confirmation"})

        assert result["status"] == "sent"
        assert len(mailoutbox) == 1
        assert mailoutbox[0].subject == "Your session is confirmed"
        assert mailoutbox[0].to == [confirmed_booking.client_email]
        assert str(confirmed_booking.id) in mailoutbox[0].body

    def test_payment_failed_email_links_checkout(self, awaiting_payment_booking, mailoutbox):
        send_booking_notification(
            str(awaiting_payment_booking.id),
            {"type": "notify_payment_failed", "reason": "Your card was declined."},
        )

        body = mailoutbox[0].body
        assert "Reason: Your card was declined." in body
        assert awaiting_payment_booking.checkout_url in body

    def test_unknown_type_is_skipped(self, booking, mailoutbox):
        result = send_booking_notification(str(booking.id), {"type": "log_ignored_transition"})

        assert result["status"] == "skipped"
        assert mailoutbox == []

    def test_missing_booking(self, db, mailoutbox):
        result = send_booking_notification(str(uuid4()), {"type": "send_confirmation"})

        assert result["status"] == "not_found"
        assert mailoutbox == []


# =============================================================================
# Scheduling Hold Release
# =============================================================================


class TestReleaseSchedulingHold:
    def test_release(self, db):
        with patch.object(
            CalendlyAdapter,
            "cancel_event",
            return_value=SchedulingAck(external_event_id="EVT-UUID-1"),
        ) as mock_cancel:
            result = release_scheduling_hold("booking-1", "EVT-UUID-1", reason="Booking failed")

        assert result == {"status": "released", "booking_id": "booking-1"}
        mock_cancel.assert_called_once_with("EVT-UUID-1", reason="Booking failed")

    def test_permanent_error_is_not_retried(self, db):
        error = SchedulingError(kind=ProviderErrorKind.INVALID_REQUEST, message="Event already canceled")

        with patch.object(CalendlyAdapter, "cancel_event", return_value=error):
            result = release_scheduling_hold("booking-1", "EVT-UUID-1", reason="Booking failed")

        assert result["status"] == "failed"
        assert result["error_code"] == ProviderErrorKind.INVALID_REQUEST

    def test_transient_error_raises_for_retry(self, db):
        error = SchedulingError(kind=ProviderErrorKind.UNKNOWN, message="Calendly request timed out")

        with patch.object(CalendlyAdapter, "cancel_event", return_value=error):
            with pytest.raises(RetryableProviderError):
                release_scheduling_hold("booking-1", "EVT-UUID-1", reason="Booking failed")
