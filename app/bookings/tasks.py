"""
Celery tasks for booking reconciliation.

This module provides async tasks for:
- Sweeping ledger rows stuck in PENDING and re-driving them
- Backfilling payment state when a Stripe webhook never arrived
- Sending booking notifications after a transition commits
- Releasing a Calendly hold after a booking failed

Usage:
    # Typically called via celery-beat schedule
    from bookings.tasks import sweep_stuck_deliveries
    sweep_stuck_deliveries.delay()

    # Re-drive one delivery from its stored payload
    from bookings.tasks import redrive_delivery
    redrive_delivery.delay("evt_123")
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from bookings.adapters import CalendlyAdapter, PaymentError, SchedulingError, StripeAdapter
from bookings.exceptions import RetryableProviderError
from bookings.models import Booking, WebhookDelivery
from bookings.state_machines import BookingStatus, DeliveryOutcome, Provider

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum rows to handle per periodic run
BATCH_SIZE = 100

# PENDING_PAYMENT bookings older than this are checked against Stripe
BACKFILL_AFTER = timedelta(minutes=30)

NOTIFICATION_SUBJECTS = {
    "send_confirmation": "Your session is confirmed",
    "notify_payment_failed": "Your payment did not go through",
    "send_refund_notice": "Your refund is on its way",
}


# =============================================================================
# Ledger Sweep
# =============================================================================


@shared_task
def sweep_stuck_deliveries() -> dict:
    """
    Reset deliveries abandoned mid-processing and queue them again.

    Runs every minute via celery-beat. Rows left PENDING past
    WEBHOOK_STUCK_GRACE_SECONDS are marked ERROR by the ledger, then each
    one is re-driven from its stored payload.

    Returns:
        Dict with count of deliveries reset and queued
    """
    from bookings.services import IdempotencyLedger

    reset_ids = IdempotencyLedger.sweep_stuck()[:BATCH_SIZE]

    queued_count = 0
    for delivery_id in reset_ids:
        try:
            redrive_delivery.delay(delivery_id)
            queued_count += 1
        except Exception as e:
            logger.error(
                f"Failed to queue delivery for re-drive: {e}",
                extra={"delivery_id": delivery_id},
            )

    if reset_ids:
        logger.info(
            f"Stuck delivery sweep complete: queued {queued_count}",
            extra={"reset_count": len(reset_ids), "queued_count": queued_count},
        )
    return {"reset_count": len(reset_ids), "queued_count": queued_count}


@shared_task(acks_late=True)
def redrive_delivery(delivery_id: str) -> dict:
    """
    Re-claim a delivery and process it from its stored payload.

    Only ERROR rows and PENDING rows past the grace period are
    re-claimed; anything else is reported as already handled.

    Args:
        delivery_id: Ledger key

    Returns:
        Dict with status and the committed outcome
    """
    from bookings.services import IdempotencyLedger, ReconciliationCoordinator

    try:
        delivery = WebhookDelivery.objects.get(pk=delivery_id)
    except WebhookDelivery.DoesNotExist:
        logger.error("WebhookDelivery not found", extra={"delivery_id": delivery_id})
        return {"status": "not_found", "delivery_id": delivery_id}

    decision = IdempotencyLedger.begin_processing(
        delivery_id=delivery.delivery_id,
        provider=delivery.provider,
        payload=delivery.payload,
        provider_event_type=delivery.provider_event_type,
    )
    if not decision.proceed:
        return {
            "status": "already_handled",
            "delivery_id": delivery_id,
            "outcome": decision.outcome,
        }

    result = ReconciliationCoordinator.process(decision.delivery)
    return {"status": result.detail, "delivery_id": delivery_id, "outcome": result.outcome}


# =============================================================================
# Payment Backfill
# =============================================================================


def _synthetic_session_event(delivery_id: str, event_name: str, session: dict) -> dict:
    """Stripe-shaped event body wrapping a retrieved Checkout Session."""
    return {
        "id": delivery_id,
        "object": "event",
        "type": event_name,
        "created": int(timezone.now().timestamp()),
        "data": {"object": session},
    }


@shared_task
def backfill_pending_payments() -> dict:
    """
    Reconcile PENDING_PAYMENT bookings whose Stripe webhook never arrived.

    For each booking older than BACKFILL_AFTER with a checkout session,
    retrieve the session. Paid and expired sessions are fed through the
    coordinator as synthetic deliveries keyed
    "backfill:<session_id>:<status>", so a backfill and a late real
    webhook converge on the same booking state.

    Returns:
        Dict with counts of bookings checked and deliveries applied
    """
    from bookings.services import IdempotencyLedger, ReconciliationCoordinator

    cutoff = timezone.now() - BACKFILL_AFTER
    bookings = (
        Booking.objects.filter(
            status=BookingStatus.PENDING_PAYMENT,
            payment_session_id__isnull=False,
            updated_at__lt=cutoff,
        )
        .order_by("updated_at")[:BATCH_SIZE]
    )

    checked_count = 0
    applied_count = 0
    for booking in bookings:
        checked_count += 1
        snapshot = StripeAdapter.retrieve_session(booking.payment_session_id)
        if isinstance(snapshot, PaymentError):
            logger.warning(
                "Backfill could not retrieve checkout session",
                extra={
                    "booking_id": str(booking.id),
                    "session_id": booking.payment_session_id,
                    "kind": snapshot.kind,
                },
            )
            continue

        if snapshot.is_paid:
            event_name = "checkout.session.completed"
        elif snapshot.status == "expired":
            event_name = "checkout.session.expired"
        else:
            continue

        delivery_id = f"backfill:{snapshot.session_id}:{snapshot.status}"
        payload = _synthetic_session_event(delivery_id, event_name, snapshot.raw_response)
        decision = IdempotencyLedger.begin_processing(
            delivery_id=delivery_id,
            provider=Provider.PAYMENT,
            payload=payload,
            provider_event_type=event_name,
        )
        if not decision.proceed:
            continue

        result = ReconciliationCoordinator.process(decision.delivery)
        logger.info(
            "Backfilled payment state",
            extra={
                "booking_id": str(booking.id),
                "delivery_id": delivery_id,
                "outcome": result.outcome,
            },
        )
        if result.outcome == DeliveryOutcome.APPLIED:
            applied_count += 1

    return {"checked_count": checked_count, "applied_count": applied_count}


# =============================================================================
# Deferred Side Effects
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
)
def send_booking_notification(self, booking_id: str, command: dict) -> dict:
    """
    Email the client about a booking transition.

    Args:
        booking_id: Booking the notification is about
        command: Command.describe() output of the notification command

    Returns:
        Dict with status: "sent", "skipped" or "not_found"
    """
    command_type = command.get("type", "")
    try:
        booking = Booking.objects.get(id=UUID(booking_id))
    except Booking.DoesNotExist:
        logger.warning("Booking not found for notification", extra={"booking_id": booking_id})
        return {"status": "not_found", "booking_id": booking_id}

    subject = NOTIFICATION_SUBJECTS.get(command_type)
    if not subject or not booking.client_email:
        return {"status": "skipped", "booking_id": booking_id, "type": command_type}

    lines = [f"Booking reference: {booking.id}"]
    if booking.start_time:
        lines.append(f"Session start: {booking.start_time.isoformat()}")
    if command_type == "notify_payment_failed":
        if command.get("reason"):
            lines.append(f"Reason: {command['reason']}")
        if booking.checkout_url:
            lines.append(f"You can retry the payment here: {booking.checkout_url}")
    if command_type == "send_refund_notice" and command.get("amount_cents"):
        lines.append(f"Refunded amount: {command['amount_cents']} {booking.currency.upper()} cents")

    send_mail(
        subject=subject,
        message="\n".join(lines),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[booking.client_email],
    )

    logger.info(
        "Booking notification sent",
        extra={"booking_id": booking_id, "type": command_type},
    )
    return {"status": "sent", "booking_id": booking_id, "type": command_type}


@shared_task(
    bind=True,
    autoretry_for=(RetryableProviderError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def release_scheduling_hold(self, booking_id: str, external_event_id: str, reason: str) -> dict:
    """
    Cancel the Calendly event of a booking that moved to FAILED.

    Retryable Calendly errors are raised so Celery retries with backoff;
    permanent errors are logged and dropped.
    """
    result = CalendlyAdapter.cancel_event(external_event_id, reason=reason)
    if isinstance(result, SchedulingError):
        if result.is_retryable:
            raise RetryableProviderError(result, "release_scheduling_hold")
        logger.error(
            f"Could not release scheduling hold: {result.message}",
            extra={
                "booking_id": booking_id,
                "external_event_id": external_event_id,
                "kind": result.kind,
            },
        )
        return {"status": "failed", "booking_id": booking_id, "error_code": result.kind}

    logger.info(
        "Scheduling hold released",
        extra={"booking_id": booking_id, "external_event_id": external_event_id},
    )
    return {"status": "released", "booking_id": booking_id}
