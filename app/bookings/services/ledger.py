"""
Idempotency ledger for inbound webhook deliveries.

begin_processing() is an atomic insert-if-absent keyed by delivery ID.
The primary-key constraint arbitrates concurrent duplicates, so there is
no read-modify-write race and no lock. A second delivery with the same
ID gets AlreadyHandled with the recorded outcome, except when the row
is retryable:

- ERROR rows: a previous attempt failed retryably; the provider's retry
  re-claims the row and processing starts again. ERROR rows that were
  dead-lettered are settled until an operator acts on them.
- PENDING rows older than the grace period: the process that claimed
  them died; the row is re-claimed.
- force=True (operator replay): any row is re-claimed.

Re-claims are conditional updates on (outcome, claimed_at), so two
concurrent retries can never both win.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from bookings.exceptions import StuckProcessingError
from bookings.models import WebhookDelivery
from bookings.state_machines import DeliveryOutcome


@dataclass(frozen=True)
class Proceed:
    """The caller owns processing of this delivery."""

    delivery: WebhookDelivery
    reclaimed: bool = False

    proceed = True


@dataclass(frozen=True)
class AlreadyHandled:
    """
    Duplicate delivery.

    outcome is the stored outcome; PENDING means another worker is
    processing it right now.
    """

    delivery: WebhookDelivery
    outcome: str

    proceed = False

    @property
    def in_flight(self) -> bool:
        return self.outcome == DeliveryOutcome.PENDING


class IdempotencyLedger(BaseService):
    """
    Durable record of every webhook delivery seen.

    Usage:
        decision = IdempotencyLedger.begin_processing(
            delivery_id="evt_123",
            provider=Provider.PAYMENT,
            payload=payload,
            provider_event_type="checkout.session.completed",
        )
        if not decision.proceed:
            return acknowledge(decision.outcome)
        ...
        IdempotencyLedger.commit("evt_123", DeliveryOutcome.APPLIED, booking_id=booking.id)
    """

    @staticmethod
    def grace_period() -> timedelta:
        return timedelta(seconds=getattr(settings, "WEBHOOK_STUCK_GRACE_SECONDS", 120))

    @classmethod
    def begin_processing(
        cls,
        delivery_id: str,
        provider: str,
        payload: dict[str, Any],
        provider_event_type: str = "",
        force: bool = False,
    ) -> Proceed | AlreadyHandled:
        """
        Claim a delivery for processing.

        Args:
            delivery_id: Ledger key
            provider: Provider value
            payload: Verified body, stored for replay and triage
            provider_event_type: Raw provider event name
            force: Re-claim regardless of stored outcome (operator replay)

        Returns:
            Proceed if the caller should process the delivery,
            AlreadyHandled otherwise
        """
        logger = cls.get_logger()
        now = timezone.now()

        try:
            with transaction.atomic():
                delivery = WebhookDelivery.objects.create(
                    delivery_id=delivery_id,
                    provider=provider,
                    provider_event_type=provider_event_type,
                    payload=payload,
                    outcome=DeliveryOutcome.PENDING,
                    received_at=now,
                    claimed_at=now,
                )
            return Proceed(delivery=delivery)
        except IntegrityError:
            pass

        delivery = WebhookDelivery.objects.get(pk=delivery_id)
        log_context = {
            "delivery_id": delivery_id,
            "provider": provider,
            "outcome": delivery.outcome,
            "force": force,
        }

        if force or cls._is_reclaimable(delivery, now):
            if cls._claim(delivery, now):
                delivery.refresh_from_db()
                logger.info("Re-claimed webhook delivery", extra=log_context)
                return Proceed(delivery=delivery, reclaimed=True)

            # Lost the re-claim race; report the winner's state
            delivery.refresh_from_db()

        logger.info("Duplicate webhook delivery", extra=log_context)
        return AlreadyHandled(delivery=delivery, outcome=delivery.outcome)

    @classmethod
    def commit(
        cls,
        delivery_id: str,
        outcome: str,
        booking_id=None,
        event_type: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """
        Finalize a delivery's outcome.

        Args:
            delivery_id: Ledger key
            outcome: Final DeliveryOutcome
            booking_id: Booking the delivery resolved to, if any
            event_type: Internal event type, if decoded
            error_message: Error details for ERROR outcomes
        """
        now = timezone.now()
        fields: dict[str, Any] = {
            "outcome": outcome,
            "processed_at": now,
            "updated_at": now,
            "error_message": error_message,
        }
        if booking_id is not None:
            fields["booking_id"] = booking_id
        if event_type is not None:
            fields["event_type"] = event_type

        WebhookDelivery.objects.filter(pk=delivery_id).update(**fields)
        cls.get_logger().info(
            "Webhook delivery committed",
            extra={
                "delivery_id": delivery_id,
                "outcome": outcome,
                "booking_id": str(booking_id) if booking_id else None,
            },
        )

    @classmethod
    def sweep_stuck(cls, grace: timedelta | None = None) -> list[str]:
        """
        Reset PENDING rows abandoned past the grace period to ERROR.

        Marked rows become re-claimable by the next delivery attempt
        (provider retry, replay, or the sweep task's own re-drive).

        Returns:
            Delivery IDs that were reset
        """
        now = timezone.now()
        cutoff = now - (grace or cls.grace_period())
        stale = list(
            WebhookDelivery.objects.filter(
                outcome=DeliveryOutcome.PENDING,
                claimed_at__lt=cutoff,
            ).values_list("delivery_id", "claimed_at")
        )

        reset: list[str] = []
        for delivery_id, claimed_at in stale:
            error = StuckProcessingError(
                "Processing did not complete within the grace period",
                details={"claimed_at": claimed_at.isoformat()},
            )
            updated = WebhookDelivery.objects.filter(
                pk=delivery_id,
                outcome=DeliveryOutcome.PENDING,
                claimed_at=claimed_at,
            ).update(
                outcome=DeliveryOutcome.ERROR,
                error_message=str(error),
                updated_at=now,
            )
            if updated:
                reset.append(delivery_id)

        if reset:
            cls.get_logger().warning(
                f"Reset {len(reset)} stuck webhook deliveries",
                extra={"delivery_ids": reset},
            )
        return reset

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _is_reclaimable(cls, delivery: WebhookDelivery, now) -> bool:
        if delivery.outcome == DeliveryOutcome.ERROR:
            return not delivery.dead_letters.exists()
        if delivery.outcome == DeliveryOutcome.PENDING:
            return delivery.claimed_at < now - cls.grace_period()
        return False

    @staticmethod
    def _claim(delivery: WebhookDelivery, now) -> bool:
        updated = WebhookDelivery.objects.filter(
            pk=delivery.pk,
            outcome=delivery.outcome,
            claimed_at=delivery.claimed_at,
        ).update(
            outcome=DeliveryOutcome.PENDING,
            claimed_at=now,
            processed_at=None,
            error_message=None,
            attempts=F("attempts") + 1,
            updated_at=now,
        )
        return updated == 1
