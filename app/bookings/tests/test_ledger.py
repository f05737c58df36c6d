"""
Tests for the idempotency ledger.

Covers first claims, duplicates, re-claims of ERROR and abandoned
PENDING rows, operator force re-claims, commits and the stuck sweep.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from bookings.models import WebhookDelivery
from bookings.services import AlreadyHandled, IdempotencyLedger, Proceed
from bookings.state_machines import DeliveryOutcome, EventType, Provider
from bookings.tests.factories import BookingFactory, DeadLetterEventFactory, WebhookDeliveryFactory

PAYLOAD = {"id": "evt_ledger_1", "type": "checkout.session.completed", "data": {"object": {}}}


def begin(delivery_id="evt_ledger_1", force=False):
    return IdempotencyLedger.begin_processing(
        delivery_id=delivery_id,
        provider=Provider.PAYMENT,
        payload=PAYLOAD,
        provider_event_type="checkout.session.completed",
        force=force,
    )


# =============================================================================
# begin_processing
# =============================================================================


class TestBeginProcessing:
    def test_first_delivery_proceeds(self, db):
        decision = begin()

        assert isinstance(decision, Proceed)
        assert decision.proceed is True
        assert decision.reclaimed is False
        delivery = WebhookDelivery.objects.get(pk="evt_ledger_1")
        assert delivery.outcome == DeliveryOutcome.PENDING
        assert delivery.payload == PAYLOAD
        assert delivery.provider_event_type == "checkout.session.completed"
        assert delivery.attempts == 1

    def test_duplicate_while_in_flight(self, db):
        """A concurrent duplicate sees PENDING and must not process."""
        begin()

        decision = begin()

        assert isinstance(decision, AlreadyHandled)
        assert decision.proceed is False
        assert decision.in_flight is True

    @pytest.mark.parametrize(
        "outcome",
        [
            DeliveryOutcome.APPLIED,
            DeliveryOutcome.IGNORED_STALE,
            DeliveryOutcome.IGNORED_UNSUPPORTED,
        ],
    )
    def test_duplicate_of_finished_delivery(self, db, outcome):
        WebhookDeliveryFactory(delivery_id="evt_ledger_1", outcome=outcome)

        decision = begin()

        assert decision.proceed is False
        assert decision.outcome == outcome
        assert decision.in_flight is False
        assert WebhookDelivery.objects.get(pk="evt_ledger_1").attempts == 1

    def test_error_row_is_reclaimed(self, db):
        """The provider's retry after a 503 processes the delivery again."""
        WebhookDeliveryFactory(
            delivery_id="evt_ledger_1",
            outcome=DeliveryOutcome.ERROR,
            error_message="[UNKNOWN] Stripe rate limit exceeded",
        )

        decision = begin()

        assert decision.proceed is True
        assert decision.reclaimed is True
        delivery = WebhookDelivery.objects.get(pk="evt_ledger_1")
        assert delivery.outcome == DeliveryOutcome.PENDING
        assert delivery.attempts == 2
        assert delivery.error_message is None
        assert delivery.processed_at is None

    def test_dead_lettered_error_row_is_settled(self, db):
        """Redelivering an event already parked for an operator does nothing."""
        DeadLetterEventFactory(delivery__delivery_id="evt_ledger_1")

        decision = begin()

        assert isinstance(decision, AlreadyHandled)
        assert decision.outcome == DeliveryOutcome.ERROR
        assert WebhookDelivery.objects.get(pk="evt_ledger_1").attempts == 1

    def test_force_reclaims_dead_lettered_row(self, db):
        DeadLetterEventFactory(delivery__delivery_id="evt_ledger_1")

        decision = begin(force=True)

        assert decision.proceed is True
        assert decision.reclaimed is True

    def test_abandoned_pending_row_is_reclaimed_after_grace(self, db, settings):
        settings.WEBHOOK_STUCK_GRACE_SECONDS = 120
        with freeze_time("2026-10-18 12:00:00"):
            begin()

        with freeze_time("2026-10-18 12:01:00"):
            assert begin().proceed is False

        with freeze_time("2026-10-18 12:03:00"):
            decision = begin()

        assert decision.proceed is True
        assert decision.reclaimed is True

    def test_force_reclaims_applied_row(self, db):
        WebhookDeliveryFactory(delivery_id="evt_ledger_1", outcome=DeliveryOutcome.APPLIED)

        decision = begin(force=True)

        assert decision.proceed is True
        assert decision.delivery.outcome == DeliveryOutcome.PENDING

    def test_lost_reclaim_race_reports_winner(self, db):
        """If another worker re-claimed first, the conditional update misses."""
        WebhookDeliveryFactory(delivery_id="evt_ledger_1", outcome=DeliveryOutcome.ERROR)
        stale = WebhookDelivery.objects.get(pk="evt_ledger_1")
        IdempotencyLedger._claim(stale, timezone.now())

        assert IdempotencyLedger._claim(stale, timezone.now()) is False


# =============================================================================
# commit
# =============================================================================


class TestCommit:
    def test_commit_records_outcome(self, db):
        booking = BookingFactory()
        begin()

        IdempotencyLedger.commit(
            "evt_ledger_1",
            DeliveryOutcome.APPLIED,
            booking_id=booking.id,
            event_type=EventType.PAYMENT_SUCCEEDED,
        )

        delivery = WebhookDelivery.objects.get(pk="evt_ledger_1")
        assert delivery.outcome == DeliveryOutcome.APPLIED
        assert delivery.booking_id == booking.id
        assert delivery.event_type == EventType.PAYMENT_SUCCEEDED
        assert delivery.processed_at is not None

    def test_commit_error_message(self, db):
        begin()

        IdempotencyLedger.commit("evt_ledger_1", DeliveryOutcome.ERROR, error_message="boom")

        delivery = WebhookDelivery.objects.get(pk="evt_ledger_1")
        assert delivery.outcome == DeliveryOutcome.ERROR
        assert delivery.error_message == "boom"


# =============================================================================
# sweep_stuck
# =============================================================================


class TestSweepStuck:
    def test_resets_only_stale_pending_rows(self, db):
        now = timezone.now()
        WebhookDeliveryFactory(
            delivery_id="evt_stale",
            outcome=DeliveryOutcome.PENDING,
            claimed_at=now - timedelta(minutes=10),
            processed_at=None,
        )
        WebhookDeliveryFactory(
            delivery_id="evt_fresh",
            outcome=DeliveryOutcome.PENDING,
            claimed_at=now,
            processed_at=None,
        )
        WebhookDeliveryFactory(
            delivery_id="evt_done",
            outcome=DeliveryOutcome.APPLIED,
            claimed_at=now - timedelta(minutes=10),
        )

        reset = IdempotencyLedger.sweep_stuck(grace=timedelta(minutes=2))

        assert reset == ["evt_stale"]
        stale = WebhookDelivery.objects.get(pk="evt_stale")
        assert stale.outcome == DeliveryOutcome.ERROR
        assert "STUCK_PROCESSING" in stale.error_message
        assert WebhookDelivery.objects.get(pk="evt_fresh").outcome == DeliveryOutcome.PENDING
        assert WebhookDelivery.objects.get(pk="evt_done").outcome == DeliveryOutcome.APPLIED

    def test_swept_row_is_reclaimable(self, db):
        WebhookDeliveryFactory(
            delivery_id="evt_ledger_1",
            outcome=DeliveryOutcome.PENDING,
            claimed_at=timezone.now() - timedelta(minutes=10),
            processed_at=None,
        )
        IdempotencyLedger.sweep_stuck(grace=timedelta(minutes=2))

        assert begin().proceed is True
