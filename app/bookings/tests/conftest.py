"""
Pytest fixtures for booking tests.

Fixtures provide bookings in each lifecycle state and claimed ledger
rows, so coordinator and task tests can start from the point they
exercise.

Usage:
    def test_payment_confirms_booking(awaiting_payment_booking, claim):
        delivery = claim(stripe_checkout_completed(awaiting_payment_booking.id))
        ReconciliationCoordinator.process(delivery)
"""

import json

import pytest
from rest_framework.test import APIRequestFactory

from bookings.adapters import CheckoutSessionResult
from bookings.services import IdempotencyLedger
from bookings.state_machines import Provider
from bookings.tests.factories import BookingFactory, UserFactory
from bookings.tests.payloads import CALENDLY_TEST_SECRET, STRIPE_TEST_SECRET


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture(autouse=True)
def webhook_secrets(settings):
    """Known signing secrets and the default refund policy."""
    settings.STRIPE_WEBHOOK_SECRETS = [STRIPE_TEST_SECRET]
    settings.CALENDLY_WEBHOOK_SIGNING_KEYS = [CALENDLY_TEST_SECRET]
    settings.BOOKING_REFUND_POLICY = "bookings.services.refund_policy.full_refund"
    return settings


# =============================================================================
# Users and Requests
# =============================================================================


@pytest.fixture
def user(db):
    return UserFactory()


@pytest.fixture
def api_rf():
    return APIRequestFactory()


# =============================================================================
# Booking State Fixtures
# =============================================================================


@pytest.fixture
def booking(db, user):
    """PENDING_SCHEDULING booking owned by user."""
    return BookingFactory(client_id=str(user.pk))


@pytest.fixture
def awaiting_payment_booking(db, user):
    """PENDING_PAYMENT booking with an open checkout session."""
    return BookingFactory(client_id=str(user.pk), awaiting_payment=True)


@pytest.fixture
def confirmed_booking(db, user):
    """CONFIRMED booking with a captured charge."""
    return BookingFactory(client_id=str(user.pk), confirmed=True)


# =============================================================================
# Ledger Fixtures
# =============================================================================


@pytest.fixture
def claim(db):
    """
    Claim a ledger row for a provider payload, as handle_delivery would.

    Returns the claimed WebhookDelivery.
    """

    def _claim(payload: dict, provider: str = Provider.PAYMENT, delivery_id: str | None = None):
        if delivery_id is None:
            delivery_id = payload.get("id") or f"calendly:{hash(json.dumps(payload, sort_keys=True))}"
        event_key = "type" if provider == Provider.PAYMENT else "event"
        decision = IdempotencyLedger.begin_processing(
            delivery_id=delivery_id,
            provider=provider,
            payload=payload,
            provider_event_type=payload.get(event_key, ""),
        )
        assert decision.proceed
        return decision.delivery

    return _claim


# =============================================================================
# Provider Stubs
# =============================================================================


@pytest.fixture
def checkout_session_result():
    def _create(session_id: str = "cs_test_new") -> CheckoutSessionResult:
        return CheckoutSessionResult(
            session_id=session_id,
            redirect_url=f"https://checkout.stripe.com/c/pay/{session_id}",
            raw_response={"id": session_id, "object": "checkout.session"},
        )

    return _create
