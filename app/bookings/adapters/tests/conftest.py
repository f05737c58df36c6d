"""
Pytest fixtures for provider adapter tests.

Sections:
    - Test Data Fixtures
    - Mock Stripe Response Fixtures
    - Mock Stripe Error Fixtures
    - Mock Stripe Client Fixtures
    - Calendly Transport Fixtures
"""

import uuid
from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import httpx
import pytest
import stripe
from django.conf import settings

from bookings.adapters import CalendlyAdapter


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def booking_id():
    """Generate a random booking UUID for testing."""
    return uuid.uuid4()


@pytest.fixture(autouse=True)
def checkout_urls(settings):
    settings.BOOKING_CHECKOUT_SUCCESS_URL = "https://app.example.com/bookings/{booking_id}/paid"
    settings.BOOKING_CHECKOUT_CANCEL_URL = "https://app.example.com/bookings/{booking_id}"
    settings.CALENDLY_API_BASE_URL = "https://api.calendly.com"
    return settings


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_checkout_session():
    """Create a mock Checkout Session response."""

    def _create(
        id: str = "cs_test_abc",
        status: str = "open",
        payment_status: str = "unpaid",
        payment_intent: Any = None,
        amount_total: int = 15000,
        currency: str = "usd",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "checkout.session",
                "url": f"https://checkout.stripe.com/c/pay/{id}",
                "status": status,
                "payment_status": payment_status,
                "payment_intent": payment_intent,
                "amount_total": amount_total,
                "currency": currency,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test_abc",
        amount: int = 15000,
        status: str = "succeeded",
        payment_intent: str = "pi_test_abc",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": "usd",
                "status": status,
                "payment_intent": payment_intent,
            }
        )

    return _create


# =============================================================================
# Mock Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""
    error = stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )
    error.decline_code = "generic_decline"
    return error


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such checkout.session: 'cs_missing'",
        param="id",
        code="resource_missing",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(message="Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    """Timeouts surface from the SDK as APIConnectionError."""
    return stripe.APIConnectionError(message="Request timed out.")


@pytest.fixture
def api_error():
    return stripe.APIError(message="Something went wrong on Stripe's end.")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided.")


# =============================================================================
# Mock Stripe Client Fixtures
# =============================================================================


@pytest.fixture
def mock_stripe_session(mock_checkout_session):
    """Mock stripe.checkout.Session API."""
    with patch("stripe.checkout.Session") as mock:
        mock.create.return_value = mock_checkout_session()
        mock.retrieve.return_value = mock_checkout_session()
        mock.expire.return_value = mock_checkout_session(status="expired")
        yield mock


@pytest.fixture
def mock_stripe_refund(mock_refund):
    """Mock stripe.Refund API."""
    with patch("stripe.Refund") as mock:
        mock.create.return_value = mock_refund()
        yield mock


# =============================================================================
# Calendly Transport Fixtures
# =============================================================================


@pytest.fixture
def calendly_transport():
    """
    Route CalendlyAdapter HTTP calls to a handler function.

    Usage:
        def handler(request):
            return httpx.Response(201, json={...})

        requests = calendly_transport(handler)
        CalendlyAdapter.cancel_event("EVT", reason="...")
        assert requests[0].url.path == "/scheduled_events/EVT/cancellation"
    """
    patchers = []

    def _install(handler):
        seen: list[httpx.Request] = []

        def record(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        def client():
            return httpx.Client(
                transport=httpx.MockTransport(record),
                base_url=settings.CALENDLY_API_BASE_URL,
                headers={"Authorization": f"Bearer {settings.CALENDLY_API_TOKEN}"},
            )

        patcher = patch.object(CalendlyAdapter, "_client", side_effect=client)
        patcher.start()
        patchers.append(patcher)
        return seen

    yield _install

    for patcher in patchers:
        patcher.stop()
