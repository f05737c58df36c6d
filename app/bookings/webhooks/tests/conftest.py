"""
Pytest fixtures for webhook verification, decoding and endpoint tests.
"""

import json

import pytest

from bookings.tests.payloads import CALENDLY_TEST_SECRET, STRIPE_TEST_SECRET, sign_body

ROTATED_STRIPE_SECRET = "whsec_rotated_secret"


@pytest.fixture(autouse=True)
def webhook_secrets(settings):
    """Two active Stripe secrets to exercise rotation."""
    settings.STRIPE_WEBHOOK_SECRETS = [STRIPE_TEST_SECRET, ROTATED_STRIPE_SECRET]
    settings.CALENDLY_WEBHOOK_SIGNING_KEYS = [CALENDLY_TEST_SECRET]
    settings.WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS = 300
    return settings


@pytest.fixture
def signed():
    """
    Serialize a payload and sign it.

    Returns (body, header).
    """

    def _signed(payload: dict, secret: str, timestamp: int | None = None):
        body = json.dumps(payload).encode()
        return body, sign_body(body, secret, timestamp=timestamp)

    return _signed
