"""
Tests for webhook signature verification.

Tests cover:
- Signature header parsing
- Stripe and Calendly HMAC verification
- Secret rotation (any configured secret is accepted)
- Timestamp tolerance in both directions
- Delivery ID derivation
"""

import hashlib
import hmac
import json
import time

import pytest
from freezegun import freeze_time

from bookings.exceptions import SignatureInvalidError
from bookings.state_machines import Provider
from bookings.tests.payloads import (
    CALENDLY_TEST_SECRET,
    STRIPE_TEST_SECRET,
    calendly_invitee_created,
    stripe_checkout_completed,
)
from bookings.webhooks import SignatureVerifier, compute_signature, parse_signature_header
from bookings.webhooks.tests.conftest import ROTATED_STRIPE_SECRET

BOOKING_ID = "6f1c1a52-2f4e-4f5e-9a43-1d1f2c3b4a59"


# =============================================================================
# Header Parsing
# =============================================================================


class TestParseSignatureHeader:
    def test_parses_timestamp_and_signatures(self):
        parsed = parse_signature_header("t=1700000000,v1=abc,v0=legacy,v1=def")

        assert parsed.timestamp == 1700000000
        assert parsed.signatures == ("abc", "def")

    @pytest.mark.parametrize(
        "header",
        ["v1=abc", "t=1700000000", "t=soon,v1=abc", "garbage", "t=1700000000,v1="],
    )
    def test_rejects_malformed_headers(self, header):
        with pytest.raises(SignatureInvalidError):
            parse_signature_header(header)


def test_compute_signature_matches_hmac_sha256():
    expected = hmac.new(b"secret", b"1700000000.{}", hashlib.sha256).hexdigest()

    assert compute_signature("secret", 1700000000, b"{}") == expected


# =============================================================================
# Stripe
# =============================================================================


@freeze_time("2026-10-18 12:00:00")
class TestStripeVerification:
    def test_valid_signature(self, signed):
        body, header = signed(stripe_checkout_completed(BOOKING_ID, event_id="evt_1"), STRIPE_TEST_SECRET)

        verified = SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

        assert verified.provider == Provider.PAYMENT
        assert verified.delivery_id == "evt_1"
        assert verified.raw_payload == body
        assert int(verified.timestamp.timestamp()) == int(time.time())

    def test_rotated_secret_is_accepted(self, signed):
        body, header = signed(stripe_checkout_completed(BOOKING_ID), ROTATED_STRIPE_SECRET)

        verified = SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

        assert verified.provider == Provider.PAYMENT

    def test_header_lookup_is_case_insensitive(self, signed):
        body, header = signed(stripe_checkout_completed(BOOKING_ID), STRIPE_TEST_SECRET)

        SignatureVerifier.verify(body, {"stripe-signature": header}, Provider.PAYMENT)

    def test_wrong_secret(self, signed):
        body, header = signed(stripe_checkout_completed(BOOKING_ID), "whsec_other")

        with pytest.raises(SignatureInvalidError, match="Invalid webhook signature"):
            SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

    def test_tampered_body(self, signed):
        body, header = signed(stripe_checkout_completed(BOOKING_ID), STRIPE_TEST_SECRET)
        tampered = body.replace(b"15000", b"1")

        with pytest.raises(SignatureInvalidError):
            SignatureVerifier.verify(tampered, {"Stripe-Signature": header}, Provider.PAYMENT)

    def test_missing_header(self):
        with pytest.raises(SignatureInvalidError, match="Missing signature"):
            SignatureVerifier.verify(b"{}", {}, Provider.PAYMENT)

    def test_stale_timestamp(self, signed):
        body, header = signed(
            stripe_checkout_completed(BOOKING_ID),
            STRIPE_TEST_SECRET,
            timestamp=int(time.time()) - 301,
        )

        with pytest.raises(SignatureInvalidError):
            SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

    def test_future_timestamp(self, signed):
        body, header = signed(
            stripe_checkout_completed(BOOKING_ID),
            STRIPE_TEST_SECRET,
            timestamp=int(time.time()) + 301,
        )

        with pytest.raises(SignatureInvalidError, match="tolerance"):
            SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

    def test_no_secrets_configured(self, signed, settings):
        settings.STRIPE_WEBHOOK_SECRETS = []
        body, header = signed(stripe_checkout_completed(BOOKING_ID), STRIPE_TEST_SECRET)

        with pytest.raises(SignatureInvalidError, match="not configured"):
            SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

    def test_body_without_event_id_uses_digest(self, signed):
        body, header = signed({"type": "checkout.session.completed"}, STRIPE_TEST_SECRET)

        verified = SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.PAYMENT)

        assert verified.delivery_id == f"stripe:{hashlib.sha256(body).hexdigest()}"


# =============================================================================
# Calendly
# =============================================================================


@freeze_time("2026-10-18 12:00:00")
class TestCalendlyVerification:
    def test_valid_signature(self, signed):
        body, header = signed(calendly_invitee_created(BOOKING_ID), CALENDLY_TEST_SECRET)

        verified = SignatureVerifier.verify(
            body, {"Calendly-Webhook-Signature": header}, Provider.SCHEDULING
        )

        assert verified.provider == Provider.SCHEDULING
        assert verified.delivery_id == f"calendly:{hashlib.sha256(body).hexdigest()}"

    def test_same_body_same_delivery_id(self, signed):
        """Calendly redeliveries carry the identical body."""
        payload = calendly_invitee_created(BOOKING_ID)
        first_body, first_header = signed(payload, CALENDLY_TEST_SECRET)
        second_body, second_header = signed(json.loads(first_body), CALENDLY_TEST_SECRET)

        first = SignatureVerifier.verify(
            first_body, {"Calendly-Webhook-Signature": first_header}, Provider.SCHEDULING
        )
        second = SignatureVerifier.verify(
            second_body, {"Calendly-Webhook-Signature": second_header}, Provider.SCHEDULING
        )

        assert first.delivery_id == second.delivery_id

    def test_any_v1_signature_may_match(self, signed):
        body, header = signed(calendly_invitee_created(BOOKING_ID), CALENDLY_TEST_SECRET)
        header = header.replace("v1=", "v1=deadbeef,v1=")

        SignatureVerifier.verify(body, {"Calendly-Webhook-Signature": header}, Provider.SCHEDULING)

    def test_wrong_key(self, signed):
        body, header = signed(calendly_invitee_created(BOOKING_ID), "some-other-key")

        with pytest.raises(SignatureInvalidError):
            SignatureVerifier.verify(
                body, {"Calendly-Webhook-Signature": header}, Provider.SCHEDULING
            )

    def test_stale_timestamp(self, signed):
        body, header = signed(
            calendly_invitee_created(BOOKING_ID),
            CALENDLY_TEST_SECRET,
            timestamp=int(time.time()) - 600,
        )

        with pytest.raises(SignatureInvalidError) as exc_info:
            SignatureVerifier.verify(
                body, {"Calendly-Webhook-Signature": header}, Provider.SCHEDULING
            )

        assert exc_info.value.error_code == "SIGNATURE_INVALID"
        assert exc_info.value.details["age_seconds"] == 600

    def test_stripe_header_is_not_accepted_for_calendly(self, signed):
        body, header = signed(calendly_invitee_created(BOOKING_ID), CALENDLY_TEST_SECRET)

        with pytest.raises(SignatureInvalidError, match="Missing signature"):
            SignatureVerifier.verify(body, {"Stripe-Signature": header}, Provider.SCHEDULING)
