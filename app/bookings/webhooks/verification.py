"""
Webhook signature verification.

Both providers sign "{timestamp}.{raw body}" with HMAC-SHA256 and send
the result in a "t=<unix>,v1=<hex>" header:

- Stripe: Stripe-Signature, verified with the stripe SDK
- Calendly: Calendly-Webhook-Signature, verified with hmac

Several secrets may be configured per provider so signing keys can be
rotated without downtime; a signature matching any of them is accepted.
Deliveries whose timestamp falls outside the tolerance are rejected to
stop replays of captured payloads.

Verification only reads the raw bytes and headers. The typed payload is
produced afterwards by bookings.webhooks.decoders.

Usage:
    verified = SignatureVerifier.verify(request.body, request.headers, Provider.PAYMENT)
    verified.delivery_id   # "evt_..." or "calendly:<sha256>"
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone as dt_timezone

import stripe
from django.conf import settings

from bookings.exceptions import SignatureInvalidError
from bookings.state_machines import Provider

logger = logging.getLogger(__name__)

STRIPE_SIGNATURE_HEADER = "Stripe-Signature"
CALENDLY_SIGNATURE_HEADER = "Calendly-Webhook-Signature"

SIGNATURE_HEADERS = {
    Provider.PAYMENT: STRIPE_SIGNATURE_HEADER,
    Provider.SCHEDULING: CALENDLY_SIGNATURE_HEADER,
}


@dataclass(frozen=True)
class VerifiedEvent:
    """
    A webhook body proven to come from the claimed provider.

    Attributes:
        provider: Provider value
        raw_payload: Body bytes exactly as received
        delivery_id: Idempotency ledger key
        timestamp: Signing time declared in the signature header
    """

    provider: str
    raw_payload: bytes
    delivery_id: str
    timestamp: datetime


@dataclass(frozen=True)
class ParsedSignatureHeader:
    timestamp: int
    signatures: tuple[str, ...]


def parse_signature_header(header: str) -> ParsedSignatureHeader:
    """
    Parse a "t=<unix>,v1=<hex>[,v1=<hex>...]" header.

    Raises:
        SignatureInvalidError: Missing timestamp or v1 signature
    """
    timestamp = None
    signatures: list[str] = []
    for item in header.split(","):
        key, _, value = item.strip().partition("=")
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise SignatureInvalidError(
                    "Malformed signature timestamp",
                    details={"header": header[:100]},
                )
        elif key == "v1" and value:
            signatures.append(value)

    if timestamp is None or not signatures:
        raise SignatureInvalidError(
            "Signature header must contain t= and v1= elements",
            details={"header": header[:100]},
        )
    return ParsedSignatureHeader(timestamp=timestamp, signatures=tuple(signatures))


def compute_signature(secret: str, timestamp: int, raw_body: bytes) -> str:
    """Hex HMAC-SHA256 of "{timestamp}.{raw_body}"."""
    signed_payload = f"{timestamp}.".encode() + raw_body
    return hmac.new(secret.encode(), signed_payload, hashlib.sha256).hexdigest()


def _get_header(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class SignatureVerifier:
    """
    Verifies inbound webhooks for each provider.

    All methods are classmethods. Failures raise SignatureInvalidError
    and are never retried.
    """

    @classmethod
    def verify(
        cls,
        raw_body: bytes,
        headers: Mapping[str, str],
        provider: str,
    ) -> VerifiedEvent:
        """
        Verify a webhook and return its delivery identity.

        Args:
            raw_body: Unparsed request body
            headers: Request headers (case-insensitive lookup)
            provider: Provider.PAYMENT or Provider.SCHEDULING

        Raises:
            SignatureInvalidError: Missing/invalid signature or stale timestamp
        """
        header_name = SIGNATURE_HEADERS.get(provider)
        if header_name is None:
            raise SignatureInvalidError(f"Unknown provider: {provider}")

        header = _get_header(headers, header_name)
        if not header:
            raise SignatureInvalidError(
                "Missing signature",
                details={"provider": provider, "header": header_name},
            )

        if provider == Provider.PAYMENT:
            return cls._verify_stripe(raw_body, header)
        return cls._verify_calendly(raw_body, header)

    @staticmethod
    def tolerance_seconds() -> int:
        return getattr(settings, "WEBHOOK_TIMESTAMP_TOLERANCE_SECONDS", 300)

    # =========================================================================
    # Stripe
    # =========================================================================

    @classmethod
    def _verify_stripe(cls, raw_body: bytes, header: str) -> VerifiedEvent:
        secrets = [s for s in settings.STRIPE_WEBHOOK_SECRETS if s]
        if not secrets:
            logger.critical("No Stripe webhook secrets configured")
            raise SignatureInvalidError("Webhook secret not configured")

        parsed = parse_signature_header(header)
        payload = raw_body.decode("utf-8", errors="replace")
        tolerance = cls.tolerance_seconds()

        for secret in secrets:
            try:
                stripe.WebhookSignature.verify_header(
                    payload, header, secret, tolerance=tolerance
                )
            except stripe.SignatureVerificationError:
                continue
            cls._check_not_in_future(parsed.timestamp, tolerance, Provider.PAYMENT)
            return VerifiedEvent(
                provider=Provider.PAYMENT,
                raw_payload=raw_body,
                delivery_id=_stripe_delivery_id(raw_body),
                timestamp=_to_datetime(parsed.timestamp),
            )

        logger.warning(
            "Stripe webhook signature rejected",
            extra={"provider": Provider.PAYMENT, "signed_at": parsed.timestamp},
        )
        raise SignatureInvalidError(
            "Invalid webhook signature",
            details={"provider": Provider.PAYMENT},
        )

    # =========================================================================
    # Calendly
    # =========================================================================

    @classmethod
    def _verify_calendly(cls, raw_body: bytes, header: str) -> VerifiedEvent:
        secrets = [s for s in settings.CALENDLY_WEBHOOK_SIGNING_KEYS if s]
        if not secrets:
            logger.critical("No Calendly webhook signing keys configured")
            raise SignatureInvalidError("Webhook secret not configured")

        parsed = parse_signature_header(header)
        tolerance = cls.tolerance_seconds()

        matched = any(
            hmac.compare_digest(compute_signature(secret, parsed.timestamp, raw_body), candidate)
            for secret in secrets
            for candidate in parsed.signatures
        )
        if not matched:
            logger.warning(
                "Calendly webhook signature rejected",
                extra={"provider": Provider.SCHEDULING, "signed_at": parsed.timestamp},
            )
            raise SignatureInvalidError(
                "Invalid webhook signature",
                details={"provider": Provider.SCHEDULING},
            )

        age = time.time() - parsed.timestamp
        if age > tolerance:
            logger.warning(
                "Calendly webhook timestamp outside tolerance",
                extra={"provider": Provider.SCHEDULING, "age_seconds": age},
            )
            raise SignatureInvalidError(
                "Timestamp outside the tolerance zone",
                details={"provider": Provider.SCHEDULING, "age_seconds": int(age)},
            )
        cls._check_not_in_future(parsed.timestamp, tolerance, Provider.SCHEDULING)

        return VerifiedEvent(
            provider=Provider.SCHEDULING,
            raw_payload=raw_body,
            delivery_id=f"calendly:{hashlib.sha256(raw_body).hexdigest()}",
            timestamp=_to_datetime(parsed.timestamp),
        )

    @staticmethod
    def _check_not_in_future(timestamp: int, tolerance: int, provider: str) -> None:
        skew = timestamp - time.time()
        if skew > tolerance:
            raise SignatureInvalidError(
                "Timestamp outside the tolerance zone",
                details={"provider": provider, "skew_seconds": int(skew)},
            )


def _to_datetime(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=dt_timezone.utc)


def _stripe_delivery_id(raw_body: bytes) -> str:
    """
    Stripe event ID, falling back to a body digest.

    Only the top-level "id" is read here; everything else is left to the
    decoder.
    """
    try:
        event_id = json.loads(raw_body).get("id")
    except (ValueError, AttributeError):
        event_id = None
    if isinstance(event_id, str) and event_id:
        return event_id
    return f"stripe:{hashlib.sha256(raw_body).hexdigest()}"
