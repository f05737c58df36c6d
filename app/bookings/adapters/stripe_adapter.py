"""
Stripe adapter: the payment orchestrator.

Encapsulates every Stripe API interaction the booking engine makes.
Calls carry a bounded timeout, mutating calls carry an idempotency key
derived from (booking_id, command type), and failures come back as
PaymentError values instead of exceptions.

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- BOOKING_CHECKOUT_SUCCESS_URL / BOOKING_CHECKOUT_CANCEL_URL: redirect
  targets, formatted with {booking_id}

Usage:
    from bookings.adapters import PaymentError, StripeAdapter

    result = StripeAdapter.create_checkout_session(
        booking_id=booking.id,
        amount_cents=15000,
        currency="usd",
        correlation_metadata={"booking_id": str(booking.id)},
    )
    if isinstance(result, PaymentError):
        ...
    else:
        redirect_to(result.redirect_url)
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import stripe
from django.conf import settings

from bookings.adapters.types import (
    CheckoutSessionResult,
    IdempotencyKeyGenerator,
    PaymentError,
    ProviderErrorKind,
    RefundResult,
    SessionSnapshot,
    VoidResult,
)
from bookings.state_machines import CreateCheckoutSession, IssueRefund

CHECKOUT_PRODUCT_NAME = "Session booking"


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from web workers and Celery tasks.

    Usage:
        result = StripeAdapter.create_checkout_session(...)
        result = StripeAdapter.create_refund(charge_id, booking_id=booking.id)
        snapshot = StripeAdapter.retrieve_session(session_id)
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(
        cls,
        booking_id: uuid.UUID,
        amount_cents: int,
        currency: str,
        correlation_metadata: dict[str, str],
        customer_email: str | None = None,
    ) -> CheckoutSessionResult | PaymentError:
        """
        Create a hosted Checkout Session for a booking.

        The correlation metadata is attached both to the session and to
        its PaymentIntent, so every later event (checkout.session.*,
        payment_intent.*) carries the booking ID.

        Args:
            booking_id: Booking being paid for
            amount_cents: Price in smallest currency unit
            currency: ISO 4217 currency code
            correlation_metadata: Must contain "booking_id"
            customer_email: Prefills the checkout form

        Returns:
            CheckoutSessionResult with session_id and redirect_url,
            or PaymentError
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        idempotency_key = IdempotencyKeyGenerator.generate(
            CreateCheckoutSession.command_type, booking_id
        )
        log_context = {
            "operation": "create_checkout_session",
            "booking_id": str(booking_id),
            "amount_cents": amount_cents,
            "currency": currency,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        params: dict[str, Any] = {
            "mode": "payment",
            "client_reference_id": str(booking_id),
            "line_items": [
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": currency,
                        "unit_amount": amount_cents,
                        "product_data": {"name": CHECKOUT_PRODUCT_NAME},
                    },
                }
            ],
            "metadata": correlation_metadata,
            "payment_intent_data": {"metadata": correlation_metadata},
            "success_url": settings.BOOKING_CHECKOUT_SUCCESS_URL.format(
                booking_id=booking_id
            ),
            "cancel_url": settings.BOOKING_CHECKOUT_CANCEL_URL.format(
                booking_id=booking_id
            ),
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = stripe.checkout.Session.create(
                idempotency_key=idempotency_key,
                **params,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return cls._translate_error(e, log_context, duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "session_id": session.id,
                "duration_ms": duration_ms,
            },
        )
        return CheckoutSessionResult(
            session_id=session.id,
            redirect_url=session.url,
            raw_response=session.to_dict(),
        )

    @classmethod
    def retrieve_session(cls, session_id: str) -> SessionSnapshot | PaymentError:
        """
        Retrieve a Checkout Session.

        Used for backfill when a webhook is lost and by
        void_checkout_session to decide what to do with a session.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {"operation": "retrieve_session", "session_id": session_id}
        start_time = time.time()

        try:
            session = stripe.checkout.Session.retrieve(session_id)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return cls._translate_error(e, log_context, duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "Stripe operation completed",
            extra={**log_context, "status": session.status, "duration_ms": duration_ms},
        )
        return SessionSnapshot(
            session_id=session.id,
            status=session.status,
            payment_status=session.payment_status,
            payment_intent_id=_object_id(session.payment_intent),
            amount_total=session.amount_total,
            currency=session.currency,
            metadata=dict(session.metadata or {}),
            raw_response=session.to_dict(),
        )

    @classmethod
    def expire_session(cls, session_id: str) -> SessionSnapshot | PaymentError:
        """Expire an open Checkout Session so it can no longer be paid."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {"operation": "expire_session", "session_id": session_id}
        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            session = stripe.checkout.Session.expire(session_id)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return cls._translate_error(e, log_context, duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "status": session.status, "duration_ms": duration_ms},
        )
        return SessionSnapshot(
            session_id=session.id,
            status=session.status,
            payment_status=session.payment_status,
            payment_intent_id=_object_id(session.payment_intent),
            raw_response=session.to_dict(),
        )

    @classmethod
    def void_checkout_session(
        cls,
        session_id: str,
        booking_id: uuid.UUID,
    ) -> VoidResult | PaymentError:
        """
        Make sure a canceled booking's checkout session cannot keep money.

        - open: expire it
        - complete with a PaymentIntent: the client paid while the slot
          was being canceled, so refund the charge in full
        - anything else (already expired): nothing to do

        The refund uses the same idempotency key as IssueRefund for the
        booking, so the charge can never be refunded twice.
        """
        snapshot = cls.retrieve_session(session_id)
        if isinstance(snapshot, PaymentError):
            return snapshot

        if snapshot.status == "open":
            expired = cls.expire_session(session_id)
            if isinstance(expired, PaymentError):
                return expired
            return VoidResult(action="expired", session_id=session_id)

        if snapshot.status == "complete" and snapshot.payment_intent_id:
            refund = cls.create_refund(snapshot.payment_intent_id, booking_id=booking_id)
            if isinstance(refund, PaymentError):
                return refund
            return VoidResult(
                action="refunded",
                session_id=session_id,
                refund=refund,
                payment_intent_id=snapshot.payment_intent_id,
            )

        return VoidResult(action="noop", session_id=session_id)

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        charge_id: str,
        booking_id: uuid.UUID,
        amount_cents: int | None = None,
    ) -> RefundResult | PaymentError:
        """
        Refund a PaymentIntent, fully or partially.

        Args:
            charge_id: PaymentIntent ID (pi_xxx) holding the charge
            booking_id: Booking the refund belongs to (idempotency key)
            amount_cents: Amount to refund (None for full refund)

        Returns:
            RefundResult or PaymentError
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        idempotency_key = IdempotencyKeyGenerator.generate(
            IssueRefund.command_type, booking_id
        )
        log_context = {
            "operation": "create_refund",
            "booking_id": str(booking_id),
            "payment_intent_id": charge_id,
            "amount_cents": amount_cents,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        refund_params: dict[str, Any] = {
            "payment_intent": charge_id,
            "metadata": {"booking_id": str(booking_id)},
        }
        if amount_cents is not None:
            refund_params["amount"] = amount_cents

        try:
            refund = stripe.Refund.create(
                idempotency_key=idempotency_key,
                **refund_params,
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            return cls._translate_error(e, log_context, duration_ms)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={
                **log_context,
                "refund_id": refund.id,
                "status": refund.status,
                "duration_ms": duration_ms,
            },
        )
        return RefundResult(
            refund_id=refund.id,
            status=refund.status,
            amount_cents=refund.amount,
            raw_response=refund.to_dict(),
        )

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _translate_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> PaymentError:
        """
        Translate a Stripe exception into a PaymentError value.

        Timeouts and connection failures surface from the SDK as
        APIConnectionError and are classified UNKNOWN (retryable), never
        as success.
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}
        code = getattr(error, "code", None)

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            return PaymentError(
                kind=ProviderErrorKind.CARD_DECLINED,
                message=str(getattr(error, "user_message", None) or error),
                provider_code=code,
                details={"decline_code": decline_code},
            )

        if isinstance(error, (stripe.AuthenticationError, stripe.PermissionError)):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            return PaymentError(
                kind=ProviderErrorKind.AUTHENTICATION,
                message="Stripe authentication failed",
                provider_code=code or "authentication_error",
            )

        if isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            return PaymentError(
                kind=ProviderErrorKind.RATE_LIMIT,
                message="Stripe rate limit exceeded",
                provider_code="rate_limit",
            )

        if isinstance(error, (stripe.InvalidRequestError, stripe.IdempotencyError)):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": code},
            )
            return PaymentError(
                kind=ProviderErrorKind.INVALID_REQUEST,
                message=str(error),
                provider_code=code,
            )

        if isinstance(error, stripe.APIConnectionError):
            logger.error("Connection error to Stripe", extra=log_context, exc_info=True)
            return PaymentError(
                kind=ProviderErrorKind.UNKNOWN,
                message="Could not connect to Stripe",
                provider_code="api_connection_error",
            )

        logger.error(
            f"Unexpected error from Stripe: {type(error).__name__}",
            extra=log_context,
            exc_info=True,
        )
        return PaymentError(
            kind=ProviderErrorKind.UNKNOWN,
            message=f"Unexpected Stripe error: {error}",
            provider_code=code or "unknown_error",
        )


def _object_id(value: Any) -> str | None:
    """Stripe returns either an ID string or an expanded object."""
    if value is None or isinstance(value, str):
        return value
    return getattr(value, "id", None)
