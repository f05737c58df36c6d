"""
Reconciliation coordinator.

Entry point for every inbound webhook and the only code that writes
Booking.status and Booking.version. One delivery is processed as:

1. Verify the signature (rejections leave no ledger row)
2. Claim the delivery in the idempotency ledger
3. Decode the payload into a NormalizedEvent
4. Resolve the booking (unresolvable events are dead-lettered)
5. Load the booking and its version
6. Compute the transition
7. Execute provider commands
8. Persist with the version guard, retrying from 5 on conflict
9. Commit the ledger outcome
10. Acknowledge

Retryable provider failures persist nothing and answer 503 so the
provider redelivers. Fatal provider failures move the booking to
FAILED and are acknowledged like any applied event.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from typing import Any

from django.conf import settings
from django.db import transaction

from core.services import BaseService

from bookings.exceptions import (
    BookingError,
    BookingNotFoundError,
    ConcurrencyConflictError,
    FatalProviderError,
    PayloadDecodeError,
    RetryableProviderError,
    SignatureInvalidError,
    UnresolvableCorrelationError,
)
from bookings.models import DeadLetterEvent, WebhookDelivery
from bookings.services.booking_store import BookingStore
from bookings.services.command_executor import CommandExecutor
from bookings.services.correlation import CorrelationResolver
from bookings.services.ledger import IdempotencyLedger
from bookings.services.refund_policy import get_refund_policy
from bookings.state_machines import (
    BookingState,
    BookingStatus,
    Command,
    DeadLetterReason,
    DeliveryOutcome,
    NormalizedEvent,
    ReleaseSchedulingHold,
    transition,
)
from bookings.webhooks.decoders import decode_event, parse_payload, provider_event_type
from bookings.webhooks.verification import SignatureVerifier


@dataclass(frozen=True)
class ProcessingResult:
    """
    Final result of processing one delivery.

    Attributes:
        outcome: Ledger outcome committed (or observed, for duplicates)
        status_code: HTTP status for the webhook response
        booking_id: Booking the delivery applied to, if any
        detail: Short machine-readable description
    """

    outcome: str
    status_code: int = 200
    booking_id: uuid.UUID | None = None
    detail: str = ""

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": self.detail or "ok", "outcome": self.outcome}
        if self.booking_id:
            body["booking_id"] = str(self.booking_id)
        return body


class ReconciliationCoordinator(BaseService):
    """
    Turns verified webhook deliveries into booking state.

    Usage:
        # Webhook view
        result = ReconciliationCoordinator.handle_delivery(
            request.body, request.headers, Provider.PAYMENT
        )
        return JsonResponse(result.to_body(), status=result.status_code)

        # Operator replay / sweep re-drive
        decision = IdempotencyLedger.begin_processing(..., force=True)
        ReconciliationCoordinator.process(decision.delivery)
    """

    @classmethod
    def handle_delivery(
        cls,
        raw_body: bytes,
        headers: Mapping[str, str],
        provider: str,
    ) -> ProcessingResult:
        """
        Verify, deduplicate and process one inbound webhook.

        Args:
            raw_body: Unparsed request body
            headers: Request headers
            provider: Provider value

        Returns:
            ProcessingResult carrying the HTTP status to answer with
        """
        logger = cls.get_logger()

        try:
            verified = SignatureVerifier.verify(raw_body, headers, provider)
        except SignatureInvalidError as e:
            logger.warning(
                f"Webhook signature rejected: {e.message}",
                extra={"provider": provider, "error_code": e.error_code},
            )
            return ProcessingResult(
                outcome=DeliveryOutcome.REJECTED_SIGNATURE,
                status_code=400,
                detail="rejected",
            )

        decode_error = None
        try:
            payload = parse_payload(verified.raw_payload)
        except PayloadDecodeError as e:
            decode_error = e
            payload = {"raw_body": verified.raw_payload.decode("utf-8", errors="replace")}

        decision = IdempotencyLedger.begin_processing(
            delivery_id=verified.delivery_id,
            provider=provider,
            payload=payload,
            provider_event_type=provider_event_type(provider, payload),
        )
        if not decision.proceed:
            if decision.in_flight:
                return ProcessingResult(
                    outcome=decision.outcome,
                    status_code=409,
                    detail="in_progress",
                )
            return ProcessingResult(
                outcome=decision.outcome,
                booking_id=decision.delivery.booking_id,
                detail="duplicate",
            )

        logger.info(
            "Webhook delivery accepted",
            extra={
                "delivery_id": verified.delivery_id,
                "provider": provider,
                "provider_event_type": decision.delivery.provider_event_type,
            },
        )

        if decode_error is not None:
            return cls._dead_letter(
                decision.delivery,
                DeadLetterReason.PAYLOAD_INVALID,
                decode_error,
            )
        return cls.process(decision.delivery)

    @classmethod
    def process(
        cls,
        delivery: WebhookDelivery,
        booking_id: uuid.UUID | None = None,
    ) -> ProcessingResult:
        """
        Process a claimed delivery from its stored payload.

        Used by handle_delivery and by every re-drive path (operator
        replay, stuck-row sweep, backfill, dead-letter resolution). The
        ledger row must already be claimed (PENDING).

        Args:
            delivery: Claimed ledger row
            booking_id: Skip correlation and apply to this booking
                (dead-letter resolution)
        """
        logger = cls.get_logger()

        try:
            event = decode_event(
                delivery.provider,
                delivery.delivery_id,
                delivery.payload,
                received_at=delivery.received_at,
            )
        except PayloadDecodeError as e:
            return cls._dead_letter(delivery, DeadLetterReason.PAYLOAD_INVALID, e)

        if event is None:
            logger.info(
                f"Unsupported event type: {delivery.provider_event_type}",
                extra={"delivery_id": delivery.delivery_id, "provider": delivery.provider},
            )
            IdempotencyLedger.commit(delivery.delivery_id, DeliveryOutcome.IGNORED_UNSUPPORTED)
            return ProcessingResult(
                outcome=DeliveryOutcome.IGNORED_UNSUPPORTED,
                detail="unsupported",
            )

        resolved = booking_id or CorrelationResolver.resolve(event)
        if resolved is None:
            return cls._dead_letter(
                delivery,
                DeadLetterReason.UNRESOLVABLE_CORRELATION,
                UnresolvableCorrelationError(
                    "No booking matches the event",
                    details={"correlation_token": event.correlation_token},
                ),
                event=event,
            )

        try:
            return cls._apply(delivery, event, resolved)
        except BookingNotFoundError as e:
            return cls._dead_letter(
                delivery,
                DeadLetterReason.UNRESOLVABLE_CORRELATION,
                e,
                event=event,
            )

    # =========================================================================
    # Transition Loop
    # =========================================================================

    @classmethod
    def _apply(
        cls,
        delivery: WebhookDelivery,
        event: NormalizedEvent,
        booking_id: uuid.UUID,
    ) -> ProcessingResult:
        logger = cls.get_logger()
        refund_policy = get_refund_policy()
        max_attempts = getattr(settings, "BOOKING_MAX_CONCURRENCY_RETRIES", 5)
        log_context = {
            "delivery_id": delivery.delivery_id,
            "event_type": event.event_type,
            "booking_id": str(booking_id),
        }

        for attempt in range(1, max_attempts + 1):
            booking = BookingStore.load(booking_id)
            current = booking.to_state()
            result = transition(current, event, refund_policy=refund_policy)

            if result.is_ignored:
                for command in result.commands:
                    logger.warning(
                        f"Ignored transition: {command.reason}",
                        extra={**log_context, "status": current.status},
                    )
                IdempotencyLedger.commit(
                    delivery.delivery_id,
                    DeliveryOutcome.IGNORED_STALE,
                    booking_id=booking_id,
                    event_type=event.event_type,
                )
                return ProcessingResult(
                    outcome=DeliveryOutcome.IGNORED_STALE,
                    booking_id=booking_id,
                    detail="ignored",
                )

            try:
                execution = CommandExecutor.execute(booking, result)
            except RetryableProviderError as e:
                logger.warning(
                    f"Retryable provider failure: {e.message}",
                    extra={**log_context, "command": e.command_type, "kind": e.error_code},
                )
                IdempotencyLedger.commit(
                    delivery.delivery_id,
                    DeliveryOutcome.ERROR,
                    booking_id=booking_id,
                    event_type=event.event_type,
                    error_message=str(e),
                )
                return ProcessingResult(
                    outcome=DeliveryOutcome.ERROR,
                    status_code=503,
                    booking_id=booking_id,
                    detail="retry",
                )
            except FatalProviderError as e:
                try:
                    return cls._fail_booking(
                        delivery, event, booking, current, result.next, result.commands, e
                    )
                except ConcurrencyConflictError:
                    continue

            try:
                with cls.atomic():
                    BookingStore.save_transition(
                        booking_id,
                        expected_version=booking.version,
                        next_state=execution.next_state,
                        event=event,
                        commands=result.commands,
                        extra_fields=execution.extra_fields,
                        from_status=current.status,
                    )
                    IdempotencyLedger.commit(
                        delivery.delivery_id,
                        DeliveryOutcome.APPLIED,
                        booking_id=booking_id,
                        event_type=event.event_type,
                    )
                    cls._dispatch_notifications(booking_id, execution.deferred)
            except ConcurrencyConflictError:
                logger.info(
                    "Concurrent booking write, recomputing transition",
                    extra={**log_context, "attempt": attempt},
                )
                continue

            return ProcessingResult(
                outcome=DeliveryOutcome.APPLIED,
                booking_id=booking_id,
                detail="applied",
            )

        logger.error(
            f"Concurrency retries exhausted after {max_attempts} attempts",
            extra=log_context,
        )
        return cls._dead_letter(
            delivery,
            DeadLetterReason.CONCURRENCY_EXHAUSTED,
            ConcurrencyConflictError(
                f"Booking {booking_id} kept changing during processing",
                details={"booking_id": str(booking_id), "attempts": max_attempts},
            ),
            event=event,
            booking_id=booking_id,
        )

    @classmethod
    def _fail_booking(
        cls,
        delivery: WebhookDelivery,
        event: NormalizedEvent,
        booking,
        current: BookingState,
        next_state: BookingState,
        commands: Iterable[Command],
        error: FatalProviderError,
    ) -> ProcessingResult:
        """
        Persist FAILED after a permanent provider error.

        The failed record starts from the loaded state, since none of the
        transition's provider effects happened. Only the slot confirmed by
        the event and the cancellation request are carried over, without
        any refund claim.

        Raises:
            ConcurrencyConflictError: Booking changed since it was loaded
        """
        logger = cls.get_logger()
        cancellation = current.cancellation
        if next_state.cancellation is not None:
            cancellation = replace(next_state.cancellation, refund_issued=False)
        failed_state = replace(
            current,
            status=BookingStatus.FAILED,
            scheduling_ref=next_state.scheduling_ref or current.scheduling_ref,
            cancellation=cancellation,
        )
        failure_reason = f"{error.command_type}: [{error.error_code}] {error.message}"

        logger.error(
            "Fatal provider failure, booking moved to FAILED",
            extra={
                "delivery_id": delivery.delivery_id,
                "booking_id": str(booking.id),
                "command": error.command_type,
                "kind": error.error_code,
            },
        )

        with cls.atomic():
            BookingStore.save_transition(
                booking.id,
                expected_version=booking.version,
                next_state=failed_state,
                event=event,
                commands=commands,
                extra_fields={"failure_reason": failure_reason},
                from_status=booking.status,
            )
            IdempotencyLedger.commit(
                delivery.delivery_id,
                DeliveryOutcome.APPLIED,
                booking_id=booking.id,
                event_type=event.event_type,
                error_message=failure_reason,
            )
            scheduling_ref = failed_state.scheduling_ref
            if scheduling_ref and error.command_type != ReleaseSchedulingHold.command_type:
                cls._release_hold_on_commit(booking.id, scheduling_ref.external_event_id)

        return ProcessingResult(
            outcome=DeliveryOutcome.APPLIED,
            booking_id=booking.id,
            detail="failed",
        )

    # =========================================================================
    # Dead Letters
    # =========================================================================

    @classmethod
    def _dead_letter(
        cls,
        delivery: WebhookDelivery,
        reason: str,
        error: BookingError,
        event: NormalizedEvent | None = None,
        booking_id: uuid.UUID | None = None,
    ) -> ProcessingResult:
        """Park a delivery for manual reconciliation and commit it as ERROR."""
        with cls.atomic():
            dead_letter = DeadLetterEvent.objects.create(
                delivery=delivery,
                provider=delivery.provider,
                event_type=event.event_type if event else "",
                provider_event_type=delivery.provider_event_type,
                reason=reason,
                payload=delivery.payload,
                error_message=str(error),
            )
            IdempotencyLedger.commit(
                delivery.delivery_id,
                DeliveryOutcome.ERROR,
                booking_id=booking_id,
                event_type=event.event_type if event else None,
                error_message=str(error),
            )

        cls.get_logger().warning(
            f"Delivery dead-lettered: {reason}",
            extra={
                "delivery_id": delivery.delivery_id,
                "provider": delivery.provider,
                "dead_letter_id": str(dead_letter.id),
                "error_code": error.error_code,
            },
        )
        return ProcessingResult(
            outcome=DeliveryOutcome.ERROR,
            booking_id=booking_id,
            detail="dead_lettered",
        )

    # =========================================================================
    # Deferred Side Effects
    # =========================================================================

    @staticmethod
    def _dispatch_notifications(booking_id: uuid.UUID, commands: Iterable[Command]) -> None:
        # Import here to avoid circular imports
        from bookings.tasks import send_booking_notification

        for command in commands:
            description = command.describe()
            transaction.on_commit(
                lambda description=description: send_booking_notification.delay(
                    str(booking_id), description
                )
            )

    @staticmethod
    def _release_hold_on_commit(booking_id: uuid.UUID, external_event_id: str) -> None:
        from bookings.tasks import release_scheduling_hold

        transaction.on_commit(
            lambda: release_scheduling_hold.delay(
                str(booking_id),
                external_event_id,
                reason="Booking could not be completed",
            )
        )
