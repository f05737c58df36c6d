"""
Executes the commands produced by a booking transition.

Provider commands (checkout session, void, refund, calendar release) run
synchronously before the new state is persisted, because their results
feed into that state (session ID, checkout URL, refund status). A
provider failure is raised as RetryableProviderError or
FatalProviderError so the coordinator can unwind the attempt.

Notification commands are returned as deferred and dispatched by the
coordinator only after the state write commits.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any

from core.services import BaseService

from bookings.adapters import (
    CalendlyAdapter,
    ProviderError,
    StripeAdapter,
)
from bookings.exceptions import FatalProviderError, RetryableProviderError
from bookings.models import Booking
from bookings.services.correlation import payment_metadata
from bookings.state_machines import (
    NOTIFICATION_COMMANDS,
    BookingState,
    Command,
    CreateCheckoutSession,
    IssueRefund,
    LogIgnoredTransition,
    PaymentRef,
    PaymentStatus,
    ReleaseSchedulingHold,
    TransitionResult,
    VoidCheckoutSessionIfOpen,
)


@dataclass
class ExecutionResult:
    """
    State after provider commands ran.

    Attributes:
        next_state: Transition's next state enriched with provider results
        extra_fields: Booking columns outside BookingState (checkout_url)
        deferred: Commands to dispatch after the write commits
    """

    next_state: BookingState
    extra_fields: dict[str, Any] = field(default_factory=dict)
    deferred: list[Command] = field(default_factory=list)


def raise_for_error(result: Any, command: Command) -> None:
    """Raise the coordinator-level exception for a ProviderError value."""
    if not isinstance(result, ProviderError):
        return
    if result.is_retryable:
        raise RetryableProviderError(result, command.command_type)
    raise FatalProviderError(result, command.command_type)


class CommandExecutor(BaseService):
    """
    Run a TransitionResult's commands against the provider adapters.

    Usage:
        execution = CommandExecutor.execute(booking, result)
        BookingStore.save_transition(
            booking.id,
            booking.version,
            execution.next_state,
            extra_fields=execution.extra_fields,
        )
    """

    @classmethod
    def execute(cls, booking: Booking, result: TransitionResult) -> ExecutionResult:
        """
        Execute provider commands in order.

        Raises:
            RetryableProviderError: Transient failure; nothing may be persisted
            FatalProviderError: Permanent failure; booking moves to FAILED
        """
        execution = ExecutionResult(next_state=result.next)

        for command in result.commands:
            if isinstance(command, CreateCheckoutSession):
                cls._create_checkout_session(booking, command, execution)
            elif isinstance(command, VoidCheckoutSessionIfOpen):
                cls._void_checkout_session(booking, command, execution)
            elif isinstance(command, IssueRefund):
                cls._issue_refund(booking, command)
            elif isinstance(command, ReleaseSchedulingHold):
                cls._release_scheduling_hold(command)
            elif isinstance(command, NOTIFICATION_COMMANDS):
                execution.deferred.append(command)
            elif isinstance(command, LogIgnoredTransition):
                cls.get_logger().info(
                    "Ignored transition",
                    extra={
                        "booking_id": str(command.booking_id),
                        "status": command.status,
                        "event_type": command.event_type,
                        "reason": command.reason,
                    },
                )
            else:
                raise TypeError(f"Unhandled command type: {type(command).__name__}")

        return execution

    # =========================================================================
    # Payment Commands
    # =========================================================================

    @classmethod
    def _create_checkout_session(
        cls,
        booking: Booking,
        command: CreateCheckoutSession,
        execution: ExecutionResult,
    ) -> None:
        result = StripeAdapter.create_checkout_session(
            booking_id=booking.id,
            amount_cents=command.amount_cents,
            currency=command.currency,
            correlation_metadata=payment_metadata(booking.id),
            customer_email=booking.client_email or None,
        )
        raise_for_error(result, command)

        execution.next_state = replace(
            execution.next_state,
            payment_ref=PaymentRef(
                external_session_id=result.session_id,
                amount_cents=command.amount_cents,
                currency=command.currency,
                payment_status=PaymentStatus.UNPAID,
            ),
        )
        execution.extra_fields["checkout_url"] = result.redirect_url or ""

    @classmethod
    def _void_checkout_session(
        cls,
        booking: Booking,
        command: VoidCheckoutSessionIfOpen,
        execution: ExecutionResult,
    ) -> None:
        result = StripeAdapter.void_checkout_session(command.session_id, booking_id=booking.id)
        raise_for_error(result, command)

        cls.get_logger().info(
            f"Checkout session void: {result.action}",
            extra={"booking_id": str(booking.id), "session_id": command.session_id},
        )
        if result.action != "refunded":
            return

        # The client paid while the slot was being canceled; the charge
        # was refunded in full
        state = execution.next_state
        payment_ref = state.payment_ref or PaymentRef(external_session_id=command.session_id)
        execution.next_state = replace(
            state,
            payment_ref=replace(
                payment_ref,
                external_charge_id=result.payment_intent_id,
                payment_status=PaymentStatus.REFUNDED,
            ),
            cancellation=(
                replace(state.cancellation, refund_issued=True)
                if state.cancellation
                else None
            ),
        )

    @classmethod
    def _issue_refund(cls, booking: Booking, command: IssueRefund) -> None:
        result = StripeAdapter.create_refund(
            command.charge_id,
            booking_id=booking.id,
            amount_cents=command.amount_cents,
        )
        raise_for_error(result, command)

    # =========================================================================
    # Scheduling Commands
    # =========================================================================

    @classmethod
    def _release_scheduling_hold(cls, command: ReleaseSchedulingHold) -> None:
        result = CalendlyAdapter.cancel_event(command.external_event_id, reason=command.reason)
        raise_for_error(result, command)
