"""
Value types consumed and produced by the booking state machine.

Everything here is an immutable dataclass with no database access:

- BookingState: snapshot of a Booking row (built by Booking.to_state())
- NormalizedEvent: provider-independent event produced by the decoders
- Command types: side effects the state machine asks the coordinator
  to perform (provider calls, notifications, logging)
- TransitionResult: next state plus the ordered command list
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from bookings.state_machines.states import (
    BookingStatus,
    CancellationInitiator,
    EventType,
    PaymentStatus,
    Provider,
)


# =============================================================================
# Booking State
# =============================================================================


@dataclass(frozen=True)
class SchedulingRef:
    """Calendar slot confirmed by the scheduling provider."""

    external_event_id: str
    external_invitee_id: str
    start_time: datetime | None = None
    end_time: datetime | None = None


@dataclass(frozen=True)
class PaymentRef:
    """Checkout session and charge recorded against a booking."""

    external_session_id: str
    external_charge_id: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    payment_status: str = PaymentStatus.UNPAID


@dataclass(frozen=True)
class Cancellation:
    reason: str
    initiated_by: str
    refund_issued: bool = False


@dataclass(frozen=True)
class BookingState:
    """
    Immutable snapshot of a booking.

    amount_cents / currency are the price agreed at intent creation and
    are what the checkout session charges; payment_ref.amount_cents is
    what the provider reports as actually charged.
    """

    booking_id: uuid.UUID
    status: str
    amount_cents: int
    currency: str
    version: int = 0
    scheduling_ref: SchedulingRef | None = None
    payment_ref: PaymentRef | None = None
    cancellation: Cancellation | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in BookingStatus.terminal()


# =============================================================================
# Normalized Events
# =============================================================================


@dataclass(frozen=True)
class SchedulingDetails:
    external_event_id: str
    external_invitee_id: str
    start_time: datetime | None = None
    end_time: datetime | None = None
    cancel_reason: str | None = None
    canceled_by: str = CancellationInitiator.CLIENT


@dataclass(frozen=True)
class PaymentDetails:
    session_id: str | None = None
    charge_id: str | None = None
    amount_cents: int | None = None
    currency: str | None = None
    refunded_amount_cents: int | None = None
    failure_message: str | None = None


@dataclass(frozen=True)
class NormalizedEvent:
    """
    Provider-independent event.

    Attributes:
        provider: Which provider delivered it
        event_type: Internal EventType value
        delivery_id: Idempotency ledger key
        occurred_at: When the provider says the event happened
        provider_event_type: Raw provider event name, kept for logs
        correlation_token: Booking ID candidate embedded by us on the
            outbound call (UTM content or checkout metadata)
        scheduling / payment: Typed details for the event family
    """

    provider: str
    event_type: str
    delivery_id: str
    occurred_at: datetime
    provider_event_type: str = ""
    correlation_token: str | None = None
    scheduling: SchedulingDetails | None = None
    payment: PaymentDetails | None = None

    @property
    def lookup_refs(self) -> dict[str, str]:
        """External identifiers usable as a fallback correlation lookup."""
        refs: dict[str, str] = {}
        if self.scheduling is not None:
            refs["scheduling_event_id"] = self.scheduling.external_event_id
        if self.payment is not None:
            if self.payment.session_id:
                refs["payment_session_id"] = self.payment.session_id
            if self.payment.charge_id:
                refs["payment_charge_id"] = self.payment.charge_id
        return refs

    @property
    def is_scheduling(self) -> bool:
        return self.provider == Provider.SCHEDULING


# =============================================================================
# Commands
# =============================================================================


@dataclass(frozen=True)
class Command:
    """
    Base class for side effects requested by a transition.

    command_type is stable and is part of every provider idempotency key,
    so it must never be renamed once deployed.
    """

    command_type: ClassVar[str] = "command"

    booking_id: uuid.UUID

    def describe(self) -> dict[str, Any]:
        """JSON-friendly summary stored in the transition history."""
        data = {
            key: str(value) if value is not None else None
            for key, value in self.__dict__.items()
            if key != "booking_id"
        }
        return {"type": self.command_type, **data}


@dataclass(frozen=True)
class CreateCheckoutSession(Command):
    command_type: ClassVar[str] = "create_checkout_session"

    amount_cents: int = 0
    currency: str = "usd"


@dataclass(frozen=True)
class VoidCheckoutSessionIfOpen(Command):
    command_type: ClassVar[str] = "void_checkout_session"

    session_id: str = ""


@dataclass(frozen=True)
class IssueRefund(Command):
    """amount_cents None refunds the full charge."""

    command_type: ClassVar[str] = "issue_refund"

    charge_id: str = ""
    amount_cents: int | None = None


@dataclass(frozen=True)
class ReleaseSchedulingHold(Command):
    command_type: ClassVar[str] = "release_scheduling_hold"

    external_event_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class SendConfirmation(Command):
    command_type: ClassVar[str] = "send_confirmation"


@dataclass(frozen=True)
class NotifyPaymentFailed(Command):
    command_type: ClassVar[str] = "notify_payment_failed"

    reason: str | None = None


@dataclass(frozen=True)
class SendRefundNotice(Command):
    command_type: ClassVar[str] = "send_refund_notice"

    amount_cents: int | None = None


@dataclass(frozen=True)
class LogIgnoredTransition(Command):
    command_type: ClassVar[str] = "log_ignored_transition"

    status: str = ""
    event_type: str = ""
    reason: str = ""


NOTIFICATION_COMMANDS = (SendConfirmation, NotifyPaymentFailed, SendRefundNotice)


@dataclass(frozen=True)
class TransitionResult:
    next: BookingState
    commands: tuple[Command, ...] = field(default_factory=tuple)

    @property
    def is_ignored(self) -> bool:
        """True when the only effect is recording that nothing happened."""
        if not self.commands:
            return False
        return all(isinstance(c, LogIgnoredTransition) for c in self.commands)
