"""
Booking state machine.

transition() is a pure function: given the current BookingState and a
NormalizedEvent it returns the next state and the commands to run. It
performs no I/O and never raises for an unexpected (state, event) pair;
pairs missing from TRANSITIONS degrade to an unchanged state plus a
LogIgnoredTransition command.

Transition Table:
    PENDING_SCHEDULING + scheduling.confirmed   → PENDING_PAYMENT  [CreateCheckoutSession]
    PENDING_SCHEDULING + scheduling.canceled    → CANCELED
    PENDING_SCHEDULING + scheduling.rescheduled → PENDING_SCHEDULING (ref updated)
    PENDING_PAYMENT    + payment.succeeded      → CONFIRMED        [SendConfirmation]
    PENDING_PAYMENT    + payment.failed         → PENDING_PAYMENT  [NotifyPaymentFailed]
    PENDING_PAYMENT    + payment.expired        → CANCELED         [ReleaseSchedulingHold]
    PENDING_PAYMENT    + scheduling.canceled    → CANCELED         [VoidCheckoutSessionIfOpen]
    PENDING_PAYMENT    + scheduling.rescheduled → PENDING_PAYMENT  (ref updated)
    CONFIRMED          + scheduling.canceled    → CANCELED         [IssueRefund if charged]
    CONFIRMED          + scheduling.rescheduled → CONFIRMED        (ref updated)
    CONFIRMED          + payment.refunded       → REFUNDED         [SendRefundNotice]
    CANCELED / REFUNDED / FAILED + anything     → unchanged        [LogIgnoredTransition]

Usage:
    from bookings.state_machines import transition

    result = transition(booking.to_state(), event)
    result.next.status      # "PENDING_PAYMENT"
    result.commands         # (CreateCheckoutSession(...),)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from bookings.state_machines.states import (
    BookingStatus,
    CancellationInitiator,
    EventType,
    PaymentStatus,
)
from bookings.state_machines.types import (
    BookingState,
    Cancellation,
    CreateCheckoutSession,
    IssueRefund,
    LogIgnoredTransition,
    NormalizedEvent,
    NotifyPaymentFailed,
    PaymentRef,
    ReleaseSchedulingHold,
    SchedulingRef,
    SendConfirmation,
    SendRefundNotice,
    TransitionResult,
    VoidCheckoutSessionIfOpen,
)

# (state, canceled_at) -> cents to refund; None = full refund, 0 = no refund
RefundPolicy = Callable[[BookingState, datetime], "int | None"]


def full_refund(state: BookingState, canceled_at: datetime) -> int | None:
    return None


# =============================================================================
# Helpers
# =============================================================================


def _ignored(state: BookingState, event: NormalizedEvent, reason: str) -> TransitionResult:
    return TransitionResult(
        next=state,
        commands=(
            LogIgnoredTransition(
                booking_id=state.booking_id,
                status=state.status,
                event_type=event.event_type,
                reason=reason,
            ),
        ),
    )


def _scheduling_ref_from(event: NormalizedEvent) -> SchedulingRef | None:
    details = event.scheduling
    if details is None:
        return None
    return SchedulingRef(
        external_event_id=details.external_event_id,
        external_invitee_id=details.external_invitee_id,
        start_time=details.start_time,
        end_time=details.end_time,
    )


def _cancellation_from(event: NormalizedEvent, refund_issued: bool = False) -> Cancellation:
    details = event.scheduling
    if details is None:
        return Cancellation(
            reason="Checkout session expired",
            initiated_by=CancellationInitiator.SYSTEM,
            refund_issued=refund_issued,
        )
    return Cancellation(
        reason=details.cancel_reason or "Canceled via scheduling provider",
        initiated_by=details.canceled_by,
        refund_issued=refund_issued,
    )


# =============================================================================
# Scheduling Events
# =============================================================================


def _on_scheduling_confirmed(state, event, refund_policy) -> TransitionResult:
    scheduling_ref = _scheduling_ref_from(event)
    if scheduling_ref is None:
        return _ignored(state, event, "scheduling event carried no slot details")

    return TransitionResult(
        next=replace(
            state,
            status=BookingStatus.PENDING_PAYMENT,
            scheduling_ref=scheduling_ref,
        ),
        commands=(
            CreateCheckoutSession(
                booking_id=state.booking_id,
                amount_cents=state.amount_cents,
                currency=state.currency,
            ),
        ),
    )


def _on_scheduling_rescheduled(state, event, refund_policy) -> TransitionResult:
    incoming = _scheduling_ref_from(event)
    if incoming is None:
        return _ignored(state, event, "reschedule carried no slot details")

    if state.scheduling_ref is None:
        scheduling_ref = incoming
    else:
        # Only the slot times move; provider identifiers stay as first confirmed
        scheduling_ref = replace(
            state.scheduling_ref,
            start_time=incoming.start_time,
            end_time=incoming.end_time,
        )
    return TransitionResult(next=replace(state, scheduling_ref=scheduling_ref))


def _on_canceled_before_payment(state, event, refund_policy) -> TransitionResult:
    return TransitionResult(
        next=replace(
            state,
            status=BookingStatus.CANCELED,
            cancellation=_cancellation_from(event),
        ),
    )


def _on_canceled_awaiting_payment(state, event, refund_policy) -> TransitionResult:
    commands = ()
    if state.payment_ref is not None:
        commands = (
            VoidCheckoutSessionIfOpen(
                booking_id=state.booking_id,
                session_id=state.payment_ref.external_session_id,
            ),
        )
    return TransitionResult(
        next=replace(
            state,
            status=BookingStatus.CANCELED,
            cancellation=_cancellation_from(event),
        ),
        commands=commands,
    )


def _on_canceled_after_payment(state, event, refund_policy) -> TransitionResult:
    payment_ref = state.payment_ref
    if payment_ref is None or not payment_ref.external_charge_id:
        return TransitionResult(
            next=replace(
                state,
                status=BookingStatus.CANCELED,
                cancellation=_cancellation_from(event),
            ),
        )

    amount = refund_policy(state, event.occurred_at)
    if amount is not None and amount <= 0:
        return TransitionResult(
            next=replace(
                state,
                status=BookingStatus.CANCELED,
                cancellation=_cancellation_from(event, refund_issued=False),
            ),
        )

    charged = payment_ref.amount_cents
    partial = amount is not None and charged is not None and amount < charged
    return TransitionResult(
        next=replace(
            state,
            status=BookingStatus.CANCELED,
            cancellation=_cancellation_from(event, refund_issued=True),
            payment_ref=replace(
                payment_ref,
                payment_status=(
                    PaymentStatus.PARTIALLY_REFUNDED if partial else PaymentStatus.REFUNDED
                ),
            ),
        ),
        commands=(
            IssueRefund(
                booking_id=state.booking_id,
                charge_id=payment_ref.external_charge_id,
                amount_cents=amount,
            ),
        ),
    )


# =============================================================================
# Payment Events
# =============================================================================


def _on_payment_succeeded(state, event, refund_policy) -> TransitionResult:
    details = event.payment
    existing = state.payment_ref
    session_id = (details.session_id if details else None) or (
        existing.external_session_id if existing else ""
    )
    payment_ref = PaymentRef(
        external_session_id=session_id,
        external_charge_id=details.charge_id if details else None,
        amount_cents=(details.amount_cents if details else None) or state.amount_cents,
        currency=(details.currency if details else None) or state.currency,
        payment_status=PaymentStatus.PAID,
    )
    return TransitionResult(
        next=replace(state, status=BookingStatus.CONFIRMED, payment_ref=payment_ref),
        commands=(SendConfirmation(booking_id=state.booking_id),),
    )


def _on_payment_failed(state, event, refund_policy) -> TransitionResult:
    details = event.payment
    payment_ref = state.payment_ref
    if payment_ref is not None:
        payment_ref = replace(payment_ref, payment_status=PaymentStatus.FAILED)
    elif details is not None and details.session_id:
        payment_ref = PaymentRef(
            external_session_id=details.session_id,
            amount_cents=state.amount_cents,
            currency=state.currency,
            payment_status=PaymentStatus.FAILED,
        )
    return TransitionResult(
        next=replace(state, payment_ref=payment_ref),
        commands=(
            NotifyPaymentFailed(
                booking_id=state.booking_id,
                reason=details.failure_message if details else None,
            ),
        ),
    )


def _on_payment_expired(state, event, refund_policy) -> TransitionResult:
    commands = ()
    if state.scheduling_ref is not None:
        commands = (
            ReleaseSchedulingHold(
                booking_id=state.booking_id,
                external_event_id=state.scheduling_ref.external_event_id,
                reason="Payment was not completed in time",
            ),
        )
    return TransitionResult(
        next=replace(
            state,
            status=BookingStatus.CANCELED,
            cancellation=_cancellation_from(event),
        ),
        commands=commands,
    )


def _on_payment_refunded(state, event, refund_policy) -> TransitionResult:
    details = event.payment
    refunded = details.refunded_amount_cents if details else None
    payment_ref = state.payment_ref
    if payment_ref is not None:
        charged = payment_ref.amount_cents
        partial = refunded is not None and charged is not None and refunded < charged
        payment_ref = replace(
            payment_ref,
            payment_status=(
                PaymentStatus.PARTIALLY_REFUNDED if partial else PaymentStatus.REFUNDED
            ),
        )
    return TransitionResult(
        next=replace(state, status=BookingStatus.REFUNDED, payment_ref=payment_ref),
        commands=(SendRefundNotice(booking_id=state.booking_id, amount_cents=refunded),),
    )


# =============================================================================
# Table
# =============================================================================

TRANSITIONS = {
    (BookingStatus.PENDING_SCHEDULING, EventType.SCHEDULING_CONFIRMED): _on_scheduling_confirmed,
    (BookingStatus.PENDING_SCHEDULING, EventType.SCHEDULING_CANCELED): _on_canceled_before_payment,
    (BookingStatus.PENDING_SCHEDULING, EventType.SCHEDULING_RESCHEDULED): _on_scheduling_rescheduled,
    (BookingStatus.PENDING_PAYMENT, EventType.PAYMENT_SUCCEEDED): _on_payment_succeeded,
    (BookingStatus.PENDING_PAYMENT, EventType.PAYMENT_FAILED): _on_payment_failed,
    (BookingStatus.PENDING_PAYMENT, EventType.PAYMENT_EXPIRED): _on_payment_expired,
    (BookingStatus.PENDING_PAYMENT, EventType.SCHEDULING_CANCELED): _on_canceled_awaiting_payment,
    (BookingStatus.PENDING_PAYMENT, EventType.SCHEDULING_RESCHEDULED): _on_scheduling_rescheduled,
    (BookingStatus.CONFIRMED, EventType.SCHEDULING_CANCELED): _on_canceled_after_payment,
    (BookingStatus.CONFIRMED, EventType.SCHEDULING_RESCHEDULED): _on_scheduling_rescheduled,
    (BookingStatus.CONFIRMED, EventType.PAYMENT_REFUNDED): _on_payment_refunded,
}


def transition(
    current: BookingState,
    event: NormalizedEvent,
    refund_policy: RefundPolicy = full_refund,
) -> TransitionResult:
    """
    Compute the next booking state and the commands to issue.

    Args:
        current: Snapshot of the booking as loaded
        event: Decoded provider event
        refund_policy: Decides the refund amount when a paid booking is
            canceled (None = full refund, 0 = no refund)

    Returns:
        TransitionResult; its next.version is the loaded version, the
        store bumps it on write.
    """
    if current.is_terminal:
        return _ignored(current, event, f"booking is terminal ({current.status})")

    handler = TRANSITIONS.get((current.status, event.event_type))
    if handler is None:
        return _ignored(
            current,
            event,
            f"no transition for {event.event_type} in {current.status}",
        )
    return handler(current, event, refund_policy)
