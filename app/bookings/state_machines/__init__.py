"""
State enums, value types and the pure transition function for bookings.
"""

from bookings.state_machines.states import (
    BookingStatus,
    CancellationInitiator,
    DeadLetterReason,
    DeadLetterStatus,
    DeliveryOutcome,
    EventType,
    PaymentStatus,
    Provider,
)
from bookings.state_machines.transitions import (
    TRANSITIONS,
    RefundPolicy,
    full_refund,
    transition,
)
from bookings.state_machines.types import (
    NOTIFICATION_COMMANDS,
    BookingState,
    Cancellation,
    Command,
    CreateCheckoutSession,
    IssueRefund,
    LogIgnoredTransition,
    NormalizedEvent,
    NotifyPaymentFailed,
    PaymentDetails,
    PaymentRef,
    ReleaseSchedulingHold,
    SchedulingDetails,
    SchedulingRef,
    SendConfirmation,
    SendRefundNotice,
    TransitionResult,
    VoidCheckoutSessionIfOpen,
)

__all__ = [
    "NOTIFICATION_COMMANDS",
    "TRANSITIONS",
    "BookingState",
    "BookingStatus",
    "Cancellation",
    "CancellationInitiator",
    "Command",
    "CreateCheckoutSession",
    "DeadLetterReason",
    "DeadLetterStatus",
    "DeliveryOutcome",
    "EventType",
    "IssueRefund",
    "LogIgnoredTransition",
    "NormalizedEvent",
    "NotifyPaymentFailed",
    "PaymentDetails",
    "PaymentRef",
    "PaymentStatus",
    "Provider",
    "RefundPolicy",
    "ReleaseSchedulingHold",
    "SchedulingDetails",
    "SchedulingRef",
    "SendConfirmation",
    "SendRefundNotice",
    "TransitionResult",
    "VoidCheckoutSessionIfOpen",
    "full_refund",
    "transition",
]
