"""
Booking services.

- IdempotencyLedger: webhook delivery dedup and outcome record
- BookingStore: optimistic-concurrency persistence
- CorrelationResolver: inbound event → booking ID
- CommandExecutor: runs transition commands against providers
- ReconciliationCoordinator: webhook entry point tying it all together
- BookingIntentService: booking creation and scheduling links
"""

from bookings.services.booking_service import BookingIntentParams, BookingIntentService
from bookings.services.booking_store import BookingStore
from bookings.services.command_executor import CommandExecutor, ExecutionResult
from bookings.services.coordinator import ProcessingResult, ReconciliationCoordinator
from bookings.services.correlation import (
    CorrelationResolver,
    parse_correlation_token,
    payment_metadata,
    scheduling_tracking,
)
from bookings.services.ledger import AlreadyHandled, IdempotencyLedger, Proceed
from bookings.services.refund_policy import full_refund, get_refund_policy, tiered_refund

__all__ = [
    "AlreadyHandled",
    "BookingIntentParams",
    "BookingIntentService",
    "BookingStore",
    "CommandExecutor",
    "CorrelationResolver",
    "ExecutionResult",
    "IdempotencyLedger",
    "ProcessingResult",
    "Proceed",
    "ReconciliationCoordinator",
    "full_refund",
    "get_refund_policy",
    "parse_correlation_token",
    "payment_metadata",
    "scheduling_tracking",
    "tiered_refund",
]
