"""
Booking persistence with optimistic concurrency.

Every status write is an UPDATE guarded by the version that was loaded:

    UPDATE bookings_booking
       SET ..., version = version + 1
     WHERE id = %s AND version = %s

Zero affected rows means another writer committed first and raises
ConcurrencyConflictError; the coordinator reloads and recomputes. No row
lock is ever held across provider calls.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from typing import Any

from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from bookings.exceptions import BookingNotFoundError, ConcurrencyConflictError
from bookings.models import Booking, BookingTransition
from bookings.state_machines import BookingState, Command, NormalizedEvent


class BookingStore(BaseService):
    """
    Load and persist Booking aggregates.

    Usage:
        booking = BookingStore.load(booking_id)
        result = transition(booking.to_state(), event)
        BookingStore.save_transition(
            booking_id,
            expected_version=booking.version,
            next_state=result.next,
            event=event,
            commands=result.commands,
        )
    """

    @classmethod
    def load(cls, booking_id: uuid.UUID) -> Booking:
        """
        Load a booking with its current version.

        Raises:
            BookingNotFoundError: No booking with this ID
        """
        try:
            return Booking.objects.get(pk=booking_id)
        except Booking.DoesNotExist:
            raise BookingNotFoundError(
                f"Booking {booking_id} not found",
                details={"booking_id": str(booking_id)},
            )

    @classmethod
    def save_transition(
        cls,
        booking_id: uuid.UUID,
        expected_version: int,
        next_state: BookingState,
        event: NormalizedEvent | None = None,
        commands: Iterable[Command] = (),
        extra_fields: dict[str, Any] | None = None,
        from_status: str | None = None,
    ) -> int:
        """
        Persist a computed state if the booking is still at expected_version.

        Args:
            booking_id: Booking to write
            expected_version: Version the transition was computed from
            next_state: State to persist
            event: Event that caused the transition (history only)
            commands: Commands issued by the transition (history only)
            extra_fields: Additional columns produced by command execution
                (checkout_url, failure_reason)
            from_status: Status the transition was computed from

        Returns:
            The new version

        Raises:
            ConcurrencyConflictError: Another writer committed first
        """
        logger = cls.get_logger()
        fields = Booking.fields_from_state(next_state)
        if extra_fields:
            fields.update(extra_fields)

        with cls.atomic():
            updated = Booking.objects.filter(
                pk=booking_id,
                version=expected_version,
            ).update(
                **fields,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )

            if updated == 0:
                logger.warning(
                    "Optimistic lock failed",
                    extra={
                        "booking_id": str(booking_id),
                        "expected_version": expected_version,
                    },
                )
                raise ConcurrencyConflictError(
                    f"Booking {booking_id} was modified by another process",
                    details={
                        "booking_id": str(booking_id),
                        "expected_version": expected_version,
                    },
                )

            new_version = expected_version + 1
            BookingTransition.objects.create(
                booking_id=booking_id,
                from_status=from_status or next_state.status,
                to_status=next_state.status,
                event_type=event.event_type if event else "",
                delivery_id=event.delivery_id if event else "",
                version=new_version,
                commands=[command.describe() for command in commands],
            )

        logger.info(
            "Booking transition persisted",
            extra={
                "booking_id": str(booking_id),
                "from_status": from_status,
                "to_status": next_state.status,
                "version": new_version,
                "delivery_id": event.delivery_id if event else None,
            },
        )
        return new_version
