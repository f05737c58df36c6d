"""
Tests for BookingStore's version-guarded writes.
"""

import uuid
from dataclasses import replace

import pytest

from bookings.exceptions import BookingNotFoundError, ConcurrencyConflictError
from bookings.models import Booking, BookingTransition
from bookings.services import BookingStore
from bookings.state_machines import BookingStatus, SendConfirmation


class TestLoad:
    def test_load_returns_booking(self, booking):
        assert BookingStore.load(booking.id).pk == booking.pk

    def test_load_missing_booking(self, db):
        with pytest.raises(BookingNotFoundError):
            BookingStore.load(uuid.uuid4())


class TestSaveTransition:
    def test_write_bumps_version_and_records_history(self, awaiting_payment_booking):
        booking = awaiting_payment_booking
        next_state = replace(booking.to_state(), status=BookingStatus.CONFIRMED)

        new_version = BookingStore.save_transition(
            booking.id,
            expected_version=booking.version,
            next_state=next_state,
            commands=[SendConfirmation(booking_id=booking.id)],
            from_status=BookingStatus.PENDING_PAYMENT,
        )

        booking.refresh_from_db()
        assert new_version == 2
        assert booking.version == 2
        assert booking.status == BookingStatus.CONFIRMED

        history = BookingTransition.objects.get(booking=booking)
        assert history.from_status == BookingStatus.PENDING_PAYMENT
        assert history.to_status == BookingStatus.CONFIRMED
        assert history.version == 2
        assert history.commands == [{"type": "send_confirmation"}]

    def test_stale_version_raises_and_writes_nothing(self, awaiting_payment_booking):
        """A writer holding version 1 loses once someone else wrote version 2."""
        booking = awaiting_payment_booking
        stale_state = booking.to_state()
        Booking.objects.filter(pk=booking.pk).update(version=2)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            BookingStore.save_transition(
                booking.id,
                expected_version=1,
                next_state=replace(stale_state, status=BookingStatus.CONFIRMED),
            )

        assert exc_info.value.details["expected_version"] == 1
        booking.refresh_from_db()
        assert booking.status == BookingStatus.PENDING_PAYMENT
        assert booking.version == 2
        assert not BookingTransition.objects.filter(booking=booking).exists()

    def test_extra_fields_are_written(self, booking):
        BookingStore.save_transition(
            booking.id,
            expected_version=booking.version,
            next_state=replace(booking.to_state(), status=BookingStatus.FAILED),
            extra_fields={"failure_reason": "create_checkout_session: declined"},
        )

        booking.refresh_from_db()
        assert booking.status == BookingStatus.FAILED
        assert booking.failure_reason == "create_checkout_session: declined"

    def test_sequential_writes_advance_version(self, booking):
        state = booking.to_state()

        first = BookingStore.save_transition(booking.id, 1, state)
        second = BookingStore.save_transition(booking.id, first, state)

        assert (first, second) == (2, 3)
        assert BookingTransition.objects.filter(booking=booking).count() == 2
