"""
Booking intent creation.

A booking intent is the client's request to book a builder's session
type. It produces a PENDING_SCHEDULING Booking and a single-use
scheduling link that carries the booking ID as its correlation token.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.services import BaseService, ServiceResult

from bookings.adapters import CalendlyAdapter, InviteeContact, SchedulingError
from bookings.models import Booking
from bookings.services.correlation import scheduling_tracking


@dataclass
class BookingIntentParams:
    client_id: str
    builder_id: str
    session_type_id: str
    amount_cents: int
    currency: str = "usd"
    invitee_name: str = ""
    invitee_email: str = ""


class BookingIntentService(BaseService):
    """
    Create bookings and hand out their scheduling links.

    Usage:
        result = BookingIntentService.create(
            BookingIntentParams(
                client_id=str(request.user.pk),
                builder_id="builder_456",
                session_type_id="evt-type-uuid",
                amount_cents=15000,
            )
        )
        if result.success:
            redirect(result.data.scheduling_url)
    """

    @classmethod
    def create(cls, params: BookingIntentParams) -> ServiceResult[Booking]:
        """
        Create a PENDING_SCHEDULING booking with its scheduling link.

        The link is generated before the row is inserted, so a Calendly
        failure leaves no booking behind.

        Returns:
            ServiceResult with the saved Booking, or the Calendly error
        """
        logger = cls.get_logger()

        booking = Booking(
            client_id=params.client_id,
            builder_id=params.builder_id,
            session_type_id=params.session_type_id,
            client_name=params.invitee_name,
            client_email=params.invitee_email,
            amount_cents=params.amount_cents,
            currency=params.currency.lower(),
        )

        link = CalendlyAdapter.generate_scheduling_link(
            booking_id=booking.id,
            session_type_id=params.session_type_id,
            invitee=InviteeContact(name=params.invitee_name, email=params.invitee_email),
            correlation_metadata=scheduling_tracking(booking.id),
        )
        if isinstance(link, SchedulingError):
            logger.warning(
                "Could not create scheduling link",
                extra={
                    "client_id": params.client_id,
                    "session_type_id": params.session_type_id,
                    "kind": link.kind,
                },
            )
            return ServiceResult.failure(link.message, error_code=link.kind)

        booking.scheduling_url = link.scheduling_url
        with cls.atomic():
            booking.save()

        logger.info(
            "Booking intent created",
            extra={
                "booking_id": str(booking.id),
                "client_id": params.client_id,
                "builder_id": params.builder_id,
                "amount_cents": params.amount_cents,
            },
        )
        return ServiceResult.success(booking)
