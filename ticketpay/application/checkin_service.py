import logging

from sqlalchemy.orm import Session

from ticketpay.application.results import OperationResult
from ticketpay.domain.exceptions import ErrorKind
from ticketpay.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    PaymentStatus,
)
from ticketpay.infrastructure.db.models import EventTicketBooking
from ticketpay.infrastructure.repositories.booking_repository import BookingRepository
from ticketpay.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Booking or event not found or not authorized"

VOIDED_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.REFUNDED})
CHECK_IN_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})


class CheckInService:
    """Consumes a paid event ticket exactly once at the venue."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)

    def check_in(
        self,
        scanned_token: str,
        organizer_id: str,
    ) -> OperationResult[EventTicketBooking]:
        booking = self._resolve(scanned_token)
        if booking is None:
            logger.info("Check-in token did not resolve. token=%s", scanned_token)
            return OperationResult.failure(ErrorKind.NOT_FOUND_OR_UNAUTHORIZED, NOT_FOUND_MESSAGE)

        event = self.event_repository.get_by_id(booking.event_id) if booking.event_id else None
        if event is None or event.organizer_id != organizer_id:
            logger.warning(
                "Check-in authorization failed. booking_id=%s organizer_id=%s",
                booking.id,
                organizer_id,
            )
            return OperationResult.failure(ErrorKind.NOT_FOUND_OR_UNAUTHORIZED, NOT_FOUND_MESSAGE)

        if booking.payment_status is not PaymentStatus.PAID:
            return OperationResult.failure(
                ErrorKind.PAYMENT_INCOMPLETE,
                "Payment not completed for this ticket",
                booking,
            )

        if booking.status is BookingStatus.ATTENDED:
            return OperationResult.satisfied(booking, ErrorKind.ALREADY_CHECKED_IN)

        if booking.status in VOIDED_STATUSES:
            return OperationResult.failure(
                ErrorKind.TICKET_VOIDED,
                f"Ticket is {booking.status.value}",
                booking,
            )

        if booking.status not in CHECK_IN_STATUSES:
            return OperationResult.failure(
                ErrorKind.INVALID_STATUS_FOR_CHECK_IN,
                f"Cannot check-in with status: {booking.status.value}",
                booking,
            )

        BookingStateMachine.validate_transition(
            booking.variant,
            booking.status,
            BookingStatus.ATTENDED,
        )
        self.booking_repository.update_status(booking, BookingStatus.ATTENDED)
        self.db.flush()

        logger.info(
            "Check-in successful. booking_id=%s event_id=%s ticket_type=%s",
            booking.id,
            event.id,
            booking.ticket_type,
        )
        return OperationResult.success(booking)

    def _resolve(self, scanned_token: str) -> EventTicketBooking | None:
        # A scanned value is either the booking id or its admission token.
        if not scanned_token:
            return None
        booking = self.booking_repository.get_event_ticket(scanned_token)
        if booking is None:
            booking = self.booking_repository.get_event_ticket_by_qr_code(scanned_token)
        return booking
