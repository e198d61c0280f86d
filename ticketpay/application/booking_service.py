import logging
from collections import Counter
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from ticketpay.application.results import OperationResult
from ticketpay.domain.exceptions import ErrorKind
from ticketpay.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    BookingVariant,
    PaymentStatus,
)
from ticketpay.infrastructure.db.models import (
    Booking,
    Event,
    EventTicketBooking,
    ServiceBooking,
)
from ticketpay.infrastructure.repositories.booking_repository import BookingRepository
from ticketpay.infrastructure.repositories.event_repository import EventRepository

logger = logging.getLogger(__name__)


class BookingService:
    """Application service coordinating booking lifecycle outside of payment."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.event_repository = EventRepository(db)

    def create_service_booking(
        self,
        client_id: str,
        service_provider_id: str,
        service_type: str,
        amount: Decimal,
    ) -> ServiceBooking:
        booking = self.booking_repository.create_service_booking(
            client_id=client_id,
            service_provider_id=service_provider_id,
            service_type=service_type,
            amount=amount,
        )
        self.db.flush()

        logger.info(
            "Service booking created. booking_id=%s client_id=%s provider_id=%s",
            booking.id,
            client_id,
            service_provider_id,
        )
        return booking

    def confirm_by_provider(
        self,
        booking_id: str,
        provider_id: str,
    ) -> OperationResult[ServiceBooking]:
        booking = self.booking_repository.get_by_id(booking_id)
        if not isinstance(booking, ServiceBooking) or booking.service_provider_id != provider_id:
            return OperationResult.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")

        if not BookingStateMachine.can_transition(
            booking.variant,
            booking.status,
            BookingStatus.CONFIRMED_AWAITING_PAYMENT,
        ):
            return OperationResult.failure(
                ErrorKind.INVALID_STATE_TRANSITION,
                f"Cannot confirm booking in status {booking.status.value}.",
                booking,
            )

        self._transition(booking, BookingStatus.CONFIRMED_AWAITING_PAYMENT)
        self.db.flush()
        return OperationResult.success(booking)

    def create_event(
        self,
        organizer_id: str,
        title: str,
        ticket_price: Decimal,
        venue: str | None = None,
        event_date: datetime | None = None,
    ) -> Event:
        event = self.event_repository.create_event(
            organizer_id=organizer_id,
            title=title,
            ticket_price=ticket_price,
            venue=venue,
            event_date=event_date,
        )
        self.db.flush()
        return event

    def create_event_ticket_booking(
        self,
        event_id: str,
        user_id: str,
        ticket_type: str,
        quantity: int,
    ) -> OperationResult[EventTicketBooking]:
        event = self.event_repository.get_by_id(event_id)
        if event is None:
            return OperationResult.failure(ErrorKind.EVENT_NOT_FOUND, "Event not found")

        booking = self.booking_repository.create_event_ticket(
            user_id=user_id,
            event_id=event.id,
            ticket_type=ticket_type,
            quantity=quantity,
            amount=Decimal(event.ticket_price) * quantity,
        )
        self.db.flush()

        logger.info(
            "Event ticket booking created. booking_id=%s event_id=%s user_id=%s quantity=%s",
            booking.id,
            event.id,
            user_id,
            quantity,
        )
        return OperationResult.success(booking)

    def cancel_booking(
        self,
        booking_id: str,
        user_id: str,
    ) -> OperationResult[Booking]:
        booking = self.booking_repository.get_owned(booking_id, user_id)
        if booking is None:
            return OperationResult.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")

        if booking.status in {BookingStatus.CANCELLED, BookingStatus.REFUNDED}:
            return OperationResult.failure(
                ErrorKind.INVALID_STATE_TRANSITION,
                "Booking already cancelled or refunded",
                booking,
            )

        if not BookingStateMachine.can_transition(
            booking.variant,
            booking.status,
            BookingStatus.CANCELLED,
        ):
            return OperationResult.failure(
                ErrorKind.INVALID_STATE_TRANSITION,
                f"Cannot cancel booking in status {booking.status.value}.",
                booking,
            )

        self._transition(booking, BookingStatus.CANCELLED)
        self.db.flush()

        logger.info("Booking cancelled. booking_id=%s user_id=%s", booking.id, user_id)
        return OperationResult.success(booking)

    def get_booking(self, booking_id: str, user_id: str) -> OperationResult[Booking]:
        booking = self.booking_repository.get_owned(booking_id, user_id)
        if booking is None:
            return OperationResult.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")
        return OperationResult.success(booking)

    def get_qr_code(self, booking_id: str, user_id: str) -> OperationResult[str | None]:
        booking = self.booking_repository.get_owned(booking_id, user_id)
        if booking is None or booking.variant is not BookingVariant.EVENT_TICKET:
            return OperationResult.failure(ErrorKind.BOOKING_NOT_FOUND, "Booking not found")
        return OperationResult.success(booking.qr_code)

    def list_user_event_tickets(self, user_id: str) -> list[EventTicketBooking]:
        return self.booking_repository.list_event_tickets_by_owner(user_id)

    def list_organizer_bookings(self, organizer_id: str) -> list[EventTicketBooking]:
        event_ids = self.event_repository.list_ids_by_organizer(organizer_id)
        return self.booking_repository.list_by_events(event_ids)

    def list_event_bookings(
        self,
        event_id: str,
        organizer_id: str,
        status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
    ) -> OperationResult[list[EventTicketBooking]]:
        event = self._organizer_event(event_id, organizer_id)
        if event is None:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND_OR_UNAUTHORIZED,
                "Event not found or not authorized",
            )
        return OperationResult.success(
            self.booking_repository.list_by_events(
                [event.id],
                status=status,
                payment_status=payment_status,
            )
        )

    def event_booking_analytics(
        self,
        event_id: str,
        organizer_id: str,
    ) -> OperationResult[dict[str, int]]:
        event = self._organizer_event(event_id, organizer_id)
        if event is None:
            return OperationResult.failure(
                ErrorKind.NOT_FOUND_OR_UNAUTHORIZED,
                "Event not found or not authorized",
            )

        bookings = self.booking_repository.list_by_events([event.id])
        by_status = Counter(booking.status for booking in bookings)
        analytics = {"total": len(bookings)}
        for status in (
            BookingStatus.PENDING,
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
            BookingStatus.ATTENDED,
            BookingStatus.NO_SHOW,
            BookingStatus.REFUNDED,
        ):
            analytics[status.value] = by_status.get(status, 0)
        analytics["paid"] = sum(
            1 for booking in bookings if booking.payment_status is PaymentStatus.PAID
        )
        return OperationResult.success(analytics)

    def _organizer_event(self, event_id: str, organizer_id: str) -> Event | None:
        event = self.event_repository.get_by_id(event_id)
        if event is None or event.organizer_id != organizer_id:
            return None
        return event

    def _transition(self, booking: Booking, to_status: BookingStatus) -> None:
        BookingStateMachine.validate_transition(booking.variant, booking.status, to_status)
        self.booking_repository.update_status(booking, to_status)
