# ticketpay/infrastructure/repositories/booking_repository.py

from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from ticketpay.infrastructure.db.models import (
    Booking,
    EventTicketBooking,
    ServiceBooking,
)
from ticketpay.domain.exceptions import InvalidStateTransitionError
from ticketpay.domain.state_machine import (
    BookingStatus,
    PaymentStatus,
    is_consistent,
)


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_owned(
        self,
        booking_id: str,
        owner_id: str,
    ) -> Booking | None:

        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .where(Booking.owner_id == owner_id)
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_event_ticket(self, booking_id: str) -> EventTicketBooking | None:
        stmt = select(EventTicketBooking).where(EventTicketBooking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_event_ticket_by_qr_code(self, qr_code: str) -> EventTicketBooking | None:
        stmt = select(EventTicketBooking).where(EventTicketBooking.qr_code == qr_code)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_by_owner(self, owner_id: str) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.owner_id == owner_id)
            .order_by(Booking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_event_tickets_by_owner(self, owner_id: str) -> list[EventTicketBooking]:
        stmt = (
            select(EventTicketBooking)
            .where(EventTicketBooking.owner_id == owner_id)
            .order_by(EventTicketBooking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_provider(self, provider_id: str) -> list[ServiceBooking]:
        stmt = (
            select(ServiceBooking)
            .where(ServiceBooking.service_provider_id == provider_id)
            .order_by(ServiceBooking.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def list_by_events(
        self,
        event_ids: list[str],
        status: BookingStatus | None = None,
        payment_status: PaymentStatus | None = None,
    ) -> list[EventTicketBooking]:
        if not event_ids:
            return []

        stmt = select(EventTicketBooking).where(EventTicketBooking.event_id.in_(event_ids))
        if status is not None:
            stmt = stmt.where(EventTicketBooking.status == status)
        if payment_status is not None:
            stmt = stmt.where(EventTicketBooking.payment_status == payment_status)

        stmt = stmt.order_by(EventTicketBooking.created_at.desc())
        return list(self.db.execute(stmt).scalars().all())

    def create_service_booking(
        self,
        client_id: str,
        service_provider_id: str,
        service_type: str,
        amount: Decimal,
    ) -> ServiceBooking:

        booking = ServiceBooking(
            owner_id=client_id,
            service_provider_id=service_provider_id,
            service_type=service_type,
            amount=amount,
            status=BookingStatus.PENDING_PROVIDER_CONFIRMATION,
            payment_status=PaymentStatus.PENDING,
        )

        self.db.add(booking)
        return booking

    def create_event_ticket(
        self,
        user_id: str,
        event_id: str,
        ticket_type: str,
        quantity: int,
        amount: Decimal,
    ) -> EventTicketBooking:

        booking = EventTicketBooking(
            owner_id=user_id,
            event_id=event_id,
            ticket_type=ticket_type,
            quantity=quantity,
            amount=amount,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )

        self.db.add(booking)
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status

    def update_payment_state(
        self,
        booking: Booking,
        status: BookingStatus,
        payment_status: PaymentStatus,
    ) -> None:

        if not is_consistent(status, payment_status):
            raise InvalidStateTransitionError(
                from_state=f"{booking.status.value}/{booking.payment_status.value}",
                to_state=f"{status.value}/{payment_status.value}",
            )
        booking.status = status
        booking.payment_status = payment_status
