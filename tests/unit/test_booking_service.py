from decimal import Decimal

import pytest

from ticketpay.application.booking_service import BookingService
from ticketpay.domain.exceptions import ErrorKind, InvalidStateTransitionError
from ticketpay.domain.state_machine import BookingStatus, BookingVariant, PaymentStatus
from ticketpay.infrastructure.repositories.booking_repository import BookingRepository

ORGANIZER_ID = "organizer-1"
CLIENT_ID = "client-1"
PROVIDER_ID = "provider-1"


@pytest.fixture
def booking_service(db_session) -> BookingService:
    return BookingService(db_session)


def test_service_booking_waits_for_provider(booking_service, users):
    booking = booking_service.create_service_booking(
        client_id=CLIENT_ID,
        service_provider_id=PROVIDER_ID,
        service_type="plumbing",
        amount=Decimal("850.00"),
    )

    assert booking.variant is BookingVariant.GENERIC
    assert booking.status is BookingStatus.PENDING_PROVIDER_CONFIRMATION
    assert booking.payment_status is PaymentStatus.PENDING


def test_provider_confirmation(booking_service, make_service_booking):
    booking = make_service_booking(status=BookingStatus.PENDING_PROVIDER_CONFIRMATION)

    result = booking_service.confirm_by_provider(booking.id, PROVIDER_ID)

    assert result.ok
    assert booking.status is BookingStatus.CONFIRMED_AWAITING_PAYMENT


def test_only_assigned_provider_can_confirm(booking_service, make_service_booking):
    booking = make_service_booking(status=BookingStatus.PENDING_PROVIDER_CONFIRMATION)

    result = booking_service.confirm_by_provider(booking.id, "provider-2")

    assert result.error.kind is ErrorKind.BOOKING_NOT_FOUND


def test_confirming_twice_is_invalid_transition(booking_service, make_service_booking):
    booking = make_service_booking(status=BookingStatus.CONFIRMED_AWAITING_PAYMENT)

    result = booking_service.confirm_by_provider(booking.id, PROVIDER_ID)

    assert result.error.kind is ErrorKind.INVALID_STATE_TRANSITION


def test_ticket_amount_is_price_times_quantity(booking_service, event):
    result = booking_service.create_event_ticket_booking(
        event_id=event.id,
        user_id=CLIENT_ID,
        ticket_type="VIP",
        quantity=3,
    )

    assert result.ok
    booking = result.value
    assert booking.amount == Decimal("4500.00")
    assert booking.status is BookingStatus.PENDING
    assert booking.qr_code is None


def test_ticket_for_unknown_event(booking_service, users):
    result = booking_service.create_event_ticket_booking(
        event_id="missing",
        user_id=CLIENT_ID,
        ticket_type="General",
        quantity=1,
    )

    assert result.error.kind is ErrorKind.EVENT_NOT_FOUND


def test_cancel_paid_ticket(booking_service, make_ticket):
    booking = make_ticket(status=BookingStatus.CONFIRMED, payment_status=PaymentStatus.PAID)

    result = booking_service.cancel_booking(booking.id, CLIENT_ID)

    assert result.ok
    assert booking.status is BookingStatus.CANCELLED
    assert booking.payment_status is PaymentStatus.PAID


def test_cancel_twice_is_rejected(booking_service, make_ticket):
    booking = make_ticket(status=BookingStatus.CANCELLED)

    result = booking_service.cancel_booking(booking.id, CLIENT_ID)

    assert result.error.kind is ErrorKind.INVALID_STATE_TRANSITION
    assert result.error.message == "Booking already cancelled or refunded"


def test_cannot_cancel_attended_ticket(booking_service, make_ticket):
    booking = make_ticket(status=BookingStatus.ATTENDED, payment_status=PaymentStatus.PAID)

    result = booking_service.cancel_booking(booking.id, CLIENT_ID)

    assert result.error.kind is ErrorKind.INVALID_STATE_TRANSITION
    assert booking.status is BookingStatus.ATTENDED


def test_qr_code_only_for_owner(booking_service, make_ticket):
    booking = make_ticket(
        status=BookingStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        qr_code="qr-token-1",
    )

    assert booking_service.get_qr_code(booking.id, CLIENT_ID).value == "qr-token-1"
    assert booking_service.get_qr_code(booking.id, "someone-else").error.kind is (
        ErrorKind.BOOKING_NOT_FOUND
    )


def test_event_bookings_filters_and_authorization(booking_service, event, make_ticket):
    paid = make_ticket(status=BookingStatus.CONFIRMED, payment_status=PaymentStatus.PAID)
    make_ticket()

    result = booking_service.list_event_bookings(
        event.id,
        ORGANIZER_ID,
        payment_status=PaymentStatus.PAID,
    )
    denied = booking_service.list_event_bookings(event.id, "organizer-2")

    assert [b.id for b in result.value] == [paid.id]
    assert denied.error.kind is ErrorKind.NOT_FOUND_OR_UNAUTHORIZED


def test_event_booking_analytics(booking_service, event, make_ticket):
    make_ticket(status=BookingStatus.CONFIRMED, payment_status=PaymentStatus.PAID)
    make_ticket(status=BookingStatus.ATTENDED, payment_status=PaymentStatus.PAID)
    make_ticket(status=BookingStatus.CANCELLED)
    make_ticket()

    analytics = booking_service.event_booking_analytics(event.id, ORGANIZER_ID).value

    assert analytics == {
        "total": 4,
        "pending": 1,
        "confirmed": 1,
        "cancelled": 1,
        "attended": 1,
        "no_show": 0,
        "refunded": 0,
        "paid": 2,
    }


def test_organizer_and_user_listings(booking_service, event, make_ticket, make_service_booking):
    ticket = make_ticket()
    make_service_booking()

    assert [b.id for b in booking_service.list_user_event_tickets(CLIENT_ID)] == [ticket.id]
    assert [b.id for b in booking_service.list_organizer_bookings(ORGANIZER_ID)] == [ticket.id]
    assert booking_service.list_organizer_bookings("organizer-2") == []


def test_payment_state_write_keeps_paid_bookings_confirmed(db_session, make_ticket):
    booking = make_ticket()
    repository = BookingRepository(db_session)

    with pytest.raises(InvalidStateTransitionError):
        repository.update_payment_state(booking, BookingStatus.PENDING, PaymentStatus.PAID)

    repository.update_payment_state(booking, BookingStatus.CONFIRMED, PaymentStatus.PAID)
    assert booking.status is BookingStatus.CONFIRMED
