import pytest

from ticketpay.application.checkin_service import CheckInService
from ticketpay.domain.exceptions import ErrorKind
from ticketpay.domain.state_machine import BookingStatus, PaymentStatus

ORGANIZER_ID = "organizer-1"


@pytest.fixture
def checkin_service(db_session) -> CheckInService:
    return CheckInService(db_session)


def _paid_ticket(make_ticket, status=BookingStatus.CONFIRMED, qr_code="qr-token-1"):
    return make_ticket(status=status, payment_status=PaymentStatus.PAID, qr_code=qr_code)


def test_check_in_by_qr_code(checkin_service, make_ticket):
    booking = _paid_ticket(make_ticket)

    result = checkin_service.check_in("qr-token-1", ORGANIZER_ID)

    assert result.ok
    assert result.value.id == booking.id
    assert booking.status is BookingStatus.ATTENDED


def test_check_in_by_booking_id(checkin_service, make_ticket):
    booking = _paid_ticket(make_ticket)

    result = checkin_service.check_in(booking.id, ORGANIZER_ID)

    assert result.ok
    assert booking.status is BookingStatus.ATTENDED


def test_second_check_in_is_already_satisfied(checkin_service, make_ticket):
    booking = _paid_ticket(make_ticket)
    checkin_service.check_in("qr-token-1", ORGANIZER_ID)

    result = checkin_service.check_in("qr-token-1", ORGANIZER_ID)

    assert result.ok
    assert result.already_satisfied
    assert result.notice is ErrorKind.ALREADY_CHECKED_IN
    assert booking.status is BookingStatus.ATTENDED


def test_other_organizer_cannot_tell_ticket_exists(checkin_service, make_ticket):
    booking = _paid_ticket(make_ticket)

    result = checkin_service.check_in(booking.id, "organizer-2")
    missing = checkin_service.check_in("no-such-token", "organizer-2")

    assert result.error == missing.error
    assert result.error.kind is ErrorKind.NOT_FOUND_OR_UNAUTHORIZED
    assert result.error.http_status == 404
    assert booking.status is BookingStatus.CONFIRMED


@pytest.mark.parametrize(
    "status",
    [BookingStatus.PENDING, BookingStatus.ATTENDED, BookingStatus.CANCELLED],
)
def test_unpaid_ticket_is_payment_incomplete_whatever_its_status(
    checkin_service, make_ticket, status
):
    booking = make_ticket(status=status, payment_status=PaymentStatus.PENDING)

    result = checkin_service.check_in(booking.id, ORGANIZER_ID)

    assert result.error.kind is ErrorKind.PAYMENT_INCOMPLETE
    assert result.error.message == "Payment not completed for this ticket"
    assert booking.status is status


@pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.REFUNDED])
def test_voided_ticket_is_rejected(checkin_service, make_ticket, status):
    booking = _paid_ticket(make_ticket, status=status)

    result = checkin_service.check_in(booking.id, ORGANIZER_ID)

    assert result.error.kind is ErrorKind.TICKET_VOIDED
    assert result.error.message == f"Ticket is {status.value}"


def test_no_show_ticket_cannot_check_in(checkin_service, make_ticket):
    booking = _paid_ticket(make_ticket, status=BookingStatus.NO_SHOW)

    result = checkin_service.check_in(booking.id, ORGANIZER_ID)

    assert result.error.kind is ErrorKind.INVALID_STATUS_FOR_CHECK_IN
    assert booking.status is BookingStatus.NO_SHOW
