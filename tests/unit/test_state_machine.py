# tests/unit/test_state_machine.py

import pytest

from ticketpay.domain.state_machine import (
    BookingStateMachine,
    BookingStatus,
    BookingVariant,
    PaymentStatus,
    TransactionStatus,
    is_consistent,
    policy_for,
    settle_payment,
)
from ticketpay.domain.exceptions import InvalidStateTransitionError


GENERIC = BookingVariant.GENERIC
TICKET = BookingVariant.EVENT_TICKET


# ---------------------
# VALID TRANSITIONS
# ---------------------

def test_generic_provider_confirmation_path():
    assert BookingStateMachine.can_transition(
        GENERIC,
        BookingStatus.PENDING_PROVIDER_CONFIRMATION,
        BookingStatus.CONFIRMED_AWAITING_PAYMENT,
    )

    assert BookingStateMachine.can_transition(
        GENERIC,
        BookingStatus.CONFIRMED_AWAITING_PAYMENT,
        BookingStatus.CANCELLED,
    )


def test_event_ticket_check_in_path():
    assert BookingStateMachine.can_transition(
        TICKET,
        BookingStatus.CONFIRMED,
        BookingStatus.ATTENDED,
    )

    assert BookingStateMachine.can_transition(
        TICKET,
        BookingStatus.CONFIRMED,
        BookingStatus.NO_SHOW,
    )


# ---------------------
# INVALID TRANSITIONS
# ---------------------

def test_generic_cannot_attend():
    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            GENERIC,
            BookingStatus.CONFIRMED_PAID,
            BookingStatus.ATTENDED,
        )


def test_terminal_state_attended():
    assert BookingStateMachine.is_terminal(TICKET, BookingStatus.ATTENDED)

    with pytest.raises(InvalidStateTransitionError):
        BookingStateMachine.validate_transition(
            TICKET,
            BookingStatus.ATTENDED,
            BookingStatus.CANCELLED,
        )


def test_terminal_state_refunded():
    assert BookingStateMachine.is_terminal(GENERIC, BookingStatus.REFUNDED)
    assert BookingStateMachine.get_allowed_transitions(TICKET, BookingStatus.REFUNDED) == set()


def test_invalid_type_guard():
    with pytest.raises(TypeError):
        BookingStateMachine.validate_transition(
            TICKET,
            "confirmed",  # invalid type
            BookingStatus.ATTENDED,
        )


# ---------------------
# PAYMENT SETTLEMENT
# ---------------------

@pytest.mark.parametrize(
    "variant, expected_status",
    [
        (GENERIC, BookingStatus.CONFIRMED_PAID),
        (TICKET, BookingStatus.CONFIRMED),
    ],
)
def test_completed_payment_confirms_booking(variant, expected_status):
    status, payment_status = settle_payment(
        variant,
        BookingStatus.PENDING,
        TransactionStatus.COMPLETED,
    )

    assert status is expected_status
    assert payment_status is PaymentStatus.PAID
    assert is_consistent(status, payment_status)


def test_failed_payment_keeps_status():
    status, payment_status = settle_payment(
        GENERIC,
        BookingStatus.CONFIRMED_AWAITING_PAYMENT,
        TransactionStatus.FAILED,
    )

    assert status is BookingStatus.CONFIRMED_AWAITING_PAYMENT
    assert payment_status is PaymentStatus.FAILED


def test_pending_payment_keeps_status():
    status, payment_status = settle_payment(
        TICKET,
        BookingStatus.PENDING,
        TransactionStatus.PENDING,
    )

    assert status is BookingStatus.PENDING
    assert payment_status is PaymentStatus.PENDING


def test_paid_pending_booking_is_inconsistent():
    assert not is_consistent(BookingStatus.PENDING, PaymentStatus.PAID)


def test_event_ticket_policy_issues_qr_code_and_is_narrower():
    ticket_policy = policy_for(TICKET)
    generic_policy = policy_for(GENERIC)

    assert ticket_policy.issues_qr_code
    assert not generic_policy.issues_qr_code
    assert BookingStatus.CANCELLED not in ticket_policy.eligible_statuses
    assert BookingStatus.PENDING_PROVIDER_CONFIRMATION in generic_policy.awaiting_provider_statuses
