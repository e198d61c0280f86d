# ticketpay/domain/state_machine.py

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Set, Tuple

from ticketpay.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    PENDING = "pending"
    PENDING_PROVIDER_CONFIRMATION = "pending_provider_confirmation"
    CONFIRMED_AWAITING_PAYMENT = "confirmed_awaiting_payment"
    CONFIRMED = "confirmed"
    CONFIRMED_PAID = "confirmed_paid"
    ATTENDED = "attended"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class BookingVariant(str, Enum):
    GENERIC = "generic"
    EVENT_TICKET = "event_ticket"


PAID_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {
        BookingStatus.CONFIRMED,
        BookingStatus.CONFIRMED_PAID,
        BookingStatus.ATTENDED,
    }
)

PAYABLE_PAYMENT_STATUSES: FrozenSet[PaymentStatus] = frozenset(
    {PaymentStatus.PENDING, PaymentStatus.FAILED}
)


@dataclass(frozen=True)
class VariantPolicy:
    """
    Per-variant rules shared by one reconciliation algorithm.

    eligible_statuses: statuses from which a payment may be initiated.
    awaiting_provider_statuses: eligible statuses that still need the
        service provider's confirmation before money can be taken.
    confirmed_status: status a booking lands in once its payment completes.
    issues_qr_code: whether a confirmed booking receives an admission token.
    transitions: operator-driven transitions (confirm, cancel, check-in).
    """

    variant: BookingVariant
    eligible_statuses: FrozenSet[BookingStatus]
    awaiting_provider_statuses: FrozenSet[BookingStatus]
    confirmed_status: BookingStatus
    issues_qr_code: bool
    transitions: Dict[BookingStatus, Set[BookingStatus]]


GENERIC_POLICY = VariantPolicy(
    variant=BookingVariant.GENERIC,
    eligible_statuses=frozenset(
        {
            BookingStatus.PENDING,
            BookingStatus.PENDING_PROVIDER_CONFIRMATION,
            BookingStatus.CONFIRMED_AWAITING_PAYMENT,
            BookingStatus.CONFIRMED_PAID,
        }
    ),
    awaiting_provider_statuses=frozenset(
        {
            BookingStatus.PENDING,
            BookingStatus.PENDING_PROVIDER_CONFIRMATION,
        }
    ),
    confirmed_status=BookingStatus.CONFIRMED_PAID,
    issues_qr_code=False,
    transitions={
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED_AWAITING_PAYMENT,
            BookingStatus.CANCELLED,
        },
        BookingStatus.PENDING_PROVIDER_CONFIRMATION: {
            BookingStatus.CONFIRMED_AWAITING_PAYMENT,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED_AWAITING_PAYMENT: {
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED_PAID: {
            BookingStatus.CANCELLED,
        },
        BookingStatus.CANCELLED: set(),
        BookingStatus.REFUNDED: set(),
    },
)

EVENT_TICKET_POLICY = VariantPolicy(
    variant=BookingVariant.EVENT_TICKET,
    eligible_statuses=frozenset(
        {
            BookingStatus.PENDING,
            BookingStatus.CONFIRMED,
        }
    ),
    awaiting_provider_statuses=frozenset(),
    confirmed_status=BookingStatus.CONFIRMED,
    issues_qr_code=True,
    transitions={
        BookingStatus.PENDING: {
            BookingStatus.ATTENDED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.ATTENDED,
            BookingStatus.CANCELLED,
            BookingStatus.NO_SHOW,
        },
        BookingStatus.ATTENDED: set(),
        BookingStatus.NO_SHOW: set(),
        BookingStatus.CANCELLED: set(),
        BookingStatus.REFUNDED: set(),
    },
)

_POLICIES: Dict[BookingVariant, VariantPolicy] = {
    BookingVariant.GENERIC: GENERIC_POLICY,
    BookingVariant.EVENT_TICKET: EVENT_TICKET_POLICY,
}


def policy_for(variant: BookingVariant) -> VariantPolicy:
    return _POLICIES[BookingVariant(variant)]


class BookingStateMachine:
    """
    Central lifecycle controller for operator-driven booking transitions.
    Payment-driven confirmation goes through settle_payment instead.
    """

    @classmethod
    def can_transition(
        cls,
        variant: BookingVariant,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        """
        Returns True if transition is allowed for the variant.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in policy_for(variant).transitions.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        variant: BookingVariant,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(variant, from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_terminal(cls, variant: BookingVariant, status: BookingStatus) -> bool:
        cls._ensure_valid_status(status)
        return len(policy_for(variant).transitions.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(
        cls,
        variant: BookingVariant,
        status: BookingStatus,
    ) -> Set[BookingStatus]:
        cls._ensure_valid_status(status)
        return set(policy_for(variant).transitions.get(status, set()))

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )


def settle_payment(
    variant: BookingVariant,
    current_status: BookingStatus,
    transaction_status: TransactionStatus,
) -> Tuple[BookingStatus, PaymentStatus]:
    """
    Derive (status, payment_status) for a booking from the outcome of
    its latest payment transaction.

    completed -> paid + the variant's confirmed status
    failed    -> failed, status unchanged
    pending   -> pending, status unchanged
    """
    transaction_status = TransactionStatus(transaction_status)

    if transaction_status is TransactionStatus.COMPLETED:
        return policy_for(variant).confirmed_status, PaymentStatus.PAID
    if transaction_status is TransactionStatus.FAILED:
        return current_status, PaymentStatus.FAILED
    return current_status, PaymentStatus.PENDING


def is_consistent(status: BookingStatus, payment_status: PaymentStatus) -> bool:
    """paid implies a confirmed-family status."""
    return payment_status is not PaymentStatus.PAID or status in PAID_STATUSES
