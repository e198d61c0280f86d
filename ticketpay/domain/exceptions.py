from enum import Enum


class ErrorCategory(str, Enum):
    NOT_FOUND = "NotFound"
    INVALID_STATE = "InvalidState"
    UNAUTHORIZED = "Unauthorized"
    GATEWAY_ERROR = "GatewayError"
    ALREADY_SATISFIED = "AlreadySatisfied"


class ErrorKind(str, Enum):
    """
    Closed set of outcomes an engine operation can report
    besides plain success.
    """

    BOOKING_NOT_FOUND = "BookingNotFound"
    TRANSACTION_NOT_FOUND = "TransactionNotFound"
    EVENT_NOT_FOUND = "EventNotFound"
    NOT_FOUND_OR_UNAUTHORIZED = "NotFoundOrUnauthorized"
    BOOKING_NOT_CONFIRMED = "BookingNotConfirmed"
    PAYMENT_INCOMPLETE = "PaymentIncomplete"
    TICKET_VOIDED = "TicketVoided"
    INVALID_STATUS_FOR_CHECK_IN = "InvalidStatusForCheckIn"
    INVALID_STATE_TRANSITION = "InvalidStateTransition"
    DUPLICATE_GATEWAY_HANDLE = "DuplicateGatewayHandle"
    GATEWAY_INIT_FAILED = "GatewayInitFailed"
    VERIFICATION_ERROR = "VerificationError"
    ALREADY_VERIFIED = "AlreadyVerified"
    ALREADY_CHECKED_IN = "AlreadyCheckedIn"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self.category]


_CATEGORIES = {
    ErrorKind.BOOKING_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.TRANSACTION_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.EVENT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    # Organizer mismatch is reported exactly like a missing ticket.
    ErrorKind.NOT_FOUND_OR_UNAUTHORIZED: ErrorCategory.UNAUTHORIZED,
    ErrorKind.BOOKING_NOT_CONFIRMED: ErrorCategory.INVALID_STATE,
    ErrorKind.PAYMENT_INCOMPLETE: ErrorCategory.INVALID_STATE,
    ErrorKind.TICKET_VOIDED: ErrorCategory.INVALID_STATE,
    ErrorKind.INVALID_STATUS_FOR_CHECK_IN: ErrorCategory.INVALID_STATE,
    ErrorKind.INVALID_STATE_TRANSITION: ErrorCategory.INVALID_STATE,
    ErrorKind.DUPLICATE_GATEWAY_HANDLE: ErrorCategory.INVALID_STATE,
    ErrorKind.GATEWAY_INIT_FAILED: ErrorCategory.GATEWAY_ERROR,
    ErrorKind.VERIFICATION_ERROR: ErrorCategory.GATEWAY_ERROR,
    ErrorKind.ALREADY_VERIFIED: ErrorCategory.ALREADY_SATISFIED,
    ErrorKind.ALREADY_CHECKED_IN: ErrorCategory.ALREADY_SATISFIED,
}

_HTTP_STATUS = {
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.UNAUTHORIZED: 404,
    ErrorCategory.INVALID_STATE: 400,
    ErrorCategory.GATEWAY_ERROR: 502,
    ErrorCategory.ALREADY_SATISFIED: 200,
}


class TicketpayError(Exception):
    """
    Base exception for programming errors inside the reconciliation engine.
    Expected business outcomes are reported through ErrorKind instead.
    """


class InvalidStateTransitionError(TicketpayError):
    """
    Raised when an illegal booking state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)
