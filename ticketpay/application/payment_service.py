"""
Payment reconciliation: initiate a gateway payment for a booking, verify
its outcome and map that outcome onto the booking's status fields.

Both booking variants share one algorithm; the differences (which statuses
may pay, which status a paid booking lands in, whether an admission token is
issued) come from the variant's VariantPolicy.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from ticketpay.application.results import OperationResult
from ticketpay.domain.exceptions import ErrorKind
from ticketpay.domain.state_machine import (
    PAYABLE_PAYMENT_STATUSES,
    BookingStatus,
    BookingVariant,
    PaymentStatus,
    TransactionStatus,
    policy_for,
    settle_payment,
)
from ticketpay.infrastructure.config import GatewaySettings
from ticketpay.infrastructure.db.models import Booking, PaymentTransaction
from ticketpay.infrastructure.gateways.base import (
    CustomerInfo,
    PaymentGateway,
    PaymentGatewayError,
)
from ticketpay.infrastructure.repositories.booking_repository import BookingRepository
from ticketpay.infrastructure.repositories.event_repository import UserRepository
from ticketpay.infrastructure.repositories.transaction_repository import TransactionRepository

logger = logging.getLogger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Rupees to paisa, rounded half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PaymentInitiation:
    payment_url: str
    transaction_id: str
    gateway_handle: str


@dataclass(frozen=True)
class VerificationOutcome:
    success: bool
    transaction: PaymentTransaction
    booking: Booking | None


@dataclass(frozen=True)
class PaymentStatusUpdate:
    booking_id: str
    payment_status: PaymentStatus
    booking_status: BookingStatus
    transaction_status: TransactionStatus


@dataclass(frozen=True)
class PaymentStatusSnapshot:
    booking_id: str
    payment_status: PaymentStatus
    amount: Decimal
    latest_transaction: PaymentTransaction | None


@dataclass(frozen=True)
class PaymentHistoryEntry:
    booking: Booking
    transactions: list[PaymentTransaction]


class PaymentService:
    """Reconciliation engine coordinating bookings, transactions and the gateway."""

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        settings: GatewaySettings,
        qr_token_factory: Callable[[], str] | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.settings = settings
        self.qr_token_factory = qr_token_factory or (lambda: str(uuid4()))
        self.booking_repository = BookingRepository(db)
        self.transaction_repository = TransactionRepository(db)
        self.user_repository = UserRepository(db)

    def initiate_payment(
        self,
        booking_id: str,
        user_id: str,
    ) -> OperationResult[PaymentInitiation]:
        booking = self.booking_repository.get_owned(booking_id, user_id)

        if booking is None or not self._is_payable(booking):
            logger.info(
                "Payment initiation rejected. booking_id=%s user_id=%s status=%s payment_status=%s",
                booking_id,
                user_id,
                booking.status.value if booking else None,
                booking.payment_status.value if booking else None,
            )
            return OperationResult.failure(
                ErrorKind.BOOKING_NOT_FOUND,
                "Booking not found or payment already processed",
            )

        policy = policy_for(booking.variant)
        if booking.status in policy.awaiting_provider_statuses:
            return OperationResult.failure(
                ErrorKind.BOOKING_NOT_CONFIRMED,
                "Booking must be confirmed by provider before payment can be processed",
            )

        transaction = self.transaction_repository.create_pending(booking)

        try:
            initiation = self.gateway.initiate(
                amount=to_minor_units(booking.amount),
                order_ref=booking.id,
                order_name=self._order_name(booking),
                return_url=self.settings.return_url_for(booking.variant, booking.id),
                customer=self._customer_info(booking.owner_id),
            )
        except PaymentGatewayError as exc:
            logger.error(
                "Payment initiation failed at gateway. booking_id=%s transaction_id=%s error=%s",
                booking.id,
                transaction.id,
                exc,
            )
            self.transaction_repository.mark_failed(
                transaction,
                reason=str(exc),
                response=exc.error_body if isinstance(exc.error_body, dict) else None,
            )
            self.db.flush()
            return OperationResult.failure(
                ErrorKind.GATEWAY_INIT_FAILED,
                f"Failed to initialize payment: {exc}",
            )

        if not initiation.handle or not initiation.payment_url:
            logger.error(
                "Gateway initiation response incomplete. booking_id=%s response=%s",
                booking.id,
                initiation.raw,
            )
            self.transaction_repository.mark_failed(
                transaction,
                reason="Invalid response from payment gateway",
                response=initiation.raw,
            )
            self.db.flush()
            return OperationResult.failure(
                ErrorKind.GATEWAY_INIT_FAILED,
                "Invalid response from payment gateway",
            )

        self.transaction_repository.attach_gateway_handle(
            transaction,
            handle=initiation.handle,
            payment_url=initiation.payment_url,
            response=initiation.raw,
        )
        self.db.flush()

        logger.info(
            "Payment initiated. booking_id=%s variant=%s transaction_id=%s pidx=%s",
            booking.id,
            booking.variant.value,
            transaction.id,
            initiation.handle,
        )
        return OperationResult.success(
            PaymentInitiation(
                payment_url=initiation.payment_url,
                transaction_id=transaction.id,
                gateway_handle=initiation.handle,
            )
        )

    def verify_payment(self, gateway_handle: str) -> OperationResult[VerificationOutcome]:
        if not gateway_handle:
            return OperationResult.failure(
                ErrorKind.TRANSACTION_NOT_FOUND,
                "Payment transaction not found",
            )

        # Row lock held until the request commits: concurrent verifications
        # of one handle run one after the other and the second sees "completed".
        transaction = self.transaction_repository.lock_by_gateway_handle(gateway_handle)
        if transaction is None:
            logger.info("Payment transaction not found. pidx=%s", gateway_handle)
            return OperationResult.failure(
                ErrorKind.TRANSACTION_NOT_FOUND,
                "Payment transaction not found",
            )

        booking = transaction.booking

        if transaction.status is TransactionStatus.COMPLETED:
            logger.info(
                "Payment already verified. transaction_id=%s pidx=%s",
                transaction.id,
                gateway_handle,
            )
            return OperationResult.satisfied(
                VerificationOutcome(success=True, transaction=transaction, booking=booking),
                ErrorKind.ALREADY_VERIFIED,
            )

        try:
            lookup = self.gateway.lookup(gateway_handle)
        except PaymentGatewayError as exc:
            logger.error(
                "Payment verification could not reach gateway. transaction_id=%s pidx=%s error=%s",
                transaction.id,
                gateway_handle,
                exc,
            )
            return OperationResult.failure(
                ErrorKind.VERIFICATION_ERROR,
                f"Failed to verify payment with gateway: {exc}",
            )

        now = datetime.now(timezone.utc)
        transaction.verified_at = now

        if lookup.is_completed:
            self.transaction_repository.mark_completed(transaction, response=lookup.raw)
            if booking is not None and self._is_payable(booking):
                self._confirm_booking(booking, transaction, now)
            elif booking is not None:
                # Another attempt already settled it, or it left the payable
                # statuses (checked in, cancelled). The money is recorded only.
                logger.warning(
                    "Completed payment on settled booking left untouched. "
                    "booking_id=%s transaction_id=%s status=%s payment_status=%s",
                    booking.id,
                    transaction.id,
                    booking.status.value,
                    booking.payment_status.value,
                )
        else:
            self.transaction_repository.mark_failed(
                transaction,
                reason=self._failure_reason(lookup.status, lookup.raw),
                response=lookup.raw,
            )

        self.db.flush()

        logger.info(
            "Payment verified. transaction_id=%s booking_id=%s gateway_status=%s success=%s",
            transaction.id,
            transaction.booking_id,
            lookup.status,
            lookup.is_completed,
        )
        return OperationResult.success(
            VerificationOutcome(
                success=lookup.is_completed,
                transaction=transaction,
                booking=booking,
            )
        )

    def update_payment_status(
        self,
        booking_id: str,
        user_id: str,
        status: TransactionStatus,
        gateway_handle: str | None = None,
        verified_at: datetime | None = None,
    ) -> OperationResult[PaymentStatusUpdate]:
        """Manual override for generic bookings. Applies the same settlement rule as verification."""

        booking = self.booking_repository.get_owned(booking_id, user_id)
        if booking is None or booking.variant is not BookingVariant.GENERIC:
            return OperationResult.failure(
                ErrorKind.BOOKING_NOT_FOUND,
                "Booking not found",
            )

        transaction = self.transaction_repository.get_latest_for_booking(booking.id)
        if transaction is None:
            return OperationResult.failure(
                ErrorKind.TRANSACTION_NOT_FOUND,
                "Payment transaction not found",
            )

        if gateway_handle:
            holder = self.transaction_repository.get_by_gateway_handle(gateway_handle)
            if holder is not None and holder.id != transaction.id:
                logger.warning(
                    "Gateway handle already attached elsewhere. booking_id=%s pidx=%s holder_transaction_id=%s",
                    booking.id,
                    gateway_handle,
                    holder.id,
                )
                return OperationResult.failure(
                    ErrorKind.DUPLICATE_GATEWAY_HANDLE,
                    "Gateway transaction id already belongs to another payment",
                )

        status = TransactionStatus(status)
        if status is TransactionStatus.COMPLETED:
            self.transaction_repository.mark_completed(transaction)
        elif status is TransactionStatus.FAILED:
            self.transaction_repository.mark_failed(transaction, reason="Payment marked as failed")
        else:
            self.transaction_repository.mark_pending(transaction)

        if gateway_handle:
            transaction.gateway_transaction_id = gateway_handle
        if verified_at is not None:
            transaction.verified_at = verified_at

        if status is TransactionStatus.COMPLETED and not self._is_payable(booking):
            booking_status, payment_status = booking.status, booking.payment_status
        else:
            booking_status, payment_status = settle_payment(booking.variant, booking.status, status)
            self.booking_repository.update_payment_state(booking, booking_status, payment_status)
        if payment_status is PaymentStatus.PAID and booking.payment_date is None:
            booking.payment_date = datetime.now(timezone.utc)
            booking.payment_method = transaction.payment_method

        self.db.flush()

        logger.info(
            "Payment status updated. booking_id=%s payment_status=%s booking_status=%s transaction_status=%s",
            booking.id,
            payment_status.value,
            booking_status.value,
            status.value,
        )
        return OperationResult.success(
            PaymentStatusUpdate(
                booking_id=booking.id,
                payment_status=payment_status,
                booking_status=booking_status,
                transaction_status=status,
            )
        )

    def get_payment_status(
        self,
        booking_id: str,
        user_id: str,
    ) -> OperationResult[PaymentStatusSnapshot]:
        booking = self.booking_repository.get_owned(booking_id, user_id)
        if booking is None:
            return OperationResult.failure(
                ErrorKind.BOOKING_NOT_FOUND,
                "Booking not found",
            )

        return OperationResult.success(
            PaymentStatusSnapshot(
                booking_id=booking.id,
                payment_status=booking.payment_status,
                amount=booking.amount,
                latest_transaction=self.transaction_repository.get_latest_for_booking(booking.id),
            )
        )

    def get_payment_history(self, user_id: str, role: str) -> list[PaymentHistoryEntry]:
        if role == "provider":
            bookings: list[Booking] = list(self.booking_repository.list_by_provider(user_id))
        else:
            bookings = self.booking_repository.list_by_owner(user_id)

        return [
            PaymentHistoryEntry(
                booking=booking,
                transactions=self.transaction_repository.list_for_booking(booking.id),
            )
            for booking in bookings
        ]

    def _is_payable(self, booking: Booking) -> bool:
        policy = policy_for(booking.variant)
        return (
            booking.status in policy.eligible_statuses
            and booking.payment_status in PAYABLE_PAYMENT_STATUSES
        )

    def _confirm_booking(
        self,
        booking: Booking,
        transaction: PaymentTransaction,
        paid_at: datetime,
    ) -> None:
        policy = policy_for(booking.variant)
        status, payment_status = settle_payment(
            booking.variant,
            booking.status,
            TransactionStatus.COMPLETED,
        )
        self.booking_repository.update_payment_state(booking, status, payment_status)
        booking.payment_date = paid_at
        booking.payment_method = transaction.payment_method

        # The admission token is issued once and never replaced.
        if policy.issues_qr_code and booking.qr_code is None:
            booking.qr_code = self.qr_token_factory()

    def _order_name(self, booking: Booking) -> str:
        if booking.variant is BookingVariant.EVENT_TICKET:
            return f"{self.settings.order_prefix}-event-ticket-booking"
        service_type = getattr(booking, "service_type", None) or "service"
        return f"{self.settings.order_prefix}-{service_type}-booking"

    def _customer_info(self, user_id: str) -> CustomerInfo:
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            return CustomerInfo()
        return CustomerInfo(
            name=user.name or "Customer",
            email=user.email or "",
            phone=user.phone or "",
        )

    @staticmethod
    def _failure_reason(status: str | None, raw: dict) -> str:
        message = raw.get("message") if isinstance(raw, dict) else None
        if message:
            return str(message)
        if status:
            return f"Gateway reported status {status}"
        return "Payment failed"
