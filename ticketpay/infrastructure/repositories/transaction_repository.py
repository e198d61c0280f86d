# ticketpay/infrastructure/repositories/transaction_repository.py

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session
from sqlalchemy import select

from ticketpay.infrastructure.db.models import Booking, PaymentTransaction
from ticketpay.domain.state_machine import TransactionStatus


class TransactionRepository:

    def __init__(self, db: Session):
        self.db = db

    def lock_by_gateway_handle(self, handle: str) -> PaymentTransaction | None:
        """
        SELECT ... FOR UPDATE
        Serializes concurrent verifications of the same payment.
        """

        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.gateway_transaction_id == handle)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def get_by_gateway_handle(self, handle: str) -> PaymentTransaction | None:
        stmt = select(PaymentTransaction).where(PaymentTransaction.gateway_transaction_id == handle)
        return self.db.execute(stmt).scalar_one_or_none()

    def get_latest_for_booking(self, booking_id: str) -> PaymentTransaction | None:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.booking_id == booking_id)
            .order_by(PaymentTransaction.created_at.desc())
            .limit(1)
        )
        return self.db.execute(stmt).scalars().first()

    def list_for_booking(self, booking_id: str) -> list[PaymentTransaction]:
        stmt = (
            select(PaymentTransaction)
            .where(PaymentTransaction.booking_id == booking_id)
            .order_by(PaymentTransaction.created_at.desc())
        )
        return list(self.db.execute(stmt).scalars().all())

    def create_pending(
        self,
        booking: Booking,
        payment_method: str = "khalti",
    ) -> PaymentTransaction:

        transaction = PaymentTransaction(
            booking_id=booking.id,
            amount=booking.amount,
            status=TransactionStatus.PENDING,
            payment_method=payment_method,
        )
        self.db.add(transaction)
        self.db.flush()
        return transaction

    def attach_gateway_handle(
        self,
        transaction: PaymentTransaction,
        handle: str,
        payment_url: str,
        response: dict[str, Any],
    ) -> None:

        transaction.gateway_transaction_id = handle
        transaction.gateway_payment_url = payment_url
        transaction.gateway_response = response

    def mark_completed(
        self,
        transaction: PaymentTransaction,
        response: dict[str, Any] | None = None,
    ) -> None:

        transaction.status = TransactionStatus.COMPLETED
        transaction.completed_at = datetime.now(timezone.utc)
        transaction.failure_reason = None
        if response is not None:
            transaction.gateway_response = response

    def mark_failed(
        self,
        transaction: PaymentTransaction,
        reason: str,
        response: dict[str, Any] | None = None,
    ) -> None:

        transaction.status = TransactionStatus.FAILED
        transaction.completed_at = None
        transaction.failure_reason = reason
        if response is not None:
            transaction.gateway_response = response

    def mark_pending(self, transaction: PaymentTransaction) -> None:
        transaction.status = TransactionStatus.PENDING
        transaction.completed_at = None
