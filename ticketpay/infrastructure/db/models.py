# ticketpay/infrastructure/db/models.py

from sqlalchemy import (
    JSON,
    String,
    Integer,
    Numeric,
    DateTime,
    Enum,
    Text,
    CheckConstraint,
    ForeignKey,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from ticketpay.infrastructure.db.session import Base
from ticketpay.domain.state_machine import (
    BookingStatus,
    BookingVariant,
    PaymentStatus,
    TransactionStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    organizer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ticket_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    venue: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        CheckConstraint("ticket_price > 0", name="ck_event_ticket_price_positive"),
    )


class Booking(Base):
    """
    Payable booking. One table, two variants:
    generic service bookings and event tickets.
    Domain controls transitions, DB stores current state.
    """

    __tablename__ = "bookings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    variant: Mapped[BookingVariant] = mapped_column(
        Enum(BookingVariant, name="booking_variant"),
        nullable=False,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, name="booking_status"),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status"),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    qr_code: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    payment_method: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    transactions: Mapped[list["PaymentTransaction"]] = relationship(
        back_populates="booking",
        order_by="PaymentTransaction.created_at.desc()",
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_booking_amount_positive"),
    )

    __mapper_args__ = {
        "polymorphic_on": "variant",
    }


class ServiceBooking(Booking):
    service_provider_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    service_type: Mapped[str | None] = mapped_column(String(64), nullable=True)

    __mapper_args__ = {
        "polymorphic_identity": BookingVariant.GENERIC,
    }


class EventTicketBooking(Booking):
    event_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("events.id"),
        nullable=True,
        index=True,
    )
    ticket_type: Mapped[str | None] = mapped_column(String(32), nullable=True)
    quantity: Mapped[int | None] = mapped_column(Integer, nullable=True)

    event: Mapped[Event | None] = relationship()

    __mapper_args__ = {
        "polymorphic_identity": BookingVariant.EVENT_TICKET,
    }


class PaymentTransaction(Base):
    """Append-only audit trail of payment attempts for a booking."""

    __tablename__ = "payment_transactions"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    booking_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("bookings.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[TransactionStatus] = mapped_column(
        Enum(TransactionStatus, name="transaction_status"),
        nullable=False,
        default=TransactionStatus.PENDING,
    )
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, default="khalti")
    gateway_transaction_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        unique=True,
    )
    gateway_payment_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    gateway_response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    booking: Mapped[Booking] = relationship(back_populates="transactions")
