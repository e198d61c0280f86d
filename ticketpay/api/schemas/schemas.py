from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field


class ServiceBookingRequest(BaseModel):
    service_provider_id: str
    service_type: str
    amount: Decimal = Field(gt=0)


class EventCreate(BaseModel):
    title: str
    ticket_price: Decimal = Field(gt=0)
    venue: str | None = None
    event_date: datetime | None = None


class EventResponse(BaseModel):
    id: str
    title: str
    organizer_id: str
    ticket_price: Decimal
    venue: str | None = None
    event_date: datetime | None = None


class EventTicketBookingRequest(BaseModel):
    ticket_type: str = "General"
    quantity: int = Field(default=1, gt=0)


class BookingResponse(BaseModel):
    booking_id: str
    variant: str
    owner_id: str
    amount: Decimal
    status: str
    payment_status: str
    qr_code: str | None = None
    payment_date: datetime | None = None
    event_id: str | None = None
    ticket_type: str | None = None
    quantity: int | None = None
    service_provider_id: str | None = None
    service_type: str | None = None


class BookingListResponse(BaseModel):
    results: list[BookingResponse]


class QRCodeResponse(BaseModel):
    qr_code: str | None = None


class CheckInResponse(BaseModel):
    data: BookingResponse
    message: str
    already_checked_in: bool = False


class BookingAnalyticsResponse(BaseModel):
    data: dict[str, int]


class PaymentInitiationResponse(BaseModel):
    success: bool = True
    payment_url: str
    pidx: str
    transaction_id: str


class PaymentVerifyRequest(BaseModel):
    pidx: str


class TransactionResponse(BaseModel):
    id: str
    booking_id: str
    amount: Decimal
    status: str
    payment_method: str
    gateway_transaction_id: str | None = None
    failure_reason: str | None = None
    completed_at: datetime | None = None
    verified_at: datetime | None = None
    created_at: datetime | None = None


class PaymentVerifyResponse(BaseModel):
    success: bool
    already_verified: bool = False
    message: str
    transaction: TransactionResponse
    booking: BookingResponse | None = None


class PaymentStatusUpdateRequest(BaseModel):
    status: Literal["pending", "completed", "failed"]
    pidx: str | None = None
    verified_at: datetime | None = None


class PaymentStatusUpdateResponse(BaseModel):
    success: bool = True
    booking_id: str
    payment_status: str
    booking_status: str
    transaction_status: str


class PaymentStatusResponse(BaseModel):
    booking_id: str
    payment_status: str
    total_amount: Decimal
    latest_transaction: TransactionResponse | None = None


class PaymentHistoryItem(BaseModel):
    booking: BookingResponse
    transactions: list[TransactionResponse]


class PaymentHistoryResponse(BaseModel):
    results: list[PaymentHistoryItem]
