import logging

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from ticketpay.infrastructure.db.session import SessionLocal
from ticketpay.infrastructure.config import GatewaySettings, get_gateway_settings
from ticketpay.infrastructure.db.models import Booking, Event, PaymentTransaction
from ticketpay.infrastructure.gateways.base import PaymentGateway
from ticketpay.infrastructure.gateways.khalti_client import FakeKhaltiClient, KhaltiClient
from ticketpay.application.booking_service import BookingService
from ticketpay.application.checkin_service import CheckInService
from ticketpay.application.payment_service import PaymentService, VerificationOutcome
from ticketpay.application.results import OperationResult
from ticketpay.domain.exceptions import ErrorKind
from ticketpay.domain.state_machine import BookingStatus, PaymentStatus, TransactionStatus
from ticketpay.api.schemas.schemas import (
    BookingAnalyticsResponse,
    BookingListResponse,
    BookingResponse,
    CheckInResponse,
    EventCreate,
    EventResponse,
    EventTicketBookingRequest,
    PaymentHistoryItem,
    PaymentHistoryResponse,
    PaymentInitiationResponse,
    PaymentStatusResponse,
    PaymentStatusUpdateRequest,
    PaymentStatusUpdateResponse,
    PaymentVerifyRequest,
    PaymentVerifyResponse,
    QRCodeResponse,
    ServiceBookingRequest,
    TransactionResponse,
)


router = APIRouter()
logger = logging.getLogger(__name__)


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def current_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    return x_user_id


def get_payment_gateway(
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> PaymentGateway:
    if settings.mode == "fake":
        return FakeKhaltiClient()
    if not settings.secret_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Khalti keys not configured. Set KHALTI_SECRET_KEY.",
        )
    return KhaltiClient.from_settings(settings)


def get_payment_service(
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    settings: GatewaySettings = Depends(get_gateway_settings),
) -> PaymentService:
    return PaymentService(db, gateway=gateway, settings=settings)


def _raise_for(result: OperationResult) -> None:
    if result.error is None:
        return
    raise HTTPException(
        status_code=result.error.http_status,
        detail={
            "kind": result.error.kind.value,
            "message": result.error.message,
        },
    )


def _booking_response(booking: Booking) -> BookingResponse:
    return BookingResponse(
        booking_id=booking.id,
        variant=booking.variant.value,
        owner_id=booking.owner_id,
        amount=booking.amount,
        status=booking.status.value,
        payment_status=booking.payment_status.value,
        qr_code=booking.qr_code,
        payment_date=booking.payment_date,
        event_id=getattr(booking, "event_id", None),
        ticket_type=getattr(booking, "ticket_type", None),
        quantity=getattr(booking, "quantity", None),
        service_provider_id=getattr(booking, "service_provider_id", None),
        service_type=getattr(booking, "service_type", None),
    )


def _transaction_response(transaction: PaymentTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=transaction.id,
        booking_id=transaction.booking_id,
        amount=transaction.amount,
        status=transaction.status.value,
        payment_method=transaction.payment_method,
        gateway_transaction_id=transaction.gateway_transaction_id,
        failure_reason=transaction.failure_reason,
        completed_at=transaction.completed_at,
        verified_at=transaction.verified_at,
        created_at=transaction.created_at,
    )


def _event_response(event: Event) -> EventResponse:
    return EventResponse(
        id=event.id,
        title=event.title,
        organizer_id=event.organizer_id,
        ticket_price=event.ticket_price,
        venue=event.venue,
        event_date=event.event_date,
    )


@router.get("/health")
def health():
    return {"message": "ticketpay is running"}


# -----------------------------
# Service bookings
# -----------------------------
@router.post("/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_service_booking(
    request: ServiceBookingRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    booking = BookingService(db).create_service_booking(
        client_id=user_id,
        service_provider_id=request.service_provider_id,
        service_type=request.service_type,
        amount=request.amount,
    )
    return _booking_response(booking)


@router.post("/bookings/{booking_id}/provider-confirm", response_model=BookingResponse)
def confirm_service_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).confirm_by_provider(booking_id, provider_id=user_id)
    _raise_for(result)
    return _booking_response(result.value)


# -----------------------------
# Events and event tickets
# -----------------------------
@router.post("/events", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    request: EventCreate,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    event = BookingService(db).create_event(
        organizer_id=user_id,
        title=request.title,
        ticket_price=request.ticket_price,
        venue=request.venue,
        event_date=request.event_date,
    )
    return _event_response(event)


@router.post(
    "/events/{event_id}/bookings",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
def book_tickets(
    event_id: str,
    request: EventTicketBookingRequest,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).create_event_ticket_booking(
        event_id=event_id,
        user_id=user_id,
        ticket_type=request.ticket_type,
        quantity=request.quantity,
    )
    _raise_for(result)
    return _booking_response(result.value)


@router.get("/events/bookings/mine", response_model=BookingListResponse)
def my_bookings(
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    bookings = BookingService(db).list_user_event_tickets(user_id)
    return BookingListResponse(results=[_booking_response(b) for b in bookings])


@router.get("/events/bookings/organizer", response_model=BookingListResponse)
def organizer_bookings(
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    bookings = BookingService(db).list_organizer_bookings(user_id)
    return BookingListResponse(results=[_booking_response(b) for b in bookings])


@router.get("/events/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).get_booking(booking_id, user_id)
    _raise_for(result)
    return _booking_response(result.value)


@router.patch("/events/bookings/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).cancel_booking(booking_id, user_id)
    _raise_for(result)
    return _booking_response(result.value)


@router.get("/events/bookings/{booking_id}/qr", response_model=QRCodeResponse)
def get_qr_code(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).get_qr_code(booking_id, user_id)
    _raise_for(result)
    return QRCodeResponse(qr_code=result.value)


@router.post("/events/bookings/{scanned_token}/checkin", response_model=CheckInResponse)
def check_in_attendee(
    scanned_token: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = CheckInService(db).check_in(scanned_token, organizer_id=user_id)
    _raise_for(result)
    if result.already_satisfied:
        return CheckInResponse(
            data=_booking_response(result.value),
            message="Already checked in",
            already_checked_in=True,
        )
    return CheckInResponse(
        data=_booking_response(result.value),
        message="Check-in successful",
    )


@router.get("/events/{event_id}/bookings", response_model=BookingListResponse)
def event_bookings(
    event_id: str,
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    payment_status: PaymentStatus | None = None,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).list_event_bookings(
        event_id,
        organizer_id=user_id,
        status=status_filter,
        payment_status=payment_status,
    )
    _raise_for(result)
    return BookingListResponse(results=[_booking_response(b) for b in result.value])


@router.get("/events/{event_id}/booking-analytics", response_model=BookingAnalyticsResponse)
def event_booking_analytics(
    event_id: str,
    user_id: str = Depends(current_user_id),
    db: Session = Depends(get_db),
):
    result = BookingService(db).event_booking_analytics(event_id, organizer_id=user_id)
    _raise_for(result)
    return BookingAnalyticsResponse(data=result.value)


# -----------------------------
# Payments
# -----------------------------
@router.post(
    "/payments/bookings/{booking_id}/initiate",
    response_model=PaymentInitiationResponse,
)
def initiate_payment(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    result = service.initiate_payment(booking_id, user_id)
    if result.error is not None and result.error.kind is ErrorKind.GATEWAY_INIT_FAILED:
        # The failed attempt stays on the booking's transaction history.
        service.db.commit()
    _raise_for(result)
    initiation = result.value
    return PaymentInitiationResponse(
        payment_url=initiation.payment_url,
        pidx=initiation.gateway_handle,
        transaction_id=initiation.transaction_id,
    )


def _verify_response(result: OperationResult[VerificationOutcome]) -> PaymentVerifyResponse:
    _raise_for(result)
    outcome = result.value
    if result.already_satisfied:
        message = "Payment already verified successfully"
    elif outcome.success:
        message = "Payment verified successfully"
    else:
        message = "Payment verification failed"
    return PaymentVerifyResponse(
        success=outcome.success,
        already_verified=result.already_satisfied,
        message=message,
        transaction=_transaction_response(outcome.transaction),
        booking=_booking_response(outcome.booking) if outcome.booking is not None else None,
    )


@router.post("/payments/verify", response_model=PaymentVerifyResponse)
def verify_payment(
    request: PaymentVerifyRequest,
    service: PaymentService = Depends(get_payment_service),
):
    return _verify_response(service.verify_payment(request.pidx))


@router.get("/payments/verify", response_model=PaymentVerifyResponse)
def verify_payment_callback(
    pidx: str,
    service: PaymentService = Depends(get_payment_service),
):
    # Khalti redirects the customer back with ?pidx=...&status=...; only pidx is trusted.
    return _verify_response(service.verify_payment(pidx))


@router.get("/payments/bookings/{booking_id}/status", response_model=PaymentStatusResponse)
def get_payment_status(
    booking_id: str,
    user_id: str = Depends(current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    result = service.get_payment_status(booking_id, user_id)
    _raise_for(result)
    snapshot = result.value
    return PaymentStatusResponse(
        booking_id=snapshot.booking_id,
        payment_status=snapshot.payment_status.value,
        total_amount=snapshot.amount,
        latest_transaction=(
            _transaction_response(snapshot.latest_transaction)
            if snapshot.latest_transaction is not None
            else None
        ),
    )


@router.patch(
    "/payments/bookings/{booking_id}/status",
    response_model=PaymentStatusUpdateResponse,
)
def update_payment_status(
    booking_id: str,
    request: PaymentStatusUpdateRequest,
    user_id: str = Depends(current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    result = service.update_payment_status(
        booking_id,
        user_id,
        status=TransactionStatus(request.status),
        gateway_handle=request.pidx,
        verified_at=request.verified_at,
    )
    _raise_for(result)
    update = result.value
    return PaymentStatusUpdateResponse(
        booking_id=update.booking_id,
        payment_status=update.payment_status.value,
        booking_status=update.booking_status.value,
        transaction_status=update.transaction_status.value,
    )


@router.get("/payments/history", response_model=PaymentHistoryResponse)
def get_payment_history(
    role: str = Query(default="client", pattern="^(client|provider)$"),
    user_id: str = Depends(current_user_id),
    service: PaymentService = Depends(get_payment_service),
):
    entries = service.get_payment_history(user_id, role)
    return PaymentHistoryResponse(
        results=[
            PaymentHistoryItem(
                booking=_booking_response(entry.booking),
                transactions=[_transaction_response(t) for t in entry.transactions],
            )
            for entry in entries
        ]
    )
