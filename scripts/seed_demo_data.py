from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from ticketpay.domain.state_machine import BookingStatus, PaymentStatus
from ticketpay.infrastructure.db.models import (
    Base,
    Event,
    EventTicketBooking,
    ServiceBooking,
    User,
)
from ticketpay.infrastructure.db.session import engine, get_db_session


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    npt = timezone(timedelta(hours=5, minutes=45))
    now_npt = datetime.now(npt)
    target = now_npt + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


USERS = [
    {"id": "organizer-1", "name": "Kathmandu Live", "email": "events@ktmlive.test", "phone": "9800000001"},
    {"id": "client-1", "name": "Sita Sharma", "email": "sita@example.test", "phone": "9800000002"},
    {"id": "provider-1", "name": "Ram Plumbing", "email": "ram@example.test", "phone": "9800000003"},
]


def seed_users(db) -> None:
    for item in USERS:
        user = db.get(User, item["id"])
        if user is None:
            db.add(User(**item))
            continue
        user.name = item["name"]
        user.email = item["email"]
        user.phone = item["phone"]


def seed_events(db) -> list[Event]:
    event_defs = [
        {
            "title": "Nepathya Live in Concert",
            "ticket_price": Decimal("1500.00"),
            "venue": "Dasharath Stadium, Kathmandu",
            "event_date": _dt(days_from_now=10, hour=17, minute=0),
        },
        {
            "title": "Jazzmandu Festival 2026",
            "ticket_price": Decimal("2200.50"),
            "venue": "Gokarna Forest Resort",
            "event_date": _dt(days_from_now=21, hour=15, minute=30),
        },
    ]

    events = []
    for item in event_defs:
        event = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if event is None:
            event = Event(organizer_id="organizer-1", **item)
            db.add(event)
            db.flush()
        else:
            event.ticket_price = item["ticket_price"]
            event.venue = item["venue"]
            event.event_date = item["event_date"]
        events.append(event)
    return events


def seed_bookings(db, events: list[Event]) -> None:
    existing = db.execute(
        select(EventTicketBooking).where(EventTicketBooking.owner_id == "client-1")
    ).scalars().first()
    if existing is not None:
        return

    concert = events[0]
    db.add(
        EventTicketBooking(
            owner_id="client-1",
            event_id=concert.id,
            ticket_type="General",
            quantity=2,
            amount=concert.ticket_price * 2,
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )
    )
    db.add(
        ServiceBooking(
            owner_id="client-1",
            service_provider_id="provider-1",
            service_type="plumbing",
            amount=Decimal("850.00"),
            status=BookingStatus.CONFIRMED_AWAITING_PAYMENT,
            payment_status=PaymentStatus.PENDING,
        )
    )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_users(db)
        events = seed_events(db)
        seed_bookings(db, events)
    print("Seed complete: 3 users, 2 events, a pending ticket and a payable service booking.")


if __name__ == "__main__":
    main()
