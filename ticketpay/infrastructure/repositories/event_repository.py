# ticketpay/infrastructure/repositories/event_repository.py

from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session
from sqlalchemy import select

from ticketpay.infrastructure.db.models import Event, User


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, event_id: str) -> Event | None:
        stmt = select(Event).where(Event.id == event_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def list_ids_by_organizer(self, organizer_id: str) -> list[str]:
        stmt = select(Event.id).where(Event.organizer_id == organizer_id)
        return list(self.db.execute(stmt).scalars().all())

    def create_event(
        self,
        organizer_id: str,
        title: str,
        ticket_price: Decimal,
        venue: str | None = None,
        event_date: datetime | None = None,
    ) -> Event:
        event = Event(
            organizer_id=organizer_id,
            title=title,
            ticket_price=ticket_price,
            venue=venue,
            event_date=event_date,
        )
        self.db.add(event)
        return event


class UserRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, user_id: str) -> User | None:
        stmt = select(User).where(User.id == user_id)
        return self.db.execute(stmt).scalar_one_or_none()
