"""Events, member registrations and the registration confirmation mail."""

from dataclasses import dataclass, field
from datetime import datetime
import logging

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import DuplicateRecordError, ValidationFailed, translate_integrity_error
from ..models import Event, EventRegistration, Member, RegistrationStatusEnum
from ..models.base import utcnow
from .mailer import Mailer, render_email

logger = logging.getLogger(__name__)

EVENT_FIELDS = (
    "title",
    "description",
    "event_date",
    "location",
    "max_participants",
    "is_published",
)

DUTCH_WEEKDAYS = ("maandag", "dinsdag", "woensdag", "donderdag", "vrijdag", "zaterdag", "zondag")
DUTCH_MONTHS = (
    "januari",
    "februari",
    "maart",
    "april",
    "mei",
    "juni",
    "juli",
    "augustus",
    "september",
    "oktober",
    "november",
    "december",
)


@dataclass
class EventDetail:
    event: Event
    registrations: list[tuple[EventRegistration, Member]] = field(default_factory=list)

    @property
    def registration_count(self) -> int:
        return len(self.registrations)

    @property
    def spots_left(self) -> int | None:
        if not self.event.max_participants:
            return None
        return max(self.event.max_participants - self.registration_count, 0)

    @property
    def is_full(self) -> bool:
        return self.spots_left == 0


def format_event_date(value: datetime) -> str:
    weekday = DUTCH_WEEKDAYS[value.weekday()]
    month = DUTCH_MONTHS[value.month - 1]
    return f"{weekday} {value.day} {month} {value.year} om {value:%H:%M}"


def _validate_event(data: dict) -> None:
    errors: list[str] = []
    if not data.get("title"):
        errors.append("Titel is verplicht.")
    if data.get("event_date") is None:
        errors.append("Datum is verplicht.")
    max_participants = data.get("max_participants")
    if max_participants is not None and max_participants < 1:
        errors.append("Maximum aantal deelnemers moet groter zijn dan 0.")
    if errors:
        raise ValidationFailed(errors)


def create_event(db: Session, data: dict) -> Event:
    _validate_event(data)
    event = Event(**{key: data.get(key) for key in EVENT_FIELDS if key in data})
    db.add(event)
    db.commit()
    logger.info("Created event %s", event.id)
    return event


def update_event(db: Session, event: Event, data: dict) -> Event:
    _validate_event(data)
    for key in EVENT_FIELDS:
        if key in data:
            setattr(event, key, data[key])
    event.updated_at = utcnow()
    db.commit()
    return event


def delete_event(db: Session, event: Event) -> None:
    event_id = event.id
    db.execute(delete(EventRegistration).where(EventRegistration.event_id == event_id))
    db.delete(event)
    db.commit()
    logger.info("Deleted event %s", event_id)


def list_events(db: Session) -> list[Event]:
    return list(db.execute(select(Event).order_by(Event.event_date)).scalars())


def list_published_events(db: Session, now: datetime | None = None) -> list[Event]:
    return list(
        db.execute(
            select(Event)
            .where(Event.is_published.is_(True), Event.event_date >= (now or utcnow()))
            .order_by(Event.event_date)
        ).scalars()
    )


def get_published_event(db: Session, event_id: int) -> Event | None:
    event = db.get(Event, event_id)
    if event is None or not event.is_published:
        return None
    return event


def confirmed_count(db: Session, event_id: int) -> int:
    return db.execute(
        select(func.count(EventRegistration.id)).where(
            EventRegistration.event_id == event_id,
            EventRegistration.status == RegistrationStatusEnum.CONFIRMED,
        )
    ).scalar_one()


def load_event_detail(db: Session, event: Event) -> EventDetail:
    rows = db.execute(
        select(EventRegistration, Member)
        .join(Member, Member.id == EventRegistration.member_id)
        .where(
            EventRegistration.event_id == event.id,
            EventRegistration.status == RegistrationStatusEnum.CONFIRMED,
        )
        .order_by(EventRegistration.registered_at, EventRegistration.id)
    ).all()
    return EventDetail(event, [(registration, member) for registration, member in rows])


def find_registration(
    db: Session, event_id: int, member_id: int
) -> EventRegistration | None:
    return db.execute(
        select(EventRegistration).where(
            EventRegistration.event_id == event_id,
            EventRegistration.member_id == member_id,
        )
    ).scalar_one_or_none()


def register_for_event(
    db: Session, event: Event, member_id: int, now: datetime | None = None
) -> EventRegistration:
    """Confirm a member's place; a cancelled registration is reopened."""
    if not event.is_published:
        raise ValidationFailed("Dit event is niet beschikbaar.")
    if event.event_date < (now or utcnow()):
        raise ValidationFailed("Dit event is al voorbij.")

    registration = find_registration(db, event.id, member_id)
    if registration is not None and registration.status == RegistrationStatusEnum.CONFIRMED:
        raise DuplicateRecordError("Je bent al ingeschreven voor dit event")
    if event.max_participants and confirmed_count(db, event.id) >= event.max_participants:
        raise ValidationFailed("Dit event is volzet.")

    if registration is None:
        registration = EventRegistration(event_id=event.id, member_id=member_id)
        db.add(registration)
    registration.status = RegistrationStatusEnum.CONFIRMED.value
    registration.registered_at = utcnow()
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        translated = translate_integrity_error(exc)
        if translated is exc:
            raise
        raise translated from exc
    logger.info("Member %s registered for event %s", member_id, event.id)
    return registration


def cancel_registration(
    db: Session, event_id: int, member_id: int
) -> EventRegistration | None:
    registration = find_registration(db, event_id, member_id)
    if registration is None:
        return None
    registration.status = RegistrationStatusEnum.CANCELLED.value
    registration.updated_at = utcnow()
    db.commit()
    logger.info("Member %s cancelled registration for event %s", member_id, event_id)
    return registration


def send_event_confirmation(
    db: Session, mailer: Mailer, registration: EventRegistration
) -> bool:
    """Mail the member a confirmation; returns False when they have no address."""
    member = db.get(Member, registration.member_id)
    event = db.get(Event, registration.event_id)
    if member is None or not member.email:
        logger.info(
            "No confirmation for registration %s: member has no e-mail address",
            registration.id,
        )
        return False

    html = render_email(
        "email/event_confirmation.html",
        {
            "member": member,
            "event": event,
            "event_date": format_event_date(event.event_date),
            "organization_name": settings.organization_name,
        },
    )
    mailer.send(member.email, f"Bevestiging: {event.title}", html)
    logger.info("Event confirmation sent to %s for event %s", member.email, event.id)
    return True
