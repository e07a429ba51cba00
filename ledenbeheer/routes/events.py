"""Event administration and the public event agenda with member registration."""

from datetime import datetime
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR
from ..db import get_db
from ..errors import DuplicateRecordError, MailerError, ValidationFailed
from ..models import Event, RegistrationStatusEnum
from ..models.base import utcnow
from ..services.events import (
    cancel_registration,
    create_event,
    delete_event,
    find_registration,
    format_event_date,
    get_published_event,
    list_events,
    list_published_events,
    load_event_detail,
    register_for_event,
    send_event_confirmation,
    update_event,
)
from ..services.mailer import Mailer, get_mailer
from ..session_context import (
    SessionContext,
    get_session_context,
    require_admin,
    require_member,
)

router = APIRouter(dependencies=[Depends(require_admin)])
public_router = APIRouter()
templates = Jinja2Templates(directory=TEMPLATES_DIR)
templates.env.filters["event_date"] = format_event_date
logger = logging.getLogger(__name__)


@router.get("/events", response_class=HTMLResponse)
def events_list(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return _render_list(request, db, {}, [])


@router.post("/events", response_class=HTMLResponse)
async def events_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    data, values = _parse_event_form(form)
    try:
        event = create_event(db, data)
    except ValidationFailed as exc:
        db.rollback()
        return _render_list(request, db, values, exc.messages, 400)
    return RedirectResponse(url=f"/events/{event.id}", status_code=303)


@router.get("/events/{event_id}", response_class=HTMLResponse)
def events_detail(
    event_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    event = db.get(Event, event_id)
    if event is None:
        return _not_found(request, event_id)
    return _render_detail(request, db, event, _event_to_form(event), [])


@router.post("/events/{event_id}", response_class=HTMLResponse)
async def events_update(
    event_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    event = db.get(Event, event_id)
    if event is None:
        return _not_found(request, event_id)
    form = await request.form()
    data, values = _parse_event_form(form)
    try:
        update_event(db, event, data)
    except ValidationFailed as exc:
        db.rollback()
        return _render_detail(request, db, event, values, exc.messages, 400)
    return RedirectResponse(url=f"/events/{event.id}", status_code=303)


@router.post("/events/{event_id}/delete")
def events_delete(event_id: int, db: Session = Depends(get_db)) -> RedirectResponse:
    event = db.get(Event, event_id)
    if event is not None:
        delete_event(db, event)
    return RedirectResponse(url="/events", status_code=303)


@public_router.get("/agenda", response_class=HTMLResponse)
def agenda(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "events/agenda.html", {"events": list_published_events(db)}
    )


@public_router.get("/agenda/{event_id}", response_class=HTMLResponse)
def agenda_event(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context),
) -> HTMLResponse:
    return _render_public(request, db, context, event_id, [])


@public_router.post("/agenda/{event_id}/register", response_class=HTMLResponse)
def agenda_register(
    event_id: int,
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(require_member),
    mailer: Mailer = Depends(get_mailer),
):
    event = get_published_event(db, event_id)
    if event is None:
        return _render_public(request, db, context, event_id, [])
    try:
        registration = register_for_event(db, event, context.member_id)
    except ValidationFailed as exc:
        return _render_public(request, db, context, event_id, exc.messages, 400)
    except DuplicateRecordError as exc:
        return _render_public(request, db, context, event_id, [exc.message], 400)
    try:
        send_event_confirmation(db, mailer, registration)
    except MailerError:
        # The registration stands; only the confirmation mail is lost.
        logger.exception("Confirmation for registration %s failed", registration.id)
    return RedirectResponse(url=f"/agenda/{event_id}?registered=1", status_code=303)


@public_router.post("/agenda/{event_id}/cancel")
def agenda_cancel(
    event_id: int,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(require_member),
) -> RedirectResponse:
    cancel_registration(db, event_id, context.member_id)
    return RedirectResponse(url=f"/agenda/{event_id}", status_code=303)


def _render_list(
    request: Request, db: Session, form: dict, errors: list[str], status_code: int = 200
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "events/list.html",
        {"events": list_events(db), "form": form, "errors": errors},
        status_code=status_code,
    )


def _render_detail(
    request: Request,
    db: Session,
    event: Event,
    form: dict,
    errors: list[str],
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "events/detail.html",
        {"detail": load_event_detail(db, event), "form": form, "errors": errors},
        status_code=status_code,
    )


def _render_public(
    request: Request,
    db: Session,
    context: SessionContext,
    event_id: int,
    errors: list[str],
    status_code: int = 200,
) -> HTMLResponse:
    event = get_published_event(db, event_id)
    if event is None:
        return _not_found(request, event_id)
    registration = (
        find_registration(db, event.id, context.member_id) if context.member_id else None
    )
    is_registered = (
        registration is not None
        and registration.status == RegistrationStatusEnum.CONFIRMED
    )
    return templates.TemplateResponse(
        request,
        "events/public.html",
        {
            "detail": load_event_detail(db, event),
            "context": context,
            "is_registered": is_registered,
            "is_past": event.event_date < utcnow(),
            "errors": errors,
        },
        status_code=status_code,
    )


def _not_found(request: Request, event_id: int) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "not_found.html",
        {"what": "Event", "object_id": event_id},
        status_code=404,
    )


def _parse_event_form(form) -> tuple[dict, dict]:
    def value(key: str) -> str:
        return str(form.get(key, "")).strip()

    event_date = None
    if value("event_date"):
        try:
            event_date = datetime.fromisoformat(value("event_date"))
        except ValueError:
            event_date = None
    max_participants = value("max_participants")

    data = {
        "title": value("title"),
        "description": value("description") or None,
        "event_date": event_date,
        "location": value("location") or None,
        "max_participants": int(max_participants) if max_participants.isdigit() else None,
        "is_published": value("is_published") == "on",
    }
    values = {key: value(key) for key in data}
    return data, values


def _event_to_form(event: Event) -> dict:
    return {
        "title": event.title,
        "description": event.description or "",
        "event_date": event.event_date.strftime("%Y-%m-%dT%H:%M"),
        "location": event.location or "",
        "max_participants": str(event.max_participants or ""),
        "is_published": "on" if event.is_published else "",
    }
