import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR
from ..db import get_db
from ..errors import MailerError, ValidationFailed
from ..models import SEGMENT_LABELS, SegmentEnum
from ..services.mailer import Mailer, get_mailer
from ..services.mailing import (
    select_recipients,
    send_mailing,
    unsubscribe,
    verify_unsubscribe_token,
)
from ..services.members import list_members, list_tags
from ..session_context import require_admin

router = APIRouter()
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)


@router.get("/mailing", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
def mailing_form(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return _render_form(request, db, {}, [], None)


@router.post("/mailing", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
async def mailing_send(
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> HTMLResponse:
    form = await request.form()
    subject = str(form.get("subject", "")).strip()
    html = str(form.get("html", "")).strip()
    tag_ids = [int(raw) for raw in form.getlist("tag_ids") if str(raw).isdigit()]
    member_ids = [int(raw) for raw in form.getlist("member_ids") if str(raw).isdigit()]
    segments = []
    for raw in form.getlist("segments"):
        try:
            segments.append(SegmentEnum(str(raw)))
        except ValueError:
            continue

    values = {"subject": subject, "html": html}
    recipients = select_recipients(db, tag_ids, segments, member_ids)
    if not recipients:
        return _render_form(request, db, values, ["Geen ontvangers gevonden."], None, 400)
    try:
        result = send_mailing(db, mailer, subject, html, recipients)
    except ValidationFailed as exc:
        return _render_form(request, db, values, exc.messages, None, 400)
    except MailerError as exc:
        logger.error("Mailing not sent: %s", exc)
        return _render_form(request, db, values, [str(exc)], None, 503)
    return _render_form(request, db, {}, [], result)


@router.get("/unsubscribe", response_class=HTMLResponse)
def mailing_unsubscribe(
    request: Request,
    id: int,
    token: str = "",
    db: Session = Depends(get_db),
) -> HTMLResponse:
    if not verify_unsubscribe_token(id, token):
        return templates.TemplateResponse(
            request, "mailing/unsubscribed.html", {"ok": False}, status_code=400
        )
    member = unsubscribe(db, id)
    return templates.TemplateResponse(
        request,
        "mailing/unsubscribed.html",
        {"ok": member is not None},
        status_code=200 if member else 404,
    )


def _render_form(
    request: Request,
    db: Session,
    form: dict,
    errors: list[str],
    result,
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "mailing/form.html",
        {
            "form": form,
            "errors": errors,
            "result": result,
            "tags": list_tags(db),
            "members": list_members(db, active_only=True),
            "segment_labels": SEGMENT_LABELS,
        },
        status_code=status_code,
    )
