from datetime import date
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR, settings
from ..db import get_db
from ..errors import DuplicateRecordError, MailerError, ValidationFailed
from ..models import Contribution
from ..services.contributions import (
    create_contribution,
    create_contributions_for_year,
    delete_contribution,
    list_contributions,
    mark_contribution_paid,
    send_contribution_invites,
)
from ..services.mailer import Mailer, get_mailer
from ..services.members import list_members
from ..services.money import parse_decimal
from ..session_context import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)


@router.get("/contributions", response_class=HTMLResponse)
def contributions_list(
    request: Request,
    year: int | None = None,
    db: Session = Depends(get_db),
) -> HTMLResponse:
    return _render_list(request, db, year or date.today().year, [])


@router.post("/contributions", response_class=HTMLResponse)
async def contributions_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    year = _parse_year(str(form.get("year", "")))
    member_id = str(form.get("member_id", "")).strip()
    amount = parse_decimal(str(form.get("amount", ""))) or settings.default_contribution_amount

    if not member_id.isdigit():
        return _render_list(request, db, year, ["Kies een lid."], 400)
    try:
        create_contribution(
            db,
            member_id=int(member_id),
            year=year,
            amount=amount,
            notes=str(form.get("notes", "")).strip() or None,
        )
    except (ValidationFailed, DuplicateRecordError) as exc:
        messages = exc.messages if isinstance(exc, ValidationFailed) else [exc.message]
        return _render_list(request, db, year, messages, 400)
    return RedirectResponse(url=f"/contributions?year={year}", status_code=303)


@router.post("/contributions/generate")
async def contributions_generate(
    request: Request, db: Session = Depends(get_db)
) -> RedirectResponse:
    form = await request.form()
    year = _parse_year(str(form.get("year", "")))
    amount = parse_decimal(str(form.get("amount", ""))) or settings.default_contribution_amount
    create_contributions_for_year(db, year, amount)
    return RedirectResponse(url=f"/contributions?year={year}", status_code=303)


@router.post("/contributions/invites", response_class=HTMLResponse)
async def contributions_send_invites(
    request: Request,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> HTMLResponse:
    form = await request.form()
    year = _parse_year(str(form.get("year", "")))
    try:
        result = send_contribution_invites(db, mailer, year)
    except ValidationFailed as exc:
        return _render_list(request, db, year, exc.messages, 400)
    except MailerError as exc:
        return _render_list(request, db, year, [str(exc)], 503)
    return _render_list(request, db, year, [], invite_result=result)


@router.post("/contributions/{contribution_id}/paid")
def contributions_mark_paid(
    contribution_id: int, db: Session = Depends(get_db)
) -> RedirectResponse:
    contribution = db.get(Contribution, contribution_id)
    if contribution is None:
        return RedirectResponse(url="/contributions", status_code=303)
    mark_contribution_paid(db, contribution)
    return RedirectResponse(
        url=f"/contributions?year={contribution.contribution_year}", status_code=303
    )


@router.post("/contributions/{contribution_id}/delete")
def contributions_delete(
    contribution_id: int, db: Session = Depends(get_db)
) -> RedirectResponse:
    contribution = db.get(Contribution, contribution_id)
    if contribution is None:
        return RedirectResponse(url="/contributions", status_code=303)
    year = contribution.contribution_year
    delete_contribution(db, contribution)
    return RedirectResponse(url=f"/contributions?year={year}", status_code=303)


def _render_list(
    request: Request,
    db: Session,
    year: int,
    errors: list[str],
    status_code: int = 200,
    invite_result=None,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "contributions/list.html",
        {
            "year": year,
            "rows": list_contributions(db, year),
            "members": list_members(db, active_only=True),
            "default_amount": settings.default_contribution_amount,
            "errors": errors,
            "invite_result": invite_result,
        },
        status_code=status_code,
    )


def _parse_year(value: str) -> int:
    value = value.strip()
    return int(value) if value.isdigit() else date.today().year
