"""Member-facing pages: own contributions and donations."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR, settings
from ..db import get_db
from ..errors import AccessDenied, PaymentProviderError, ValidationFailed
from ..models import Contribution, Donation, Member
from ..services.contributions import list_member_contributions
from ..services.money import parse_decimal
from ..services.payment_provider import PaymentProvider, get_payment_provider
from ..services.payments import start_contribution_payment, start_donation_payment
from ..session_context import SessionContext, get_session_context, require_member

router = APIRouter()
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)


@router.get("/portal", response_class=HTMLResponse)
def portal(
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(require_member),
) -> HTMLResponse:
    return _render_portal(request, db, context, [])


@router.post("/portal/contributions/{contribution_id}/pay", response_class=HTMLResponse)
def portal_pay_contribution(
    contribution_id: int,
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(require_member),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    contribution = db.get(Contribution, contribution_id)
    if contribution is None:
        return _render_portal(request, db, context, ["Contributie niet gevonden"], 404)
    try:
        checkout_url = start_contribution_payment(
            db,
            provider,
            contribution=contribution,
            member_id=context.member_id,
            redirect_base=settings.public_base_url,
        )
    except AccessDenied:
        return _render_portal(request, db, context, ["Ongeautoriseerd"], 403)
    except ValidationFailed as exc:
        return _render_portal(request, db, context, exc.messages, 400)
    except PaymentProviderError:
        db.rollback()
        logger.exception("Contribution payment %s could not be started", contribution_id)
        return _render_portal(
            request, db, context, ["Betaling kon niet worden gestart"], 502
        )
    return RedirectResponse(url=checkout_url or "/portal", status_code=303)


@router.get("/donate", response_class=HTMLResponse)
def donate_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "portal/donate.html", {"errors": [], "form": {}}
    )


@router.post("/donate", response_class=HTMLResponse)
async def donate_create(
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(get_session_context),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    member = db.get(Member, context.member_id) if context.member_id else None
    try:
        _, checkout_url = start_donation_payment(
            db,
            provider,
            member=member,
            amount=parse_decimal(values.get("amount", "")),
            description=values.get("description") or None,
            redirect_base=settings.public_base_url,
        )
    except ValidationFailed as exc:
        return templates.TemplateResponse(
            request,
            "portal/donate.html",
            {"errors": exc.messages, "form": values},
            status_code=400,
        )
    except PaymentProviderError:
        return templates.TemplateResponse(
            request,
            "portal/donate.html",
            {"errors": ["Betaling kon niet worden gestart"], "form": values},
            status_code=502,
        )
    return RedirectResponse(url=checkout_url or "/donate", status_code=303)


@router.get("/donate/success", response_class=HTMLResponse)
def donate_success(
    request: Request,
    donation_id: int | None = None,
    db: Session = Depends(get_db),
) -> HTMLResponse:
    donation = db.get(Donation, donation_id) if donation_id else None
    return templates.TemplateResponse(
        request, "portal/donate_success.html", {"donation": donation}
    )


def _render_portal(
    request: Request,
    db: Session,
    context: SessionContext,
    errors: list[str],
    status_code: int = 200,
) -> HTMLResponse:
    member = db.get(Member, context.member_id)
    return templates.TemplateResponse(
        request,
        "portal/index.html",
        {
            "member": member,
            "contributions": list_member_contributions(db, context.member_id),
            "errors": errors,
        },
        status_code=status_code,
    )
