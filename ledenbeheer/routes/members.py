from datetime import date
import logging

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR, settings
from ..db import get_db
from ..errors import DuplicateRecordError, ValidationFailed
from ..models import SEGMENT_LABELS, Member, SegmentEnum
from ..services import member_csv
from ..services.contributions import list_member_contributions
from ..services.members import (
    create_company,
    create_member,
    delete_member,
    link_member_account,
    list_companies,
    list_members,
    list_tags,
    member_tags,
    set_member_tags,
    update_member,
)
from ..session_context import SessionContext, require_admin

router = APIRouter(dependencies=[Depends(require_admin)])
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)


@router.get("/members", response_class=HTMLResponse)
def members_list(
    request: Request,
    q: str | None = None,
    tag_id: int | None = None,
    segment: str | None = None,
    db: Session = Depends(get_db),
) -> HTMLResponse:
    members = list_members(db, q=q, tag_id=tag_id, segment=_parse_segment(segment))
    return templates.TemplateResponse(
        request,
        "members/list.html",
        {
            "members": members,
            "tags": list_tags(db),
            "segment_labels": SEGMENT_LABELS,
            "filters": {"q": q or "", "tag_id": tag_id, "segment": segment or ""},
        },
    )


@router.get("/members/new", response_class=HTMLResponse)
def members_new(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    return _render_form(request, db, None, _empty_form(), [])


@router.post("/members/new", response_class=HTMLResponse)
async def members_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    payload = _parse_member_form(form)
    try:
        member = create_member(db, payload["data"], payload["segments"])
        set_member_tags(db, member, payload["tags"])
    except ValidationFailed as exc:
        db.rollback()
        return _render_form(request, db, None, payload["form"], exc.messages, 400)
    return RedirectResponse(url=f"/members/{member.id}", status_code=303)


@router.get("/members/export.csv")
def members_export(db: Session = Depends(get_db)) -> Response:
    content = member_csv.export_members_csv(member_csv.load_export_rows(db))
    filename = f"leden_{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/members/import/template.csv")
def members_import_template() -> Response:
    return Response(
        content=member_csv.template_csv(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": 'attachment; filename="leden_sjabloon.csv"'},
    )


@router.get("/members/import", response_class=HTMLResponse)
def members_import_form(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request, "members/import.html", {"errors": [], "result": None}
    )


@router.post("/members/import", response_class=HTMLResponse)
async def members_import(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
) -> HTMLResponse:
    raw = await file.read()
    try:
        content = raw.decode("utf-8")
    except UnicodeDecodeError:
        content = raw.decode("latin-1")

    parsed = member_csv.parse_members_csv(content)
    if not parsed.members:
        return templates.TemplateResponse(
            request,
            "members/import.html",
            {"errors": parsed.errors or ["Geen geldige rijen gevonden."], "result": None},
            status_code=400,
        )
    result = member_csv.import_members(db, parsed.members)
    return templates.TemplateResponse(
        request,
        "members/import.html",
        {"errors": parsed.errors + result.errors, "result": result},
    )


@router.get("/members/{member_id}", response_class=HTMLResponse)
def members_edit(
    member_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    member = db.get(Member, member_id)
    if not member:
        return _not_found(request, member_id)
    return _render_form(request, db, member, _member_to_form(db, member), [])


@router.post("/members/{member_id}", response_class=HTMLResponse)
async def members_update(
    member_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    member = db.get(Member, member_id)
    if not member:
        return _not_found(request, member_id)

    form = await request.form()
    payload = _parse_member_form(form)
    try:
        update_member(db, member, payload["data"], payload["segments"])
        set_member_tags(db, member, payload["tags"])
    except ValidationFailed as exc:
        db.rollback()
        return _render_form(request, db, member, payload["form"], exc.messages, 400)
    return RedirectResponse(url=f"/members/{member.id}", status_code=303)


@router.post("/members/{member_id}/delete")
def members_delete(member_id: int, db: Session = Depends(get_db)) -> RedirectResponse:
    member = db.get(Member, member_id)
    if member:
        try:
            delete_member(db, member)
        except Exception:
            db.rollback()
            logger.exception("Failed to delete member %s", member_id)
    return RedirectResponse(url="/members", status_code=303)


@router.post("/members/{member_id}/account", response_class=HTMLResponse)
async def members_link_account(
    member_id: int,
    request: Request,
    db: Session = Depends(get_db),
    context: SessionContext = Depends(require_admin),
) -> HTMLResponse:
    member = db.get(Member, member_id)
    if not member:
        return _not_found(request, member_id)

    form = await request.form()
    auth_user_id = str(form.get("auth_user_id", "")).strip()
    if not auth_user_id:
        return _render_form(
            request, db, member, _member_to_form(db, member),
            ["Gebruikers-ID is verplicht."], 400,
        )
    try:
        link_member_account(db, member, auth_user_id)
    except DuplicateRecordError as exc:
        return _render_form(
            request, db, member, _member_to_form(db, member), [exc.message], 400
        )
    if auth_user_id == context.user_id:
        context = context.refresh(db)
        logger.info(
            "Session for %s now linked to member %s", context.user_id, context.member_id
        )
    return RedirectResponse(url=f"/members/{member.id}", status_code=303)


@router.get("/companies", response_class=HTMLResponse)
def companies_list(
    request: Request, q: str | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "companies/list.html",
        {"companies": list_companies(db, q), "q": q or "", "errors": [], "form": {}},
    )


@router.post("/companies", response_class=HTMLResponse)
async def companies_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    data = {key: str(form.get(key, "")).strip() or None for key in _COMPANY_FIELDS}
    data["is_supplier"] = form.get("is_supplier") == "on"
    try:
        create_company(db, data)
    except ValidationFailed as exc:
        db.rollback()
        return templates.TemplateResponse(
            request,
            "companies/list.html",
            {
                "companies": list_companies(db),
                "q": "",
                "errors": exc.messages,
                "form": data,
            },
            status_code=400,
        )
    return RedirectResponse(url="/companies", status_code=303)


_COMPANY_FIELDS = (
    "name",
    "email",
    "phone",
    "website",
    "address",
    "postal_code",
    "city",
    "country",
    "vat_number",
    "enterprise_number",
    "bank_account",
)


def _render_form(
    request: Request,
    db: Session,
    member: Member | None,
    form: dict,
    errors: list[str],
    status_code: int = 200,
) -> HTMLResponse:
    context = {
        "member": member,
        "form": form,
        "errors": errors,
        "companies": list_companies(db),
        "segment_labels": SEGMENT_LABELS,
        "contributions": list_member_contributions(db, member.id) if member else [],
    }
    return templates.TemplateResponse(
        request, "members/form.html", context, status_code=status_code
    )


def _not_found(request: Request, member_id: int) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "not_found.html",
        {"what": "Lid", "object_id": member_id},
        status_code=404,
    )


def _parse_segment(value: str | None) -> SegmentEnum | None:
    if not value:
        return None
    try:
        return SegmentEnum(value)
    except ValueError:
        return None


def _parse_member_form(form) -> dict:
    def value(key: str) -> str:
        return str(form.get(key, "")).strip()

    member_since = None
    if value("member_since"):
        try:
            member_since = date.fromisoformat(value("member_since"))
        except ValueError:
            member_since = None

    segments = [
        segment
        for segment in (_parse_segment(str(raw)) for raw in form.getlist("segments"))
        if segment
    ]
    tags = [name.strip() for name in value("tags").split(",") if name.strip()]
    company_id = value("company_id")

    data = {
        "first_name": value("first_name"),
        "last_name": value("last_name"),
        "email": value("email") or None,
        "phone": value("phone") or None,
        "mobile": value("mobile") or None,
        "address": value("address") or None,
        "postal_code": value("postal_code") or None,
        "city": value("city") or None,
        "country": value("country") or settings.default_country,
        "personal_url": value("personal_url") or None,
        "bank_account": value("bank_account") or None,
        "notes": value("notes") or None,
        "company_id": int(company_id) if company_id.isdigit() else None,
        "is_active": value("is_active") == "on",
        "receives_mail": value("receives_mail") == "on",
        "member_since": member_since,
    }
    form_values = {key: value(key) for key in data}
    form_values["tags"] = value("tags")
    form_values["segments"] = [segment.value for segment in segments]
    return {"data": data, "segments": segments, "tags": tags, "form": form_values}


def _empty_form() -> dict:
    return {
        "first_name": "",
        "last_name": "",
        "email": "",
        "phone": "",
        "mobile": "",
        "address": "",
        "postal_code": "",
        "city": "",
        "country": settings.default_country,
        "personal_url": "",
        "bank_account": "",
        "notes": "",
        "company_id": "",
        "is_active": "on",
        "receives_mail": "on",
        "member_since": "",
        "tags": "",
        "segments": [],
    }


def _member_to_form(db: Session, member: Member) -> dict:
    return {
        "first_name": member.first_name or "",
        "last_name": member.last_name or "",
        "email": member.email or "",
        "phone": member.phone or "",
        "mobile": member.mobile or "",
        "address": member.address or "",
        "postal_code": member.postal_code or "",
        "city": member.city or "",
        "country": member.country or "",
        "personal_url": member.personal_url or "",
        "bank_account": member.bank_account or "",
        "notes": member.notes or "",
        "company_id": str(member.company_id or ""),
        "is_active": "on" if member.is_active else "",
        "receives_mail": "on" if member.receives_mail else "",
        "member_since": member.member_since.isoformat() if member.member_since else "",
        "tags": ", ".join(tag.name for tag in member_tags(db, member.id)),
        "segments": [segment.value for segment in member.segment_values],
    }
