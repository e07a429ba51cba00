import logging

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationFailed, translate_integrity_error
from ..models import (
    Company,
    EventRegistration,
    Member,
    MemberSegment,
    MemberTag,
    SegmentEnum,
    Tag,
)
from ..models.base import utcnow

logger = logging.getLogger(__name__)

MEMBER_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "phone",
    "mobile",
    "address",
    "postal_code",
    "city",
    "country",
    "personal_url",
    "bank_account",
    "notes",
    "company_id",
    "is_active",
    "receives_mail",
    "member_since",
)


def list_members(
    db: Session,
    *,
    q: str | None = None,
    tag_id: int | None = None,
    segment: SegmentEnum | None = None,
    active_only: bool = False,
) -> list[Member]:
    query = select(Member).order_by(Member.last_name, Member.first_name)
    if q:
        like = f"%{q}%"
        query = query.where(
            or_(
                Member.first_name.ilike(like),
                Member.last_name.ilike(like),
                Member.email.ilike(like),
                Member.city.ilike(like),
            )
        )
    if tag_id:
        query = query.where(
            Member.id.in_(select(MemberTag.member_id).where(MemberTag.tag_id == tag_id))
        )
    if segment:
        query = query.where(
            Member.id.in_(
                select(MemberSegment.member_id).where(
                    MemberSegment.segment == segment.value
                )
            )
        )
    if active_only:
        query = query.where(Member.is_active.is_(True))
    return list(db.execute(query).scalars())


def _validate_member(data: dict) -> None:
    errors: list[str] = []
    if not data.get("first_name"):
        errors.append("Voornaam is verplicht.")
    if not data.get("last_name"):
        errors.append("Achternaam is verplicht.")
    email = data.get("email")
    if email and "@" not in email:
        errors.append("Ongeldig e-mailadres.")
    if errors:
        raise ValidationFailed(errors)


def create_member(db: Session, data: dict, segments: list[SegmentEnum] | None = None) -> Member:
    _validate_member(data)
    values = {key: data.get(key) for key in MEMBER_FIELDS if key in data}
    values.setdefault("country", settings.default_country)
    values.setdefault("is_active", True)
    values.setdefault("receives_mail", True)
    member = Member(**values)
    member.segments = [MemberSegment(segment=item.value) for item in segments or []]
    db.add(member)
    db.commit()
    logger.info("Created member %s", member.id)
    return member


def update_member(
    db: Session, member: Member, data: dict, segments: list[SegmentEnum] | None = None
) -> Member:
    _validate_member(data)
    for key in MEMBER_FIELDS:
        if key in data:
            setattr(member, key, data[key])
    if segments is not None:
        set_segments(member, segments)
    member.updated_at = utcnow()
    db.commit()
    return member


def set_segments(member: Member, segments: list[SegmentEnum]) -> None:
    wanted = set(segments)
    member.segments = [row for row in member.segments if SegmentEnum(row.segment) in wanted]
    present = member.segment_values
    for segment in sorted(wanted - present, key=lambda item: item.value):
        member.segments.append(MemberSegment(segment=segment.value))


def delete_member(db: Session, member: Member) -> None:
    member_id = member.id
    db.execute(delete(MemberTag).where(MemberTag.member_id == member_id))
    db.execute(delete(EventRegistration).where(EventRegistration.member_id == member_id))
    db.delete(member)
    db.commit()
    logger.info("Deleted member %s", member_id)


def link_member_account(db: Session, member: Member, auth_user_id: str) -> Member:
    member.auth_user_id = auth_user_id
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        translated = translate_integrity_error(exc)
        if translated is exc:
            raise
        raise translated from exc
    logger.info("Linked member %s to user %s", member.id, auth_user_id)
    return member


def list_tags(db: Session) -> list[Tag]:
    return list(db.execute(select(Tag).order_by(Tag.name)).scalars())


def get_or_create_tag(db: Session, name: str) -> Tag:
    name = name.strip()
    if not name:
        raise ValidationFailed("Tagnaam is verplicht.")
    tag = db.execute(
        select(Tag).where(func.lower(Tag.name) == name.lower())
    ).scalar_one_or_none()
    if tag is None:
        tag = Tag(name=name)
        db.add(tag)
        db.flush()
    return tag


def member_tag_ids(db: Session, member_id: int) -> set[int]:
    return set(
        db.execute(
            select(MemberTag.tag_id).where(MemberTag.member_id == member_id)
        ).scalars()
    )


def member_tags(db: Session, member_id: int) -> list[Tag]:
    return list(
        db.execute(
            select(Tag)
            .join(MemberTag, MemberTag.tag_id == Tag.id)
            .where(MemberTag.member_id == member_id)
            .order_by(Tag.name)
        ).scalars()
    )


def set_member_tags(db: Session, member: Member, names: list[str]) -> list[Tag]:
    """Replace the member's tags with the given names, creating missing tags."""
    tags: dict[int, Tag] = {}
    for name in names:
        if name.strip():
            tag = get_or_create_tag(db, name)
            tags[tag.id] = tag
    current = member_tag_ids(db, member.id)
    removed = current - set(tags)
    if removed:
        db.execute(
            delete(MemberTag).where(
                MemberTag.member_id == member.id, MemberTag.tag_id.in_(removed)
            )
        )
    for tag_id in set(tags) - current:
        db.add(MemberTag(member_id=member.id, tag_id=tag_id))
    db.commit()
    return sorted(tags.values(), key=lambda tag: tag.name.lower())


def list_companies(db: Session, q: str | None = None) -> list[Company]:
    query = select(Company).order_by(Company.name)
    if q:
        query = query.where(Company.name.ilike(f"%{q}%"))
    return list(db.execute(query).scalars())


def find_company_by_name(db: Session, name: str) -> Company | None:
    return db.execute(
        select(Company)
        .where(func.lower(Company.name) == name.strip().lower())
        .order_by(Company.id)
    ).scalars().first()


def create_company(db: Session, data: dict) -> Company:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationFailed("Naam is verplicht.")
    company = Company(
        name=name,
        email=data.get("email"),
        phone=data.get("phone"),
        website=data.get("website"),
        address=data.get("address"),
        postal_code=data.get("postal_code"),
        city=data.get("city"),
        country=data.get("country") or settings.default_country,
        vat_number=data.get("vat_number"),
        enterprise_number=data.get("enterprise_number"),
        bank_account=data.get("bank_account"),
        is_supplier=bool(data.get("is_supplier")),
    )
    db.add(company)
    db.commit()
    return company
