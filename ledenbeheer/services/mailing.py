"""Bulk templated mail to a filtered set of members."""

from dataclasses import dataclass, field
import hashlib
import hmac
import logging
import re
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import MailerError, ValidationFailed
from ..models import Member, MemberSegment, MemberTag, SegmentEnum
from ..models.base import utcnow
from .mailer import Mailer, render_email

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(\w+)\s*\}\}", re.IGNORECASE)


@dataclass
class MailingResult:
    recipients: int = 0
    sent: int = 0
    failed: int = 0
    failures: list[str] = field(default_factory=list)


def select_recipients(
    db: Session,
    tag_ids: list[int] | None = None,
    segments: list[SegmentEnum] | None = None,
    member_ids: list[int] | None = None,
) -> list[Member]:
    query = (
        select(Member)
        .where(
            Member.is_active.is_(True),
            Member.receives_mail.is_(True),
            Member.email.is_not(None),
            Member.email != "",
        )
        .order_by(Member.last_name, Member.first_name)
    )
    if tag_ids:
        query = query.where(
            Member.id.in_(
                select(MemberTag.member_id).where(MemberTag.tag_id.in_(tag_ids))
            )
        )
    if segments:
        query = query.where(
            Member.id.in_(
                select(MemberSegment.member_id).where(
                    MemberSegment.segment.in_([item.value for item in segments])
                )
            )
        )
    if member_ids:
        query = query.where(Member.id.in_(member_ids))
    return list(db.execute(query).scalars())


def render_placeholders(content: str, member: Member) -> str:
    values = {
        "voornaam": member.first_name or "",
        "achternaam": member.last_name or "",
        "email": member.email or "",
        "naam": member.full_name,
        "volledige_naam": member.full_name,
    }

    def replace(match: re.Match) -> str:
        key = match.group(1).lower()
        return values.get(key, match.group(0))

    return PLACEHOLDER_PATTERN.sub(replace, content)


def unsubscribe_token(member_id: int) -> str:
    return hmac.new(
        settings.secret_key.encode(), str(member_id).encode(), hashlib.sha256
    ).hexdigest()


def verify_unsubscribe_token(member_id: int, token: str) -> bool:
    return hmac.compare_digest(unsubscribe_token(member_id), token or "")


def unsubscribe_url(member_id: int) -> str:
    query = urlencode({"id": member_id, "token": unsubscribe_token(member_id)})
    return f"{settings.public_base_url.rstrip('/')}/unsubscribe?{query}"


def add_unsubscribe_footer(html: str, url: str) -> str:
    footer = render_email("email/unsubscribe_footer.html", {"unsubscribe_url": url})
    if "</body>" in html:
        return html.replace("</body>", f"{footer}</body>", 1)
    return html + footer


def send_mailing(
    db: Session,
    mailer: Mailer,
    subject: str,
    html: str,
    recipients: list[Member],
) -> MailingResult:
    """Send one personalised message per recipient; failures do not stop the run."""
    if not subject.strip() or not html.strip():
        raise ValidationFailed("Onderwerp en inhoud zijn verplicht.")
    if not mailer.is_configured():
        raise MailerError("E-mailservice is niet geconfigureerd.")

    result = MailingResult(recipients=len(recipients))
    for member in recipients:
        body = add_unsubscribe_footer(
            render_placeholders(html, member), unsubscribe_url(member.id)
        )
        try:
            mailer.send(member.email, render_placeholders(subject, member), body)
        except MailerError as exc:
            result.failed += 1
            result.failures.append(member.email)
            logger.error("Mailing to member %s failed: %s", member.id, exc)
            continue
        result.sent += 1

    logger.info(
        "Mailing '%s' finished: %s sent, %s failed", subject, result.sent, result.failed
    )
    return result


def unsubscribe(db: Session, member_id: int) -> Member | None:
    member = db.get(Member, member_id)
    if member is None:
        return None
    member.receives_mail = False
    member.updated_at = utcnow()
    db.commit()
    logger.info("Member %s unsubscribed from mailings", member_id)
    return member
