"""Explicit per-request identity, roles and member link."""

from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.orm import Session

from .config import settings
from .db import get_db
from .models import Member, RoleEnum, UserRole


@dataclass(frozen=True)
class SessionContext:
    user_id: str | None = None
    roles: frozenset[RoleEnum] = field(default_factory=frozenset)
    member_id: int | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return RoleEnum.ADMIN in self.roles

    def refresh(self, db: Session) -> "SessionContext":
        # Called after anything that changes roles or the member link.
        return load_session_context(db, self.user_id)


ANONYMOUS = SessionContext()


def load_session_context(db: Session, user_id: str | None) -> SessionContext:
    if not user_id:
        return ANONYMOUS
    roles = db.execute(
        select(UserRole.role).where(UserRole.user_id == user_id)
    ).scalars()
    member_id = db.execute(
        select(Member.id).where(Member.auth_user_id == user_id)
    ).scalar_one_or_none()
    return SessionContext(
        user_id=user_id,
        roles=frozenset(RoleEnum(role) for role in roles),
        member_id=member_id,
    )


def get_session_context(
    request: Request, db: Session = Depends(get_db)
) -> SessionContext:
    user_id = request.headers.get(settings.auth_user_header, "").strip()
    return load_session_context(db, user_id or None)


def require_admin(
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    if not context.is_authenticated:
        raise HTTPException(status_code=401)
    if not context.is_admin:
        raise HTTPException(status_code=403)
    return context


def require_member(
    context: SessionContext = Depends(get_session_context),
) -> SessionContext:
    if not context.is_authenticated:
        raise HTTPException(status_code=401)
    if context.member_id is None:
        raise HTTPException(status_code=403, detail="Lid niet gevonden")
    return context
