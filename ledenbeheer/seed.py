"""Seed default tags and grant the admin role to one auth user id.

Usage: python -m ledenbeheer.seed [admin-user-id]
"""

import sys

from sqlalchemy import select

from .db import SessionLocal
from .models import RoleEnum, Tag, UserRole
from .services.members import get_or_create_tag

SEED_TAGS = ["Vrijwilliger", "Sponsor", "Nieuwsbrief"]


def seed_tags(session) -> int:
    existing = {name.lower() for name in session.execute(select(Tag.name)).scalars()}
    created = 0
    for name in SEED_TAGS:
        if name.lower() in existing:
            continue
        get_or_create_tag(session, name)
        created += 1
    session.commit()
    return created


def grant_admin(session, user_id: str) -> bool:
    exists = session.execute(
        select(UserRole).where(
            UserRole.user_id == user_id, UserRole.role == RoleEnum.ADMIN.value
        )
    ).scalar_one_or_none()
    if exists:
        return False
    session.add(UserRole(user_id=user_id, role=RoleEnum.ADMIN.value))
    session.commit()
    return True


def main() -> None:
    with SessionLocal() as session:
        created = seed_tags(session)
        print(f"Seeded tags: {created}")
        if len(sys.argv) > 1:
            granted = grant_admin(session, sys.argv[1])
            print(f"Admin role for {sys.argv[1]}: {'granted' if granted else 'exists'}")


if __name__ == "__main__":
    main()
