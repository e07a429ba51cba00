"""Error types shared by services and routes."""

import logging

from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION_CODE = "23505"

# Constraint name (or column list for SQLite) -> user-facing message.
DUPLICATE_MESSAGES = {
    "uq_contributions_member_year": "Lidgeld voor dit jaar bestaat al voor dit lid",
    "contributions.member_id, contributions.contribution_year": (
        "Lidgeld voor dit jaar bestaat al voor dit lid"
    ),
    "members.auth_user_id": "Er bestaat al een account voor dit e-mailadres",
    "members_auth_user_id_key": "Er bestaat al een account voor dit e-mailadres",
    "uq_tags_name": "Deze tag bestaat al",
    "tags.name": "Deze tag bestaat al",
    "uq_event_registrations_event_member": "Je bent al ingeschreven voor dit event",
    "event_registrations.event_id, event_registrations.member_id": (
        "Je bent al ingeschreven voor dit event"
    ),
}
GENERIC_DUPLICATE_MESSAGE = "Dit record bestaat al"


class ValidationFailed(Exception):
    def __init__(self, messages: list[str] | str) -> None:
        if isinstance(messages, str):
            messages = [messages]
        self.messages = messages
        super().__init__("; ".join(messages))


class DuplicateRecordError(Exception):
    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class PaymentProviderError(Exception):
    pass


class MailerError(Exception):
    pass


def is_unique_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code == UNIQUE_VIOLATION_CODE:
        return True
    return "UNIQUE constraint failed" in str(orig)


def translate_integrity_error(exc: IntegrityError) -> Exception:
    """Map a unique-key violation onto a DuplicateRecordError.

    Anything that is not a unique violation is returned unchanged so the
    caller can re-raise it.
    """
    if not is_unique_violation(exc):
        return exc
    detail = str(getattr(exc, "orig", exc))
    for marker, message in DUPLICATE_MESSAGES.items():
        if marker in detail:
            return DuplicateRecordError(message)
    logger.warning("Unmapped unique violation: %s", detail)
    return DuplicateRecordError(GENERIC_DUPLICATE_MESSAGE)


class AccessDenied(Exception):
    pass
