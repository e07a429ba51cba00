from abc import ABC, abstractmethod
import logging

from fastapi.templating import Jinja2Templates
import httpx

from ..config import TEMPLATES_DIR, settings
from ..errors import MailerError

logger = logging.getLogger(__name__)

templates = Jinja2Templates(directory=TEMPLATES_DIR)


def render_email(template_name: str, context: dict) -> str:
    return templates.get_template(template_name).render(**context)


class Mailer(ABC):
    @abstractmethod
    def is_configured(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        raise NotImplementedError


class ResendMailer(Mailer):
    """Transactional mail through the Resend HTTP API."""

    def __init__(self, api_key: str, sender: str, base_url: str) -> None:
        self._api_key = api_key
        self._sender = sender
        self._base_url = base_url.rstrip("/")

    def is_configured(self) -> bool:
        return bool(self._api_key)

    def send(self, to: str, subject: str, html: str, text: str | None = None) -> None:
        if not self.is_configured():
            raise MailerError("RESEND_API_KEY is not configured")
        payload = {"from": self._sender, "to": [to], "subject": subject, "html": html}
        if text:
            payload["text"] = text
        try:
            resp = httpx.post(
                f"{self._base_url}/emails",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
                timeout=30,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Resend send to %s failed: %s", to, exc)
            raise MailerError(str(exc)) from exc


def get_mailer() -> Mailer:
    return ResendMailer(
        settings.resend_api_key, settings.mail_from, settings.resend_api_base
    )
