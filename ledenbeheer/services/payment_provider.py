from abc import ABC, abstractmethod
from decimal import Decimal
import logging
import re
from typing import Any

import httpx

from ..config import settings
from ..errors import PaymentProviderError
from ..schemas import ProviderPayment
from .money import money

logger = logging.getLogger(__name__)

PAYMENT_ID_PATTERN = re.compile(r"tr_\w+")


class PaymentProvider(ABC):
    @abstractmethod
    def create_payment(
        self,
        *,
        amount: Decimal,
        description: str,
        redirect_url: str,
        webhook_url: str,
        metadata: dict[str, Any],
    ) -> ProviderPayment:
        raise NotImplementedError

    @abstractmethod
    def get_payment(self, payment_id: str) -> ProviderPayment:
        raise NotImplementedError


class MolliePaymentProvider(PaymentProvider):
    def __init__(self, api_key: str, base_url: str) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise PaymentProviderError("MOLLIE_API_KEY is not configured")
        return {"Authorization": f"Bearer {self._api_key}"}

    def create_payment(
        self,
        *,
        amount: Decimal,
        description: str,
        redirect_url: str,
        webhook_url: str,
        metadata: dict[str, Any],
    ) -> ProviderPayment:
        payload = {
            "amount": {"currency": "EUR", "value": f"{money(amount):.2f}"},
            "description": description,
            "redirectUrl": redirect_url,
            "webhookUrl": webhook_url,
            "metadata": metadata,
        }
        try:
            resp = httpx.post(
                f"{self._base_url}/payments",
                json=payload,
                headers=self._headers(),
                timeout=30,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Mollie create payment failed: %s", exc)
            raise PaymentProviderError(str(exc)) from exc
        return ProviderPayment.from_api(resp.json())

    def get_payment(self, payment_id: str) -> ProviderPayment:
        if not PAYMENT_ID_PATTERN.fullmatch(payment_id or ""):
            raise PaymentProviderError(f"Invalid payment id {payment_id!r}")
        try:
            resp = httpx.get(
                f"{self._base_url}/payments/{payment_id}",
                headers=self._headers(),
                timeout=30,
            )
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Mollie fetch payment %s failed: %s", payment_id, exc)
            raise PaymentProviderError(str(exc)) from exc
        return ProviderPayment.from_api(resp.json())


def get_payment_provider() -> PaymentProvider:
    return MolliePaymentProvider(settings.mollie_api_key, settings.mollie_api_base)
