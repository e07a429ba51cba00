from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field


class ProviderPayment(BaseModel):
    """Subset of a Mollie payment resource used by the reconciler."""

    id: str
    status: str
    amount: Decimal = Decimal("0")
    currency: str = "EUR"
    paid_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    checkout_url: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ProviderPayment":
        amount = data.get("amount") or {}
        links = data.get("_links") or {}
        checkout = links.get("checkout") or {}
        return cls(
            id=data["id"],
            status=data.get("status", ""),
            amount=Decimal(str(amount.get("value", "0"))),
            currency=amount.get("currency", "EUR"),
            paid_at=data.get("paidAt"),
            metadata=data.get("metadata") or {},
            checkout_url=checkout.get("href"),
        )
