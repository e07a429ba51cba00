"""Payment provider callbacks.

Both endpoints always answer 200 so the provider does not retry; failures are
logged and the payment state is re-checked on the next delivery.
"""

import json
import logging
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.payment_provider import PaymentProvider, get_payment_provider
from ..services.payments import reconcile_contribution, reconcile_donation

router = APIRouter()
logger = logging.getLogger(__name__)


async def _payment_id(request: Request) -> str | None:
    content_type = request.headers.get("content-type", "")
    body = await request.body()
    try:
        if "application/json" in content_type:
            payload = json.loads(body)
            value = payload.get("id") if isinstance(payload, dict) else None
        else:
            value = parse_qs(body.decode("utf-8")).get("id", [None])[0]
    except ValueError:
        logger.warning("Unreadable webhook body (%s)", content_type)
        return None
    value = str(value).strip() if value else ""
    return value or None


@router.post("/webhooks/mollie", response_class=PlainTextResponse)
async def donation_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> PlainTextResponse:
    payment_id = await _payment_id(request)
    logger.info("Donation webhook received for payment %s", payment_id)
    if not payment_id:
        logger.warning("Donation webhook without payment id")
        return PlainTextResponse("OK")
    try:
        result = reconcile_donation(db, provider, payment_id)
    except Exception:
        db.rollback()
        logger.exception("Donation webhook for payment %s failed", payment_id)
        return PlainTextResponse("OK")
    if result:
        logger.info("Donation %s is now %s", result.record_id, result.status)
    return PlainTextResponse("OK")


@router.post("/webhooks/contributions", response_class=PlainTextResponse)
async def contribution_webhook(
    request: Request,
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
) -> PlainTextResponse:
    payment_id = await _payment_id(request)
    logger.info("Contribution webhook received for payment %s", payment_id)
    if not payment_id:
        logger.warning("Contribution webhook without payment id")
        return PlainTextResponse("OK")
    try:
        result = reconcile_contribution(db, provider, payment_id)
    except Exception:
        db.rollback()
        logger.exception("Contribution webhook for payment %s failed", payment_id)
        return PlainTextResponse("OK")
    if result:
        logger.info("Contribution %s is now %s", result.record_id, result.status)
    return PlainTextResponse("OK")
