from fastapi import APIRouter

from .contributions import router as contributions_router
from .events import public_router as agenda_router
from .events import router as events_router
from .finance import router as finance_router
from .invoices import router as invoices_router
from .mailing import router as mailing_router
from .members import router as members_router
from .portal import router as portal_router
from .webhooks import router as webhooks_router

api_router = APIRouter()
api_router.include_router(members_router, tags=["members"])
api_router.include_router(invoices_router, tags=["invoices"])
api_router.include_router(contributions_router, tags=["contributions"])
api_router.include_router(events_router, tags=["events"])
api_router.include_router(finance_router, tags=["finance"])
api_router.include_router(mailing_router, tags=["mailing"])
api_router.include_router(portal_router, tags=["portal"])
api_router.include_router(agenda_router, tags=["agenda"])
api_router.include_router(webhooks_router, tags=["webhooks"])
