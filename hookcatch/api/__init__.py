"""
HTTP routers.

Paths are unversioned so that existing webhook senders and the dashboard keep
working: /webhook, /events, /stream, /api/*.
"""

from fastapi import APIRouter

from . import events, stream, system, webhook

router = APIRouter()

router.include_router(webhook.router, tags=["Webhook"])
router.include_router(events.router, prefix="/events", tags=["Events"])
router.include_router(stream.router, tags=["Live feed"])
router.include_router(system.router, tags=["System"])
