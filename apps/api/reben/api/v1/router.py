from fastapi import APIRouter

from reben.api.v1.endpoints import analysis, events, integrations, notifications, webhooks

router = APIRouter()
router.include_router(events.router)
router.include_router(webhooks.router)
router.include_router(integrations.router)
router.include_router(notifications.router)
router.include_router(analysis.router)
