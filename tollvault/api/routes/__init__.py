"""
API Routes
"""
from fastapi import APIRouter

from tollvault.api.routes.analytics import router as analytics_router
from tollvault.api.routes.uploads import router as uploads_router
from tollvault.api.webhooks.telegram import router as telegram_router

router = APIRouter()

router.include_router(analytics_router, tags=["analytics"])
router.include_router(uploads_router, tags=["uploads"])
router.include_router(telegram_router, prefix="/telegram", tags=["webhooks"])
