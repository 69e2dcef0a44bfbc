"""
TollVault - Main FastAPI Application
"""
from fastapi import FastAPI

from tollvault.core.config import current_batch_date, settings
from tollvault.core.logging import get_logger, setup_logging
from tollvault.core.middleware import setup_exception_handlers, setup_middleware
from tollvault.api.routes import router as api_router
from tollvault.api.routes.dashboard import router as dashboard_router
from tollvault.db.database import engine
from tollvault.db.migrations import init_ledger_schema

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


_OPENAPI_TAGS = [
    {"name": "analytics", "description": "Revenue, GST and slab totals; period history and Excel export."},
    {"name": "uploads", "description": "CSV ingestion and undo of the latest upload batch."},
    {"name": "webhooks", "description": "Telegram Bot API webhook."},
    {"name": "Health", "description": "Liveness probe."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description="Toll-collection CSV analytics: uploads, de-duplicated storage and revenue reports.",
    openapi_tags=_OPENAPI_TAGS,
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

app.include_router(api_router, prefix="/api")
app.include_router(dashboard_router)


@app.on_event("startup")
async def startup() -> None:
    """Create or upgrade the ledger schema"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    upgraded = await init_ledger_schema(engine, backfill_date=current_batch_date())
    logger.info("Database schema ready", extra_data={"upgraded": upgraded})


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    return {"status": "healthy"}
