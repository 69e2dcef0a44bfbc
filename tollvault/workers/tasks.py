"""
Celery Tasks - upload notifications sent outside the request
"""
import asyncio
from contextlib import contextmanager
from typing import Any

from fastapi import BackgroundTasks

from tollvault.core.config import settings
from tollvault.core.logging import get_logger, set_correlation_id
from tollvault.domain.services import telegram_service
from tollvault.domain.services.ingestion_service import UploadSummary
from tollvault.workers.celery_app import celery_app

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """Fresh event loop per task, with pending tasks cancelled on exit"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Run async code from a sync Celery task"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="tollvault.workers.tasks.send_upload_report")
def send_upload_report(summary_data: dict[str, Any]):
    """Deliver the Telegram upload report for a finished ingestion"""
    summary = UploadSummary.from_dict(summary_data)

    async def _send():
        delivered = await telegram_service.send_upload_report(summary)
        return {"delivered": delivered, "filename": summary.filename}

    return run_async(_send())


def schedule_upload_report(summary: UploadSummary, background_tasks: BackgroundTasks) -> None:
    """
    Hand the upload report off without waiting for it.

    Goes through Celery when CELERY_NOTIFICATIONS_ENABLED, otherwise runs as a
    FastAPI background task after the response. Enqueue failures are logged.
    """
    if settings.CELERY_NOTIFICATIONS_ENABLED:
        try:
            send_upload_report.delay(summary.to_dict())
            return
        except Exception as e:
            logger.error(
                "Failed to enqueue upload report",
                extra_data={"upload_filename": summary.filename, "error": str(e)},
                exc_info=True,
            )
            return

    background_tasks.add_task(telegram_service.send_upload_report, summary)
