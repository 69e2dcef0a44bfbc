"""
Celery Application Configuration
"""
from celery import Celery

from tollvault.core.config import settings

celery_app = Celery(
    "tollvault",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["tollvault.workers.tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.REPORT_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=120,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)
