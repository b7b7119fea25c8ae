"""Celery configuration for background tasks."""

from celery import Celery
from common import config

celery_app = Celery(
    "glosa_disputes",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["services.recursos.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=10 * 60,
    task_soft_time_limit=8 * 60,
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "reconcile-disputed-ledger-items": {
        "task": "reconciliar_itens_glosados",
        "schedule": config.LEDGER_RECONCILIATION_INTERVAL,
    },
}
