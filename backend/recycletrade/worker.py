"""
Celery application for background order processing.

Start a worker with beat using::

    celery -A recycletrade.worker worker --beat --loglevel=info
"""

from celery import Celery

from recycletrade.core.config import get_settings
from recycletrade.core.logging import configure_logging

settings = get_settings()
configure_logging()

celery_app = Celery(
    "recycletrade",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["recycletrade.services.orders.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    result_expires=3600,
    worker_hijack_root_logger=False,
)

if settings.abandoned_sweep_enabled:
    celery_app.conf.beat_schedule = {
        "sweep-abandoned-orders": {
            "task": "orders.sweep_abandoned_orders",
            "schedule": float(settings.abandoned_sweep_interval_seconds),
        },
    }
