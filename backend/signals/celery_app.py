"""
Celery app for the signals pipeline.

Email runs and listing scrapes go to separate queues so slow job boards never
hold up decisioning. Run a worker with ``-Q signals,scrape`` (or one per queue).
"""
from celery import Celery

from .config import settings

SIGNALS_QUEUE = "signals"
SCRAPE_QUEUE = "scrape"

celery_app = Celery(
    "signals",
    broker=settings.celery_broker,
    backend=settings.redis_url,
    include=["signals.tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_default_queue=SIGNALS_QUEUE,
    task_routes={
        "signals.tasks.process_email_signals": {"queue": SIGNALS_QUEUE},
        "signals.tasks.scrape_job_listing": {"queue": SCRAPE_QUEUE},
    },
    # A run holds a DB session for its whole plan; one message per worker process at a time.
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    result_expires=24 * 3600,
)
