"""Celery application configuration for the Outreach Ledger worker."""

from celery import Celery
from celery.schedules import crontab

from outreach_core.config import get_settings

settings = get_settings()

app = Celery(
    "outreach_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "outreach_worker.tasks.maintenance",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds)
    task_soft_time_limit=300,  # 5 minutes
    task_time_limit=600,  # 10 minutes
    # Queue routing
    task_routes={
        "maintenance.*": {"queue": "maintenance"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Daily failure record cleanup at 2 AM UTC
    "daily-failure-records-cleanup": {
        "task": "maintenance.purge_failure_records",
        "schedule": crontab(hour=2, minute=0),
        "args": (),
    },
}


if __name__ == "__main__":
    app.start()
