"""Celery application configuration for the Portraitdex worker."""

import os

from celery import Celery
from celery.signals import setup_logging

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")
FETCH_INTERVAL_SECONDS = float(os.getenv("FETCH_INTERVAL_SECONDS", "900"))

app = Celery(
    "portraitdex_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "portraitdex_worker.tasks.fetch",
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
    # A crashed run is picked up by the next beat tick, not redelivered
    task_acks_late=False,
    # Queue routing
    task_routes={
        "portraitdex_worker.tasks.fetch.*": {"queue": "fetch"},
        "fetch.*": {"queue": "fetch"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Incremental on-chain sync
    "fetch-portraits-periodic": {
        "task": "fetch.run_sync",
        "schedule": FETCH_INTERVAL_SECONDS,
        "args": (),
    },
}


@setup_logging.connect
def configure_worker_logging(**kwargs) -> None:
    """Use the service log format instead of Celery's default."""
    from portraitdex_core.config import get_settings
    from portraitdex_core.observability.logging import configure_logging

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="portraitdex-worker",
    )


if __name__ == "__main__":
    app.start()
