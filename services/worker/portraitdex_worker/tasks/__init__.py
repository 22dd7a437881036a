"""Portraitdex Worker Tasks."""

# Import all tasks to register them with Celery
from portraitdex_worker.tasks import fetch  # noqa: F401
