"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- A chain endpoint or the profile API
"""

import os
from typing import Any
from unittest.mock import MagicMock

import pytest

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def mock_celery_app():
    """Celery app configured for eager execution."""
    from portraitdex_worker.celery_app import app

    app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
    return app


@pytest.fixture
def mock_redis():
    """Create a mock Redis client that grants the lock."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    return redis


@pytest.fixture
def mock_settings():
    """Create mock application settings."""
    settings = MagicMock()
    settings.redis_url = "redis://localhost:6379/15"
    settings.fetch_job_name = "fetch-job"
    settings.fetch_lock_ttl_seconds = 600
    return settings
