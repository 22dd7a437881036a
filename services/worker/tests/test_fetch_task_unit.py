"""Unit tests for the periodic fetch task.

Tests cover:
1. Skipping when a previous run holds the lock
2. Returning the run outcome
3. Reporting a crashed run
4. Releasing the lock on every path
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

REDIS_PATCH_PATH = "redis.Redis.from_url"
SETTINGS_PATCH_PATH = "portraitdex_core.config.get_settings"
JOB_PATCH_PATH = "portraitdex_core.domain.services.reconciliation.run_fetch_job"


@pytest.fixture
def patched(mock_redis, mock_settings):
    with patch(REDIS_PATCH_PATH, return_value=mock_redis) as from_url, \
         patch(SETTINGS_PATCH_PATH, return_value=mock_settings), \
         patch(JOB_PATCH_PATH, new_callable=AsyncMock) as run_job:
        yield from_url, run_job


class TestRunSyncTask:
    """Tests for fetch.run_sync."""

    def test_task_is_registered(self, mock_celery_app):
        from portraitdex_worker.tasks.fetch import run_sync

        assert run_sync.name == "fetch.run_sync"
        assert "fetch.run_sync" in mock_celery_app.tasks

    def test_beat_schedule_points_at_task(self, mock_celery_app):
        entry = mock_celery_app.conf.beat_schedule["fetch-portraits-periodic"]

        assert entry["task"] == "fetch.run_sync"

    def test_returns_run_outcome(self, mock_celery_app, patched, mock_redis, mock_settings):
        from portraitdex_worker.tasks.fetch import run_sync

        from_url, run_job = patched
        outcome = MagicMock()
        outcome.to_dict.return_value = {"status": "success", "highest_id_processed": 12}
        run_job.return_value = outcome

        result = run_sync.apply().get()

        assert result == {"status": "success", "highest_id_processed": 12}
        from_url.assert_called_once_with("redis://localhost:6379/15")
        run_job.assert_awaited_once_with(mock_settings)
        mock_redis.eval.assert_called_once()

    def test_skips_when_lock_held(self, mock_celery_app, patched, mock_redis):
        from portraitdex_worker.tasks.fetch import run_sync

        _, run_job = patched
        mock_redis.set.return_value = None

        result = run_sync.apply().get()

        assert result["status"] == "skipped"
        run_job.assert_not_called()
        mock_redis.eval.assert_not_called()

    def test_crash_is_reported_and_lock_released(self, mock_celery_app, patched, mock_redis):
        from portraitdex_worker.tasks.fetch import run_sync

        _, run_job = patched
        run_job.side_effect = RuntimeError("database is locked")

        result = run_sync.apply().get()

        assert result == {"status": "error", "error": "database is locked"}
        mock_redis.eval.assert_called_once()

    def test_lock_uses_job_name_and_ttl(self, mock_celery_app, patched, mock_redis):
        from portraitdex_worker.tasks.fetch import run_sync

        _, run_job = patched
        run_job.return_value = MagicMock(to_dict=MagicMock(return_value={"status": "success"}))

        run_sync.apply().get()

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:fetch-job"
        assert kwargs["ex"] == 600
