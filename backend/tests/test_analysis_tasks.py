"""
Celery Task Tests

Task registration, beat schedule, and the scheduled analysis task run
eagerly with the orchestrator patched out.
"""

from __future__ import annotations

from celery.exceptions import SoftTimeLimitExceeded

from optionflow.config import get_settings
from optionflow.engines import batch_orchestrator
from optionflow.tasks import analysis_tasks
from optionflow.tasks.celery_app import celery_app


class TestCeleryApp:

    def test_beat_schedule(self):
        entry = celery_app.conf.beat_schedule["analyze-tracked-tickers"]
        assert entry["task"] == "optionflow.tasks.analysis_tasks.analyze_tracked_tickers"
        assert entry["schedule"] == get_settings().analysis_interval_seconds

    def test_json_serialization(self):
        assert celery_app.conf.task_serializer == "json"
        assert celery_app.conf.enable_utc is True

    def test_task_registered(self):
        assert "optionflow.tasks.analysis_tasks.analyze_tracked_tickers" in celery_app.tasks

    def test_soft_time_limit_covers_run_budget(self):
        settings = get_settings()
        limit = analysis_tasks.analyze_tracked_tickers.soft_time_limit
        assert limit > settings.run_timeout_seconds + settings.history_write_timeout


class TestAnalyzeTrackedTickers:

    def test_runs_scheduled_analysis(self, monkeypatch):
        calls = []

        async def fake_run(env=None):
            calls.append(env)

        monkeypatch.setattr(analysis_tasks, "run_scheduled_analysis", fake_run)
        assert analysis_tasks.analyze_tracked_tickers() == {"status": "ok"}
        assert calls == [None]

    def test_soft_time_limit_is_logged_not_raised(self, monkeypatch):
        async def fake_run(env=None):
            raise SoftTimeLimitExceeded()

        monkeypatch.setattr(analysis_tasks, "run_scheduled_analysis", fake_run)
        assert analysis_tasks.analyze_tracked_tickers() == {"status": "timeout"}

    def test_soft_time_limit_inside_batch_reaches_task(self, monkeypatch):
        async def fake_batch(env=None):
            raise SoftTimeLimitExceeded()

        monkeypatch.setattr(batch_orchestrator, "run_batch", fake_batch)
        assert analysis_tasks.analyze_tracked_tickers() == {"status": "timeout"}
