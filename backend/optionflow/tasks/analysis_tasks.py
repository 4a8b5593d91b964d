"""
Options Flow — Scheduled Analysis Tasks

Celery entry point for the periodic batch. The orchestrator is async, so
the task drives it with asyncio.run inside the worker process.
"""

from __future__ import annotations

import asyncio

import structlog
from celery.exceptions import SoftTimeLimitExceeded

from optionflow.config import get_settings
from optionflow.engines.batch_orchestrator import run_scheduled_analysis
from optionflow.tasks.celery_app import celery_app

log = structlog.get_logger(__name__)


@celery_app.task(bind=True, soft_time_limit=get_settings().task_soft_time_limit)
def analyze_tracked_tickers(self) -> dict:
    """Analyze every ticker on the master list and store the results.

    Runs every `analysis_interval_seconds` via beat schedule. Never retried:
    the next scheduled run picks up where this one left off.
    """
    try:
        asyncio.run(run_scheduled_analysis())
    except SoftTimeLimitExceeded:
        log.error("task.analysis.soft_time_limit", task_id=self.request.id)
        return {"status": "timeout"}

    log.info("task.analysis.complete", task_id=self.request.id)
    return {"status": "ok"}
