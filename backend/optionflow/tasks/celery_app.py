"""
Options Flow — Celery Application Factory

Creates a Celery app with Redis broker and result backend. The beat
schedule triggers one analysis batch over the tracked tickers per interval.
"""

from __future__ import annotations

from celery import Celery

from optionflow.config import get_settings


def make_celery() -> Celery:
    """Create and configure the Celery application.

    Uses Redis from settings as both broker and result backend.
    """
    settings = get_settings()

    app = Celery(
        "optionflow",
        broker=settings.redis_url,
        backend=settings.redis_url,
        include=["optionflow.tasks.analysis_tasks"],
    )

    app.conf.update(
        # Serialization
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone="UTC",
        enable_utc=True,

        # Reliability
        task_acks_late=True,
        worker_prefetch_multiplier=1,
        task_reject_on_worker_lost=True,

        # Result expiry
        result_expires=3600,  # 1 hour

        beat_schedule={
            "analyze-tracked-tickers": {
                "task": "optionflow.tasks.analysis_tasks.analyze_tracked_tickers",
                "schedule": settings.analysis_interval_seconds,  # default: 1800s
            },
        },
    )

    return app


# Module-level instance for imports
celery_app = make_celery()
