"""
Options Flow — FastAPI Application Entry Point

The API server: ticker lists, analysis history, the quote pass-through and
on-demand analysis runs. Scheduled batches run in the Celery worker.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from optionflow.config import get_settings
from optionflow.error_handlers import register_error_handlers
from optionflow.middleware.request_logger import RequestLoggerMiddleware
from optionflow.routes import analysis_router, health_router, history_router, tickers_router

log = structlog.get_logger("optionflow.startup")

API_V1 = "/v1/api"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    settings = get_settings()
    log.info(
        "startup",
        env=settings.app_env,
        redis=settings.redis_url,
        history_db=settings.history_db_path,
    )

    # ── History store: ensure schema ──
    try:
        from optionflow.db.history_store import get_history_store
        get_history_store().ensure_table()
        log.info("history.ready")
    except Exception as exc:
        log.warning("history.init_failed", error=str(exc))

    # ── Redis: warm connection ──
    from optionflow.cache import get_cache
    if get_cache().available:
        log.info("redis.ready", url=settings.redis_url)
    else:
        log.warning("redis.unavailable", detail="ticker lists kept in process memory")

    yield

    log.info("shutdown")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    app = FastAPI(
        title="Options Flow",
        description="Single-expiration options flow analysis: Layer-2 metrics, "
                    "max pain and a rule-based narrative per tracked ticker.",
        version="1.0.0",
        debug=settings.app_debug,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "Health", "description": "Service health checks"},
            {"name": "Tickers", "description": "Tracked ticker lists"},
            {"name": "History", "description": "Stored analysis records"},
            {"name": "Analysis", "description": "Quote pass-through and on-demand runs"},
        ],
    )

    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggerMiddleware)

    app.include_router(health_router, prefix=API_V1, tags=["Health"])
    app.include_router(tickers_router, prefix=API_V1, tags=["Tickers"])
    app.include_router(history_router, prefix=API_V1, tags=["History"])
    app.include_router(analysis_router, prefix=API_V1, tags=["Analysis"])

    return app


app = create_app()
