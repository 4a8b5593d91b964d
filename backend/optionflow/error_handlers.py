"""
Options Flow — Global Exception Handlers

Consistent, structured error responses for the entire API. Every error
follows the same JSON schema: error, status_code, detail, request_id.
"""

from __future__ import annotations

import traceback

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from optionflow.errors import EmptyChain, SourceUnavailable

log = structlog.get_logger(__name__)


def _error_response(request: Request, status_code: int, detail, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "status_code": status_code,
            "detail": detail,
            **extra,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error_response(request, exc.status_code, exc.detail)

    @app.exception_handler(EmptyChain)
    async def empty_chain_handler(request: Request, exc: EmptyChain):
        """No analyzable chain for the ticker → 404."""
        log.info("api.empty_chain", ticker=exc.ticker, rows=exc.row_count)
        return _error_response(request, 404, str(exc), ticker=exc.ticker)

    @app.exception_handler(SourceUnavailable)
    async def source_unavailable_handler(request: Request, exc: SourceUnavailable):
        """Upstream chain source failed → 502."""
        log.warning(
            "api.source_unavailable",
            ticker=exc.ticker,
            cause=exc.cause,
            upstream_status=exc.status_code,
        )
        return _error_response(request, 502, str(exc), ticker=exc.ticker)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Pydantic validation errors → 422 with field details."""
        errors = [
            {
                "field": " → ".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", ""),
                "type": err.get("type", ""),
            }
            for err in exc.errors()
        ]
        log.warning("validation_error", path=str(request.url.path), errors=errors)
        return _error_response(request, 422, "Validation error", errors=errors)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        """Catch-all for unhandled exceptions → 500 with safe details."""
        log.error(
            "unhandled_exception",
            path=str(request.url.path),
            method=request.method,
            error=str(exc),
            traceback=traceback.format_exc(),
        )
        return _error_response(request, 500, "Internal server error")
