"""FastAPI middleware for request tracking, timing, and error handling.

Adds:
- X-Request-ID header (generated if not provided)
- X-Process-Time header (request duration)
- Structured logging per request
- Global exception handler
"""

import logging
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.config import get_settings
from core.logging_config import bind_flow_context, clear_flow_context

logger = logging.getLogger(__name__)


class RequestTrackingMiddleware(BaseHTTPMiddleware):
    """Add request ID and timing to every request/response."""

    async def dispatch(self, request: Request, call_next):
        # Generate or extract request ID
        request_id = request.headers.get("X-Request-ID", str(uuid4()))

        # Attach to request state for downstream access
        request.state.request_id = request_id
        clear_flow_context()
        bind_flow_context(request_id=request_id)

        # Start timing
        start_time = time.monotonic()

        # Process request
        try:
            response = await call_next(request)
        except Exception as exc:
            # Catch unhandled exceptions
            duration_ms = (time.monotonic() - start_time) * 1000
            settings = get_settings()
            logger.error(
                "Unhandled exception",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round(duration_ms, 2),
                    "error": str(exc),
                },
                exc_info=True,
            )
            # In production, don't expose error details to client
            if settings.is_production:
                error_detail = "Internal server error"
            else:
                error_detail = str(exc) or "Internal server error"

            return JSONResponse(
                status_code=500,
                content={
                    "detail": error_detail,
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )

        # Calculate duration
        duration_ms = (time.monotonic() - start_time) * 1000

        # Add headers to response
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{duration_ms:.2f}ms"

        # Log request
        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if request.url.path not in ("/api/v1/health", "/health"):
            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code} ({duration_ms:.0f}ms)",
                extra={
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                    "client_ip": request.client.host if request.client else None,
                },
            )

        return response


def setup_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    from core.exceptions import FlowEngineError

    @app.exception_handler(FlowEngineError)
    async def flow_engine_error_handler(request: Request, exc: FlowEngineError):
        if exc.status_code >= 500:
            logger.error(f"Flow engine error: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "detail": exc.message,
                "error": type(exc).__name__,
                "request_id": getattr(request.state, "request_id", None),
            },
        )
