# app/transport/middleware.py
"""
Request middleware for the ledger gateway.

Stack, outermost first: RequestIDMiddleware, RequestLoggingMiddleware,
ErrorHandlingMiddleware.  Any exception a route lets escape is answered
here as ``500 {"error": ..., "request_id": ...}``, the same ``error`` shape
the gateway returns for upstream faults.
"""
from __future__ import annotations

import time
import uuid
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by every form client's connectivity monitor
QUIET_PATHS = frozenset({"/health"})


def request_id_of(request: Request, default: str | None = None) -> str | None:
    return getattr(request.state, "request_id", default)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag each request with the caller's X-Request-ID, or a fresh one, and echo it back"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line and one timing sample per request; /health is not logged"""

    def __init__(self, app: ASGIApp, enabled: bool = True):
        super().__init__(app)
        self.enabled = enabled

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self.enabled or request.url.path in QUIET_PATHS:
            return await call_next(request)

        start = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start
        AppMetrics.http_request(request.method, response.status_code, duration)

        log_ctx = LogContext(logger, request_id=request_id_of(request, "unknown"))
        emit = log_ctx.warning if response.status_code >= 500 else log_ctx.info
        emit(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({duration * 1000:.1f}ms)",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration * 1000,
                "client_ip": request.client.host if request.client else None,
            }
        )
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Last-resort handler: unhandled exceptions become a JSON 500"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            request_id = request_id_of(request, "unknown")
            LogContext(logger, request_id=request_id).error(
                f"Unhandled {exc.__class__.__name__} on {request.method} {request.url.path}",
                extra={"error_type": exc.__class__.__name__},
                exc_info=True
            )
            AppMetrics.unhandled_error(request.method)
            # Internal details stay in the log
            return JSONResponse(
                status_code=500,
                content={"error": "Internal server error", "request_id": request_id},
            )
