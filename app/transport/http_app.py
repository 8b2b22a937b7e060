# app/transport/http_app.py
"""
HTTP application: the remote ledger gateway plus operational endpoints.

Routes:
1. Gateway: GET/POST under settings.api_prefix, forwarded to the ledger
2. Health: /health (public)
3. Metrics: /metrics (when enable_metrics)

CORS accepts every origin by default.  The form client is served from
arbitrary field devices, so this is an accepted trust decision for this
deployment; it is reported by warn_on_risky_config at startup.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.infra.http_client import close_all_sessions
from app.infra.logging_config import setup_logging, get_logger
from app.infra.metrics import get_metrics_collector
from app.transport.gateway import router as gateway_router
from app.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
)

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    # STARTUP
    logger.info(f"Starting ledger gateway: env={settings.app_env}")

    if settings.is_production:
        missing = settings.validate_required_for_production()
        if missing:
            logger.critical(f"Missing required production settings: {missing}")
            raise RuntimeError(f"Missing production config: {missing}")

        if settings.log_level.upper() == "DEBUG":
            logger.critical("LOG_LEVEL=DEBUG is not allowed in production")
            raise RuntimeError("LOG_LEVEL=DEBUG in production")

    logger.info(
        f"Gateway routes: {settings.normalized_api_prefix} -> {settings.ledger_upstream_url}"
    )
    if settings.allowed_origins == ["*"]:
        logger.warning("CORS accepts every origin (allowed_origins=['*'])")

    logger.info("Application startup complete")

    yield

    # SHUTDOWN
    logger.info("Shutting down application")
    await close_all_sessions()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="Dispatch Ledger Gateway",
    description="Same-origin proxy between dispatch forms and the remote ledger",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

_wildcard_origins = settings.allowed_origins == ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    # Browsers reject credentials with a wildcard origin
    allow_credentials=not _wildcard_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with appropriate logging"""
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/health")
def health():
    """
    Basic health check - PUBLIC endpoint.
    Also used by form clients as their connectivity probe.
    """
    return {"status": "healthy"}


if settings.enable_metrics:
    @app.get("/metrics")
    def metrics():
        """Operational counters: forwards, upstream latency, gateway errors."""
        return get_metrics_collector().get_metrics()


# ============================================================================
# GATEWAY
# ============================================================================

if not settings.normalized_api_prefix:
    raise RuntimeError("api_prefix must not be empty: the gateway needs its own path prefix")

app.include_router(gateway_router, prefix=settings.normalized_api_prefix)
