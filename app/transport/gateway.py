# app/transport/gateway.py
"""
Remote ledger gateway.

Same-origin routes under ``settings.api_prefix`` forwarded to the single
fixed upstream endpoint (``settings.ledger_upstream_url``):

- ``GET  /api[/<suffix>]?<query>`` → ``<upstream><suffix>?<query>``
- ``POST /api[/<suffix>]``          → ``<upstream>`` (suffix ignored), body
  re-serialized as JSON with ``Content-Type: application/json``

The upstream status and body are relayed verbatim.  The response is JSON
when the upstream ``content-type`` mentions ``application/json`` and plain
text otherwise.  Transport failures never escape: they become
``500 {"error": "<message>"}``.
"""
from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from app.config import settings
from app.infra.http_client import get_upstream_session
from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import AppMetrics
from app.transport.middleware import request_id_of

logger = get_logger(__name__)

router = APIRouter(tags=["gateway"])


# ============================================================================
# HELPERS
# ============================================================================

def build_upstream_url(suffix: str = "", query: str = "") -> str:
    """Fixed upstream endpoint + path suffix + original query string."""
    url = settings.ledger_upstream_url + suffix
    if query:
        url += "?" + query
    return url


def strip_prefix(path: str) -> str:
    """Request path with the local API prefix removed (``/api/x`` → ``/x``)."""
    prefix = settings.normalized_api_prefix
    if prefix and path.startswith(prefix):
        return path[len(prefix):]
    return path


def relay_response(status: int, content_type: str | None, body: str) -> Response:
    """Relay upstream status/body, typed by sniffing the upstream content-type."""
    if content_type and "application/json" in content_type.lower():
        return Response(content=body, status_code=status, media_type="application/json")
    return PlainTextResponse(content=body, status_code=status)


def gateway_error(exc: Exception) -> JSONResponse:
    """Fixed-shape error for faults between the gateway and the upstream."""
    if settings.is_production:
        message = "Upstream request failed"
    else:
        message = str(exc) or exc.__class__.__name__
    return JSONResponse(status_code=500, content={"error": message})


async def _forward(
    request: Request,
    method: str,
    url: str,
    *,
    body: Any = None,
) -> Response:
    log = LogContext(logger, request_id=request_id_of(request))
    log.info(f"[{method}] Proxying to: {url}")

    kwargs: dict[str, Any] = {}
    if method == "POST":
        kwargs["data"] = json.dumps(body)
        kwargs["headers"] = {"Content-Type": "application/json"}

    try:
        session = get_upstream_session()
        with AppMetrics.track_upstream_time(method):
            async with session.request(method, url, **kwargs) as resp:
                content_type = resp.headers.get("content-type")
                text = await resp.text(errors="replace")
                status = resp.status
    except Exception as exc:
        log.error(f"[{method}] Proxy error: {exc.__class__.__name__}: {exc}", exc_info=True)
        AppMetrics.gateway_error(method)
        return gateway_error(exc)

    AppMetrics.gateway_forwarded(method, status)
    if status >= 400:
        log.warning(f"[{method}] Upstream responded with status {status}: {text[:300]}")
    else:
        log.info(f"[{method}] Upstream responded with status {status}")

    return relay_response(status, content_type, text)


async def _read_json_body(request: Request) -> Any:
    """Request body as JSON regardless of its declared content type; empty → {}."""
    raw = await request.body()
    if not raw.strip():
        return {}
    return json.loads(raw)


# ============================================================================
# ROUTES
# ============================================================================

@router.get("")
@router.get("/{suffix:path}")
async def proxy_get(request: Request):
    url = build_upstream_url(strip_prefix(request.url.path), request.url.query)
    return await _forward(request, "GET", url)


@router.post("")
@router.post("/{suffix:path}")
async def proxy_post(request: Request):
    try:
        body = await _read_json_body(request)
    except ValueError:
        LogContext(logger, request_id=request_id_of(request)).warning("[POST] Rejected non-JSON body")
        return JSONResponse(status_code=400, content={"error": "Request body is not valid JSON"})

    return await _forward(request, "POST", build_upstream_url(), body=body)
