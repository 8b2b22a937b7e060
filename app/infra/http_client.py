# app/infra/http_client.py
"""
Shared HTTP client sessions for the application.

Provides named, lazy-initialized aiohttp.ClientSession singletons
to avoid per-request session creation overhead and TCP connection churn.

Session profiles
~~~~~~~~~~~~~~~~
- **upstream** – gateway → remote ledger (settings.upstream_* timeouts, pool limit=20)
- **ledger**   – form client → gateway  (settings.client_timeout_seconds, pool limit=5)
- **probe**    – connectivity checks    (total=5 s, connect=3 s, pool limit=2)

Shutdown
~~~~~~~~
Call ``close_all_sessions()`` once during application shutdown.
"""
from __future__ import annotations

import aiohttp

from app.config import settings
from app.infra.logging_config import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------

_sessions: dict[str, aiohttp.ClientSession] = {}


def _get_or_create(
    name: str,
    timeout: aiohttp.ClientTimeout,
    limit: int = 10,
) -> aiohttp.ClientSession:
    """Return an existing session or create a new one."""
    session = _sessions.get(name)
    if session is None or session.closed:
        session = aiohttp.ClientSession(
            timeout=timeout,
            connector=aiohttp.TCPConnector(
                keepalive_timeout=30,
                limit=limit,
                enable_cleanup_closed=True,
            ),
        )
        _sessions[name] = session
        logger.debug("HTTP session '%s' created (limit=%d)", name, limit)
    return session


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_upstream_session() -> aiohttp.ClientSession:
    """Session used by the gateway to reach the remote ledger."""
    return _get_or_create(
        "upstream",
        aiohttp.ClientTimeout(
            total=settings.upstream_timeout_seconds,
            connect=settings.upstream_connect_timeout_seconds,
        ),
        limit=20,
    )


def get_ledger_session() -> aiohttp.ClientSession:
    """Session used by form clients to talk to the gateway."""
    return _get_or_create(
        "ledger",
        aiohttp.ClientTimeout(total=settings.client_timeout_seconds, connect=5),
        limit=5,
    )


def get_probe_session() -> aiohttp.ClientSession:
    """Short-timeout session for connectivity probes."""
    return _get_or_create(
        "probe",
        aiohttp.ClientTimeout(total=5, connect=3),
        limit=2,
    )


async def close_all_sessions() -> None:
    """Gracefully close every managed session.  Call during app shutdown."""
    for name in list(_sessions):
        session = _sessions.pop(name, None)
        if session is not None and not session.closed:
            await session.close()
            logger.debug("HTTP session '%s' closed", name)
