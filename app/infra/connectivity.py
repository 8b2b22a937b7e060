# app/infra/connectivity.py
"""
Online / offline tracking for the advisory banner.

The monitor is seeded from the platform's current signal and then follows
transition events, either pushed (``set_online`` / ``set_offline``) or
polled (``start`` runs a probe loop).  It never blocks submissions.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional

import aiohttp

from app.config import settings
from app.infra.http_client import get_probe_session
from app.infra.logging_config import get_logger
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)

Probe = Callable[[], Awaitable[bool]]
Listener = Callable[[bool], None]


async def http_probe(url: str | None = None) -> bool:
    """True if the gateway health endpoint answers without a server error."""
    target = url or settings.effective_probe_url
    try:
        session = get_probe_session()
        async with session.get(target) as resp:
            return resp.status < 500
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.debug(f"Connectivity probe failed: {exc.__class__.__name__}")
        return False


class ConnectivityMonitor:
    def __init__(self, initial_online: bool = True) -> None:
        self._online = initial_online
        self._listeners: list[Listener] = []
        self._task: Optional[asyncio.Task] = None

    @classmethod
    async def from_probe(cls, probe: Probe = http_probe) -> "ConnectivityMonitor":
        """Seed the state from one probe call."""
        return cls(initial_online=await _safe_probe(probe))

    @property
    def is_online(self) -> bool:
        return self._online

    @property
    def is_offline(self) -> bool:
        return not self._online

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_online(self) -> None:
        self._transition(True)

    def set_offline(self) -> None:
        self._transition(False)

    def _transition(self, online: bool) -> None:
        if online == self._online:
            return
        self._online = online
        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")
        AppMetrics.connectivity_changed(online)
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception:
                logger.error("Connectivity listener failed", exc_info=True)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def watch(self, probe: Probe = http_probe, interval: float | None = None) -> None:
        """Poll ``probe`` forever, applying transitions."""
        delay = interval if interval is not None else settings.connectivity_probe_interval
        while True:
            self._transition(await _safe_probe(probe))
            await asyncio.sleep(delay)

    def start(self, probe: Probe = http_probe, interval: float | None = None) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.watch(probe, interval))
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None


async def _safe_probe(probe: Probe) -> bool:
    try:
        return bool(await probe())
    except Exception:
        logger.warning("Connectivity probe raised; assuming offline", exc_info=True)
        return False
