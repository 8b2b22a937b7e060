# tests/test_connectivity.py
"""Tests for the online/offline monitor"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from app.infra.connectivity import ConnectivityMonitor, http_probe


class TestTransitions:
    def test_seeded_state(self):
        assert ConnectivityMonitor().is_online
        monitor = ConnectivityMonitor(initial_online=False)
        assert monitor.is_offline

    def test_listeners_notified_on_change_only(self):
        monitor = ConnectivityMonitor()
        events = []
        monitor.subscribe(events.append)

        monitor.set_online()  # no change
        monitor.set_offline()
        monitor.set_offline()  # no change
        monitor.set_online()

        assert events == [False, True]

    def test_unsubscribe(self):
        monitor = ConnectivityMonitor()
        events = []
        unsubscribe = monitor.subscribe(events.append)
        unsubscribe()
        unsubscribe()  # idempotent
        monitor.set_offline()
        assert events == []

    def test_failing_listener_does_not_stop_others(self):
        monitor = ConnectivityMonitor()
        events = []

        def broken(_online):
            raise RuntimeError("listener bug")

        monitor.subscribe(broken)
        monitor.subscribe(events.append)
        monitor.set_offline()

        assert monitor.is_offline
        assert events == [False]


class TestProbing:
    @pytest.mark.asyncio
    async def test_from_probe(self):
        monitor = await ConnectivityMonitor.from_probe(AsyncMock(return_value=False))
        assert monitor.is_offline

    @pytest.mark.asyncio
    async def test_raising_probe_means_offline(self):
        monitor = await ConnectivityMonitor.from_probe(AsyncMock(side_effect=RuntimeError("dns")))
        assert monitor.is_offline

    @pytest.mark.asyncio
    async def test_watch_loop_applies_transitions(self):
        results = iter([False, False, True])
        seen = asyncio.Event()
        events = []

        async def probe():
            return next(results, True)

        monitor = ConnectivityMonitor()

        def on_change(online):
            events.append(online)
            if online:
                seen.set()

        monitor.subscribe(on_change)
        monitor.start(probe, interval=0)
        await asyncio.wait_for(seen.wait(), timeout=1)
        await monitor.stop()

        assert events == [False, True]

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await ConnectivityMonitor().stop()


class TestHttpProbe:
    @pytest.mark.asyncio
    async def test_client_error_is_offline(self):
        session = MagicMock()
        session.get.side_effect = aiohttp.ClientConnectionError("refused")
        with patch("app.infra.connectivity.get_probe_session", return_value=session):
            assert await http_probe("http://gateway.test/health") is False

    @pytest.mark.asyncio
    async def test_healthy_response_is_online(self):
        resp = MagicMock()
        resp.status = 200
        session = MagicMock()
        session.get.return_value.__aenter__.return_value = resp
        with patch("app.infra.connectivity.get_probe_session", return_value=session):
            assert await http_probe("http://gateway.test/health") is True

    @pytest.mark.asyncio
    async def test_server_error_is_offline(self):
        resp = MagicMock()
        resp.status = 502
        session = MagicMock()
        session.get.return_value.__aenter__.return_value = resp
        with patch("app.infra.connectivity.get_probe_session", return_value=session):
            assert await http_probe("http://gateway.test/health") is False
