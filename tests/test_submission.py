# tests/test_submission.py
"""Tests for the preview / confirm / submit state machine"""
import asyncio

import pytest

from app.core.dispatch.domain import SubmissionOutcome, SubmissionState
from app.core.dispatch.errors import (
    InvalidTransitionError,
    LedgerResponseError,
    LedgerTransportError,
)
from app.core.dispatch.session import DispatchSession
from app.core.dispatch.submission import GENERIC_FAILURE_NOTICE, SUCCESS_NOTICE
from conftest import MockConnectivity, MockLedgerClient


async def _ready_session(cache, ledger, today, **kwargs) -> DispatchSession:
    session = await DispatchSession.create(
        cache=cache, ledger=ledger, today=today, active="oil", prefetch=False, **kwargs
    )
    session.set_field("serialNo", "S-42")
    session.set_field("20L", "10")
    session.set_field("10L", "5")
    await session.flush()
    return session


async def _to_confirming(session: DispatchSession) -> None:
    assert session.controller.request_preview() == {}
    session.controller.confirm()


class TestPreviewGate:
    @pytest.mark.asyncio
    async def test_invalid_draft_stays_editing(self, memory_cache, ledger, today):
        session = await DispatchSession.create(cache=memory_cache, ledger=ledger, today=today, prefetch=False)
        errors = session.controller.request_preview()

        assert errors == {"serialNo": "Serial No is required"}
        assert session.controller.state is SubmissionState.EDITING
        assert session.active_store.errors == errors
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_preview_shows_rows(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        assert session.controller.request_preview() == {}
        assert session.controller.state is SubmissionState.PREVIEWING
        rows = dict(session.controller.preview_rows())
        assert rows["Serial No"] == "S-42"
        assert rows["Total MT"] == "0.23"

    @pytest.mark.asyncio
    async def test_cancel_returns_to_editing_with_draft_intact(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        before = session.active_store.snapshot()
        session.controller.request_preview()
        session.controller.cancel_preview()
        assert session.controller.state is SubmissionState.EDITING
        assert session.active_store.record == before

    @pytest.mark.asyncio
    async def test_cancel_from_confirming(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        await _to_confirming(session)
        session.controller.cancel_preview()
        assert session.controller.state is SubmissionState.EDITING


class TestSubmit:
    @pytest.mark.asyncio
    async def test_happy_path(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        assert "oilDispatchForm" in memory_cache.entries

        await _to_confirming(session)
        attempt = await session.controller.submit()

        assert attempt.outcome is SubmissionOutcome.SUCCESS
        assert attempt.notice == SUCCESS_NOTICE
        assert session.controller.state is SubmissionState.SUCCEEDED

        payload = ledger.submitted[0]
        assert payload["type"] == "oil_dispatch"
        assert payload["serialNo"] == "S-42"
        assert payload["mt"] == "0.23"

        # Draft cleared, cache entry gone
        assert session.active_store.record.headers["serialNo"] == ""
        assert session.active_store.record.total == "0.00"
        assert "oilDispatchForm" not in memory_cache.entries

        session.controller.acknowledge()
        assert session.controller.state is SubmissionState.EDITING

    @pytest.mark.asyncio
    async def test_doc_payload_uses_doc_tag(self, memory_cache, ledger, today):
        session = await DispatchSession.create(
            cache=memory_cache, ledger=ledger, today=today, active="doc", prefetch=False
        )
        session.set_field("ticketNo", "T-1")
        session.set_field("soyaDocMT", "10.5")
        session.set_field("sunflowerDocMT", "5.25")
        await _to_confirming(session)
        await session.controller.submit()

        assert ledger.submitted[0]["type"] == "doc_dispatch"
        assert ledger.submitted[0]["totalMT"] == "15.75"

    @pytest.mark.asyncio
    async def test_rejection_preserves_draft_and_cache(self, memory_cache, today):
        ledger = MockLedgerClient(response={"status": 500, "message": "Sheet locked"})
        session = await _ready_session(memory_cache, ledger, today)
        cached_before = memory_cache.entries["oilDispatchForm"]
        draft_before = session.active_store.snapshot()

        await _to_confirming(session)
        attempt = await session.controller.submit()
        await session.flush()

        assert attempt.outcome is SubmissionOutcome.FAILURE
        assert attempt.notice == "Sheet locked"
        assert session.controller.state is SubmissionState.FAILED
        assert session.active_store.record == draft_before
        assert memory_cache.entries["oilDispatchForm"] == cached_before

    @pytest.mark.asyncio
    async def test_rejection_without_message_uses_generic_notice(self, memory_cache, today):
        ledger = MockLedgerClient(response={"status": 403})
        session = await _ready_session(memory_cache, ledger, today)
        await _to_confirming(session)
        attempt = await session.controller.submit()
        assert attempt.notice == GENERIC_FAILURE_NOTICE

    @pytest.mark.parametrize("error", [
        LedgerTransportError("connection refused"),
        LedgerResponseError("Ledger response is not JSON"),
        RuntimeError("unexpected"),
    ])
    @pytest.mark.asyncio
    async def test_transport_and_malformed_failures(self, memory_cache, today, error):
        ledger = MockLedgerClient(error=error)
        session = await _ready_session(memory_cache, ledger, today)
        await _to_confirming(session)
        attempt = await session.controller.submit()

        assert attempt.outcome is SubmissionOutcome.FAILURE
        assert attempt.notice == GENERIC_FAILURE_NOTICE
        assert attempt.failure_reason
        assert "oilDispatchForm" in memory_cache.entries

    @pytest.mark.asyncio
    async def test_retry_after_failure_goes_through_gate_again(self, memory_cache, today):
        ledger = MockLedgerClient(error=LedgerTransportError("offline"))
        session = await _ready_session(memory_cache, ledger, today)
        await _to_confirming(session)
        await session.controller.submit()
        session.controller.acknowledge()

        ledger.error = None
        await _to_confirming(session)
        attempt = await session.controller.submit()

        assert attempt.outcome is SubmissionOutcome.SUCCESS
        assert len(ledger.submitted) == 2
        assert ledger.submitted[0] == ledger.submitted[1]

    @pytest.mark.asyncio
    async def test_offline_does_not_block(self, memory_cache, today):
        ledger = MockLedgerClient()
        session = await _ready_session(memory_cache, ledger, today, connectivity=MockConnectivity(False))
        assert session.is_offline
        await _to_confirming(session)
        attempt = await session.controller.submit()
        assert attempt.outcome is SubmissionOutcome.SUCCESS


class TestTransitions:
    @pytest.mark.asyncio
    async def test_submit_requires_confirmation(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        session.controller.request_preview()
        with pytest.raises(InvalidTransitionError):
            await session.controller.submit()
        assert ledger.submitted == []

    @pytest.mark.asyncio
    async def test_confirm_requires_preview(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        with pytest.raises(InvalidTransitionError, match="Cannot confirm while editing"):
            session.controller.confirm()

    @pytest.mark.asyncio
    async def test_acknowledge_requires_outcome(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        with pytest.raises(InvalidTransitionError):
            session.controller.acknowledge()

    @pytest.mark.asyncio
    async def test_second_submit_while_in_flight_refused(self, memory_cache, today):
        release = asyncio.Event()

        class SlowLedger(MockLedgerClient):
            async def submit(self, payload):
                await release.wait()
                return await super().submit(payload)

        ledger = SlowLedger()
        session = await _ready_session(memory_cache, ledger, today)
        await _to_confirming(session)

        first = asyncio.create_task(session.controller.submit())
        await asyncio.sleep(0)
        assert session.controller.is_busy

        with pytest.raises(InvalidTransitionError):
            await session.controller.submit()

        release.set()
        attempt = await first
        assert attempt.outcome is SubmissionOutcome.SUCCESS
        assert len(ledger.submitted) == 1

    @pytest.mark.asyncio
    async def test_edits_refused_outside_editing(self, memory_cache, ledger, today):
        session = await _ready_session(memory_cache, ledger, today)
        session.controller.request_preview()
        with pytest.raises(InvalidTransitionError):
            session.set_field("serialNo", "changed")
        assert session.active_store.record.headers["serialNo"] == "S-42"


class TestFailurePreservesFileCache:
    @pytest.mark.asyncio
    async def test_cache_file_byte_identical_after_failure(self, tmp_path, today):
        from app.infra.local_cache import FileDraftCache

        cache = FileDraftCache(tmp_path)
        ledger = MockLedgerClient(error=LedgerTransportError("connection reset"))
        session = await _ready_session(cache, ledger, today)
        path = cache.path_for("oil")
        before = path.read_bytes()

        await _to_confirming(session)
        await session.controller.submit()
        session.controller.acknowledge()
        await session.dispose()

        assert path.read_bytes() == before
