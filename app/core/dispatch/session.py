# app/core/dispatch/session.py
"""
DispatchSession - explicit owner of the drafts for one device / tab group.

Lifecycle::

    session = await DispatchSession.create(cache=..., ledger=...)
    session.set_field("serialNo", "42")     # sync; cache write is queued
    ...
    await session.dispose()                 # flushes queued writes

Each form kind gets its own ``FormStore`` (one "tab" per kind); a single
``SubmissionController`` serves whichever tab is active.

Cache writes are fire-and-forget: a mutation records the latest snapshot
for its kind and a single writer task drains them.  A newer snapshot
supersedes an older one that has not been written yet, so the last write
always wins.
"""
from __future__ import annotations

import asyncio
import uuid
from datetime import date
from typing import Callable, Iterable, Optional

from app.core.dispatch.domain import DraftRecord, SubmissionState, ValidationResult
from app.core.dispatch.errors import InvalidTransitionError
from app.core.dispatch.form_store import FormStore
from app.core.dispatch.forms import FormKind, get_schema
from app.core.dispatch.ports import AsyncDraftCache, ConnectivityStatus, LedgerClient
from app.core.dispatch.submission import SubmissionController
from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)


class DispatchSession:
    def __init__(
        self,
        *,
        cache: AsyncDraftCache,
        ledger: LedgerClient,
        connectivity: ConnectivityStatus | None = None,
        kinds: Iterable[FormKind | str] = (FormKind.OIL, FormKind.SOAP, FormKind.DOC),
        active: FormKind | str | None = None,
        today: Optional[Callable[[], date]] = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.cache = cache
        self.ledger = ledger
        self.connectivity = connectivity

        self.stores: dict[FormKind, FormStore] = {}
        for kind in kinds:
            schema = get_schema(kind)
            self.stores[schema.kind] = FormStore(schema.kind, today=today)
        if not self.stores:
            raise ValueError("A dispatch session needs at least one form kind")

        self.active_kind: FormKind = get_schema(active).kind if active else next(iter(self.stores))
        if self.active_kind not in self.stores:
            raise ValueError(f"Active kind '{self.active_kind.value}' is not part of this session")

        self.controller = SubmissionController(ledger=ledger, drafts=self, connectivity=connectivity)

        self._dirty: dict[FormKind, DraftRecord] = {}
        self._writer: Optional[asyncio.Task] = None
        self._needs_prefetch: set[FormKind] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    async def create(cls, *, prefetch: bool = True, **kwargs) -> "DispatchSession":
        """Build a session and hydrate every form from cache (or the ledger)."""
        session = cls(**kwargs)
        await session.hydrate(prefetch=prefetch)
        return session

    async def hydrate(self, *, prefetch: bool = True) -> None:
        """
        Recovery at session start: cached draft first; if absent, a
        best-effort remote lookup for the active form; otherwise defaults.
        Forms in inactive tabs are looked up when first switched to.
        """
        for kind, store in self.stores.items():
            cached = await self.cache.load(kind)
            if cached is not None:
                store.load(cached)
                self._log(kind).info("Draft restored from local cache")
            elif prefetch:
                self._needs_prefetch.add(kind)

        if self.active_kind in self._needs_prefetch:
            await self._prefetch_once(self.active_kind)

    async def flush(self) -> None:
        """Wait until every queued cache write has landed."""
        if self._dirty and (self._writer is None or self._writer.done()):
            self._writer = asyncio.get_running_loop().create_task(self._drain_writes())
        while self._writer is not None and not self._writer.done():
            await asyncio.shield(self._writer)

    async def dispose(self) -> None:
        await self.flush()
        self._closed = True
        logger.debug(f"Dispatch session {self.session_id} disposed")

    # ------------------------------------------------------------------
    # Tabs
    # ------------------------------------------------------------------

    @property
    def active_store(self) -> FormStore:
        return self.stores[self.active_kind]

    @property
    def is_offline(self) -> bool:
        """Advisory banner state; never blocks submission."""
        return self.connectivity is not None and not self.connectivity.is_online

    async def switch_to(self, kind: FormKind | str) -> FormStore:
        self._require_editing("switch form")
        schema = get_schema(kind)
        if schema.kind not in self.stores:
            raise ValueError(f"Form kind '{schema.kind.value}' is not part of this session")
        self.active_kind = schema.kind
        if schema.kind in self._needs_prefetch:
            await self._prefetch_once(schema.kind)
        return self.active_store

    # ------------------------------------------------------------------
    # Editing (active tab)
    # ------------------------------------------------------------------

    def _require_editing(self, action: str) -> None:
        if self._closed:
            raise InvalidTransitionError(action, "disposed")
        if self.controller.state is not SubmissionState.EDITING:
            raise InvalidTransitionError(action, self.controller.state.value)

    def set_field(self, name: str, value: str) -> None:
        self._require_editing("edit")
        self.active_store.set_field(name, value)
        self._queue_save(self.active_kind)

    def recompute_total(self) -> str:
        self._require_editing("recalculate")
        total = self.active_store.recompute_total()
        self._queue_save(self.active_kind)
        return total

    def validate(self) -> ValidationResult:
        return self.active_store.validate()

    async def reset(self) -> DraftRecord:
        """User reset: default draft for the active tab, cache entry removed."""
        self._require_editing("reset")
        await self.discard_draft(self.active_kind)
        return self.active_store.record

    async def discard_draft(self, form_kind: FormKind) -> None:
        """Restore defaults for ``form_kind`` and delete its cache entry."""
        store = self.stores[form_kind]
        store.reset()
        self._dirty.pop(form_kind, None)
        # An in-flight write for this kind must land before the delete
        await self.flush()
        try:
            await self.cache.delete(form_kind)
        except Exception:
            self._log(form_kind).error("Failed to delete cached draft", exc_info=True)
            AppMetrics.cache_error("delete")

    # ------------------------------------------------------------------
    # Remote lookup
    # ------------------------------------------------------------------

    async def prefetch(
        self,
        kind: FormKind | str | None = None,
        *,
        date: str | None = None,
        identifier: str | None = None,
    ) -> bool:
        """
        Pre-populate a form from the ledger (GET by date + identifier).

        Best-effort: any failure leaves the draft unchanged.  Refused once a
        preview or submission is under way, or after dispose.

        A found record missing its date or lookup identifier keeps the
        values it was looked up by.

        Returns:
            True if a record was found and loaded.
        """
        self._require_editing("look up")
        schema = get_schema(kind) if kind else get_schema(self.active_kind)
        store = self.stores[schema.kind]
        lookup_date = date if date is not None else store.record.headers.get("date", "")
        lookup_id = identifier if identifier is not None else store.record.headers.get(schema.lookup_field, "")

        try:
            data = await self.ledger.lookup(schema.kind, lookup_date, lookup_id)
        except Exception as exc:
            self._log(schema.kind).info(f"Remote prefetch failed, keeping local draft: {exc}")
            data = None

        found = data is not None
        AppMetrics.prefetch_finished(schema.kind.value, found)
        if not found:
            return False

        record = DraftRecord.from_flat(schema.kind, data)
        for field, value in (("date", lookup_date), (schema.lookup_field, lookup_id)):
            if not str(record.headers.get(field) or "").strip():
                record.headers[field] = value
        store.load(record)
        self._queue_save(schema.kind)
        self._log(schema.kind).info("Draft pre-populated from ledger")
        return True

    async def _prefetch_once(self, kind: FormKind) -> None:
        self._needs_prefetch.discard(kind)
        await self.prefetch(kind)

    # ------------------------------------------------------------------
    # Cache writer
    # ------------------------------------------------------------------

    def _queue_save(self, kind: FormKind) -> None:
        self._dirty[kind] = self.stores[kind].snapshot()
        if self._writer is not None and not self._writer.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop yet: the snapshot stays queued until flush()
            return
        self._writer = loop.create_task(self._drain_writes())

    async def _drain_writes(self) -> None:
        while self._dirty:
            kind = next(iter(self._dirty))
            record = self._dirty.pop(kind)
            try:
                await self.cache.save(kind, record)
                AppMetrics.cache_write(kind.value)
            except Exception:
                self._log(kind).error("Failed to write draft to local cache", exc_info=True)
                AppMetrics.cache_error("save")

    def _log(self, kind: FormKind) -> LogContext:
        return LogContext(logger, form_kind=kind.value, session_id=self.session_id)
