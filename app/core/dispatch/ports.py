# app/core/dispatch/ports.py
from __future__ import annotations
from typing import Protocol, Optional, Any

from app.core.dispatch.domain import DraftRecord
from app.core.dispatch.forms import FormKind


class AsyncDraftCache(Protocol):
    async def load(self, form_kind: FormKind) -> Optional[DraftRecord]:
        """Stored draft, or None if absent or unreadable. Never raises."""
        ...

    async def save(self, form_kind: FormKind, record: DraftRecord) -> None: ...
    async def delete(self, form_kind: FormKind) -> None: ...


class LedgerClient(Protocol):
    endpoint: str

    async def submit(self, payload: dict[str, Any]) -> dict:
        """
        POST a dispatch record.

        Returns the envelope on ``status == 200``.

        Raises:
            LedgerTransportError, LedgerResponseError, LedgerRejectedError
        """
        ...

    async def lookup(
        self, form_kind: FormKind, date: str, identifier: str
    ) -> Optional[dict[str, Any]]:
        """Previously recorded dispatch ``data``, or None if not found."""
        ...


class ConnectivityStatus(Protocol):
    @property
    def is_online(self) -> bool: ...
