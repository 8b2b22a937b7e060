# app/infra/local_cache.py
"""
Durable local storage for in-progress dispatch drafts.

One slot per form kind, addressed by the kind's fixed cache key
(``oilDispatchForm``, ``soapDispatchForm``, ``docDispatchForm``).  The
value is the JSON-serialized flat draft.  There is no eviction: an entry
lives until the draft is submitted or reset.

A cache directory is a namespace: each device / tab group should use its
own directory.
"""
from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Optional

from app.core.dispatch.domain import DraftRecord
from app.core.dispatch.forms import FormKind, get_schema
from app.infra.logging_config import get_logger
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)


def serialize_draft(record: DraftRecord) -> str:
    return json.dumps(record.to_flat(), ensure_ascii=False)


def deserialize_draft(form_kind: FormKind, raw: str) -> Optional[DraftRecord]:
    """Parse a stored entry; malformed data reads as absent."""
    try:
        data = json.loads(raw)
    except ValueError:
        logger.warning(f"Discarding malformed cached draft for {form_kind.value}: not JSON")
        AppMetrics.cache_error("decode")
        return None

    if not isinstance(data, dict):
        logger.warning(f"Discarding malformed cached draft for {form_kind.value}: not an object")
        AppMetrics.cache_error("decode")
        return None

    return DraftRecord.from_flat(form_kind, data)


class FileDraftCache:
    """Async file-backed cache: ``<directory>/<cacheKey>.json`` per form kind."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def path_for(self, form_kind: FormKind | str) -> Path:
        return self.directory / f"{get_schema(form_kind).cache_key}.json"

    async def load(self, form_kind: FormKind) -> Optional[DraftRecord]:
        kind = get_schema(form_kind).kind
        path = self.path_for(kind)
        try:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.warning(f"Cached draft unreadable: {path}", exc_info=True)
            AppMetrics.cache_error("load")
            return None
        return deserialize_draft(kind, raw)

    async def save(self, form_kind: FormKind, record: DraftRecord) -> None:
        path = self.path_for(form_kind)
        await asyncio.to_thread(self._write_atomic, path, serialize_draft(record))

    async def delete(self, form_kind: FormKind) -> None:
        path = self.path_for(form_kind)
        await asyncio.to_thread(path.unlink, missing_ok=True)

    @staticmethod
    def _write_atomic(path: Path, payload: str) -> None:
        """Write via a temp file + rename so a crash never leaves half a draft."""
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        os.replace(tmp, path)


class InMemoryDraftCache:
    """Process-local cache holding the same serialized form as the file cache."""

    def __init__(self) -> None:
        self.entries: dict[str, str] = {}

    async def load(self, form_kind: FormKind) -> Optional[DraftRecord]:
        schema = get_schema(form_kind)
        raw = self.entries.get(schema.cache_key)
        if raw is None:
            return None
        return deserialize_draft(schema.kind, raw)

    async def save(self, form_kind: FormKind, record: DraftRecord) -> None:
        self.entries[get_schema(form_kind).cache_key] = serialize_draft(record)

    async def delete(self, form_kind: FormKind) -> None:
        self.entries.pop(get_schema(form_kind).cache_key, None)
