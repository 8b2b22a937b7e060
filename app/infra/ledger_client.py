# app/infra/ledger_client.py
"""
Client side of the remote ledger contract, spoken through the gateway.

Envelope: ``{"status": <int>, "message"?: <str>, "data"?: <object>}``.
``status == 200`` is success even when the HTTP status says otherwise, and
any other value is an application-level failure even on HTTP 200.

Error classification:
- connection / timeout              → LedgerTransportError
- body not JSON, or no int status   → LedgerResponseError
- envelope status != 200            → LedgerRejectedError (message relayed)
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional

import aiohttp

from app.config import settings
from app.core.dispatch.errors import (
    LedgerRejectedError,
    LedgerResponseError,
    LedgerTransportError,
)
from app.core.dispatch.forms import FormKind, get_schema
from app.infra.http_client import get_ledger_session
from app.infra.logging_config import get_logger, mask_identifier

logger = get_logger(__name__)

LEDGER_OK = 200


def parse_envelope(raw: str) -> dict[str, Any]:
    """
    Decode and check the ledger envelope.

    Raises:
        LedgerResponseError: body is not a JSON object with an integer ``status``
    """
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise LedgerResponseError(f"Ledger response is not JSON: {raw[:120]!r}") from exc

    if not isinstance(body, dict):
        raise LedgerResponseError("Ledger response is not a JSON object")

    status = body.get("status")
    if isinstance(status, bool) or not isinstance(status, int):
        raise LedgerResponseError(f"Ledger response has no usable status: {status!r}")

    message = body.get("message")
    if message is not None and not isinstance(message, str):
        body["message"] = str(message)
    return body


class GatewayLedgerClient:
    """Talks to the ledger through the same-origin gateway (``settings.gateway_base_url``)."""

    def __init__(
        self,
        endpoint: str | None = None,
        session_factory: Callable[[], aiohttp.ClientSession] = get_ledger_session,
    ) -> None:
        self.endpoint = endpoint or settings.gateway_base_url
        self._session_factory = session_factory

    async def _request(self, method: str, **kwargs) -> tuple[int, str]:
        try:
            session = self._session_factory()
            async with session.request(method, self.endpoint, **kwargs) as resp:
                return resp.status, await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise LedgerTransportError(
                f"Ledger {method} failed: {exc.__class__.__name__}: {exc}"
            ) from exc

    async def submit(self, payload: dict[str, Any]) -> dict[str, Any]:
        http_status, raw = await self._request("POST", json=payload)
        envelope = parse_envelope(raw)

        if envelope["status"] != LEDGER_OK:
            logger.warning(
                f"Ledger rejected {payload.get('type')}: http={http_status}, "
                f"status={envelope['status']}"
            )
            raise LedgerRejectedError(envelope["status"], envelope.get("message"))

        return envelope

    async def lookup(
        self, form_kind: FormKind, date: str, identifier: str
    ) -> Optional[dict[str, Any]]:
        schema = get_schema(form_kind)
        params = {
            "date": date,
            schema.lookup_field: identifier,
            "type": schema.kind.ledger_type,
        }
        try:
            _, raw = await self._request("GET", params=params)
            envelope = parse_envelope(raw)
        except (LedgerTransportError, LedgerResponseError) as exc:
            logger.info(f"Ledger lookup unavailable: {exc}")
            return None

        data = envelope.get("data")
        if envelope["status"] != LEDGER_OK or not isinstance(data, dict):
            return None

        logger.info(
            f"Ledger lookup hit: kind={schema.kind.value}, date={date}, "
            f"{schema.lookup_field}={mask_identifier(identifier)}"
        )
        return data
