# tests/conftest.py
"""Pytest configuration and fixtures"""
import pytest
import sys
from datetime import date
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app.core.dispatch.errors import LedgerRejectedError  # noqa: E402
from app.core.dispatch.forms import FormKind  # noqa: E402
from app.infra.local_cache import InMemoryDraftCache  # noqa: E402


FIXED_TODAY = date(2024, 5, 1)


class MockLedgerClient:
    """Async mock for LedgerClient"""

    def __init__(self, response: dict | None = None, error: Exception | None = None):
        self.endpoint = "http://gateway.test/api"
        self.response = response if response is not None else {"status": 200, "message": "ok"}
        self.error = error
        self.submitted: list[dict] = []
        self.lookups: list[tuple] = []
        self.records: dict[tuple, dict] = {}

    async def submit(self, payload: dict) -> dict:
        self.submitted.append(payload)
        if self.error is not None:
            raise self.error
        if self.response.get("status") != 200:
            raise LedgerRejectedError(self.response["status"], self.response.get("message"))
        return self.response

    async def lookup(self, form_kind: FormKind, date: str, identifier: str):
        self.lookups.append((form_kind, date, identifier))
        return self.records.get((form_kind, date, identifier))


class MockConnectivity:
    def __init__(self, online: bool = True):
        self.is_online = online


@pytest.fixture
def today():
    """Deterministic clock for default draft dates"""
    return lambda: FIXED_TODAY


@pytest.fixture
def ledger():
    return MockLedgerClient()


@pytest.fixture
def memory_cache():
    return InMemoryDraftCache()


@pytest.fixture
def oil_fixture_quantities():
    """10 × 20L + 5 × 10L → 0.182 + 0.0455 = 0.2275 MT"""
    return {"20L": "10", "10L": "5"}
