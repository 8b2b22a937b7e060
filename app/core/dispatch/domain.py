# app/core/dispatch/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Mapping, Optional

from app.core.dispatch.forms import FormKind, get_schema
from app.core.dispatch.totals import compute_total


# Field name → human-readable error. Empty mapping means the form is valid.
ValidationResult = dict[str, str]


def today_iso() -> str:
    """Today's date as YYYY-MM-DD (UTC, like the field devices)"""
    return datetime.now(timezone.utc).date().isoformat()


# ============================================================================
# DRAFT RECORD
# ============================================================================

@dataclass
class DraftRecord:
    """
    In-progress dispatch form.

    ``headers`` and ``quantities`` always hold exactly the keys declared by
    the form kind's schema.  ``total`` is machine-written: only
    ``FormStore`` assigns it, from ``compute_total``.
    """
    form_kind: FormKind
    headers: dict[str, str] = field(default_factory=dict)
    quantities: dict[str, str] = field(default_factory=dict)
    total: str = "0.00"

    def get(self, name: str) -> str:
        schema = get_schema(self.form_kind)
        if name == schema.total_field:
            return self.total
        if schema.is_quantity(name):
            return self.quantities[name]
        return self.headers[name]

    def to_flat(self) -> dict[str, str]:
        """Flat field → value mapping, in form order (cache and ledger layout)."""
        schema = get_schema(self.form_kind)
        flat: dict[str, str] = {}
        for name in schema.header_names:
            flat[name] = self.headers.get(name, "")
        for name in schema.quantity_keys:
            flat[name] = self.quantities.get(name, "")
        flat[schema.total_field] = self.total
        return flat

    @classmethod
    def from_flat(cls, form_kind: FormKind | str, data: Mapping[str, Any]) -> "DraftRecord":
        """
        Rebuild a record from a flat mapping (cache entry or ledger ``data``).

        Unknown keys are dropped, missing headers take their defaults,
        missing quantities are empty, and the total is recomputed.
        """
        schema = get_schema(form_kind)
        headers = schema.header_defaults()
        for name in headers:
            if name in data:
                headers[name] = _as_field_text(data[name])
        quantities = {k: _as_field_text(data.get(k)) for k in schema.quantity_keys}
        return cls(
            form_kind=schema.kind,
            headers=headers,
            quantities=quantities,
            total=compute_total(schema, quantities),
        )

    def copy(self) -> "DraftRecord":
        return DraftRecord(
            form_kind=self.form_kind,
            headers=dict(self.headers),
            quantities=dict(self.quantities),
            total=self.total,
        )


def _as_field_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def default_record(form_kind: FormKind | str, today: Optional[date] = None) -> DraftRecord:
    """Fresh draft: today's date, empty identifiers, default selector values."""
    schema = get_schema(form_kind)
    headers = schema.header_defaults()
    headers["date"] = today.isoformat() if today is not None else today_iso()
    quantities = {k: "" for k in schema.quantity_keys}
    return DraftRecord(
        form_kind=schema.kind,
        headers=headers,
        quantities=quantities,
        total=compute_total(schema, quantities),
    )


# ============================================================================
# SUBMISSION
# ============================================================================

class SubmissionState(str, Enum):
    EDITING = "editing"
    PREVIEWING = "previewing"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class SubmissionOutcome(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class SubmissionAttempt:
    """One user-confirmed send to the ledger. Never persisted."""
    form_kind: FormKind
    endpoint: str
    payload: dict[str, str]
    outcome: SubmissionOutcome = SubmissionOutcome.PENDING
    failure_reason: Optional[str] = None
    notice: Optional[str] = None  # Message shown to the user once resolved
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.outcome is SubmissionOutcome.PENDING

    def succeed(self, notice: str) -> None:
        self.outcome = SubmissionOutcome.SUCCESS
        self.notice = notice
        self.finished_at = datetime.now(timezone.utc)

    def fail(self, reason: str, notice: str) -> None:
        self.outcome = SubmissionOutcome.FAILURE
        self.failure_reason = reason
        self.notice = notice
        self.finished_at = datetime.now(timezone.utc)
