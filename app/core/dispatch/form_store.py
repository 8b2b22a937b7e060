# app/core/dispatch/form_store.py
"""
FormStore - owns the draft for one form kind.

Mutations are synchronous and strictly ordered; the derived total is
recomputed explicitly by ``set_field`` whenever a quantity (or DOC mass
sub-field) changes, so the total never lags behind its inputs.
Persistence is not this class's concern: the owning ``DispatchSession``
mirrors every mutation to the local cache.
"""
from __future__ import annotations

from datetime import date
from typing import Callable, Optional

from app.core.dispatch.domain import DraftRecord, ValidationResult, default_record
from app.core.dispatch.errors import UnknownFieldError
from app.core.dispatch.forms import FormKind, FormSchema, get_schema
from app.core.dispatch.totals import compute_total


class FormStore:
    def __init__(
        self,
        form_kind: FormKind | str,
        *,
        record: Optional[DraftRecord] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> None:
        self.schema: FormSchema = get_schema(form_kind)
        self._today = today
        self.record: DraftRecord = record.copy() if record is not None else self._default()
        self.errors: ValidationResult = {}
        self.recompute_total()

    @property
    def form_kind(self) -> FormKind:
        return self.schema.kind

    def _default(self) -> DraftRecord:
        return default_record(self.schema.kind, self._today() if self._today else None)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_field(self, name: str, value: str) -> None:
        """
        Set one declared field.

        Raises:
            UnknownFieldError: ``name`` is not declared for this form kind,
                or is the machine-written total.
        """
        if not self.schema.is_editable(name):
            raise UnknownFieldError(self.schema.kind.value, name)

        text = "" if value is None else str(value)
        if self.schema.is_quantity(name):
            self.record.quantities[name] = text
            self.recompute_total()
        else:
            self.record.headers[name] = text

        self.errors.pop(name, None)

    def recompute_total(self) -> str:
        """Recompute and store the derived total (also the "Calculate" action)."""
        self.record.total = compute_total(self.schema, self.record.quantities)
        return self.record.total

    def load(self, record: DraftRecord) -> None:
        """Replace the draft wholesale (session hydration)."""
        if record.form_kind is not self.schema.kind:
            raise ValueError(
                f"Cannot load a {record.form_kind.value} draft into a {self.schema.kind.value} form"
            )
        self.record = record.copy()
        self.errors = {}
        self.recompute_total()

    def reset(self) -> DraftRecord:
        """Restore the default draft and clear inline errors."""
        self.record = self._default()
        self.errors = {}
        return self.record

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> ValidationResult:
        """Required-field check; no side effects."""
        result: ValidationResult = {}
        for name in self.schema.required:
            if not self.record.headers.get(name, "").strip():
                result[name] = f"{self.schema.label(name)} is required"
        return result

    def check(self) -> bool:
        """Validate and keep the errors for inline display."""
        self.errors = self.validate()
        return not self.errors

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def snapshot(self) -> DraftRecord:
        return self.record.copy()

    def preview_rows(self) -> list[tuple[str, str]]:
        """Read-only (label, value) pairs for every field, in form order."""
        return [(self.schema.label(name), value) for name, value in self.record.to_flat().items()]
