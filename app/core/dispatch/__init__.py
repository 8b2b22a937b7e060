# app/core/dispatch/__init__.py
"""
Dispatch form engine -- offline-first capture of oil, soap and DOC dispatches.

This package holds the provider-agnostic core:
- ``forms`` / ``weights`` -- form kinds, field schemas, unit masses
- ``domain`` -- DraftRecord, SubmissionAttempt, state enums
- ``totals`` -- derived total computation
- ``form_store`` -- per-form draft state and validation
- ``submission`` -- preview / confirm / submit state machine
- ``session`` -- explicit session lifecycle, hydration, cache mirroring
- ``ports`` -- protocols implemented in ``app.infra``

Nothing here performs I/O directly; caches and the ledger client are
injected.
"""
from app.core.dispatch.forms import FormKind, FormSchema, get_schema  # noqa: F401
from app.core.dispatch.domain import (  # noqa: F401
    DraftRecord,
    ValidationResult,
    SubmissionAttempt,
    SubmissionOutcome,
    SubmissionState,
    default_record,
)
from app.core.dispatch.errors import (  # noqa: F401
    DispatchError,
    UnknownFieldError,
    InvalidTransitionError,
    LedgerError,
    LedgerTransportError,
    LedgerResponseError,
    LedgerRejectedError,
)
from app.core.dispatch.form_store import FormStore  # noqa: F401
from app.core.dispatch.submission import SubmissionController  # noqa: F401
from app.core.dispatch.session import DispatchSession  # noqa: F401
