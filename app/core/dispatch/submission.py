# app/core/dispatch/submission.py
"""
Two-phase (preview / confirm) submission state machine.

    EDITING ──request_preview()──► PREVIEWING ──confirm()──► CONFIRMING
       ▲  ◄──cancel_preview()────────┘                          │
       │                                                     submit()
       │                                                        ▼
       └──────────acknowledge()────── SUCCEEDED | FAILED ◄── SUBMITTING

Only ``request_preview`` is gated (by validation).  Connectivity is
advisory: an offline submission is attempted and fails through the normal
failure path.  Retries are always a fresh user-initiated pass through the
same gate.
"""
from __future__ import annotations

from typing import Optional, Protocol

from app.core.dispatch.domain import (
    SubmissionAttempt,
    SubmissionOutcome,
    SubmissionState,
    ValidationResult,
)
from app.core.dispatch.errors import (
    InvalidTransitionError,
    LedgerError,
    LedgerRejectedError,
)
from app.core.dispatch.form_store import FormStore
from app.core.dispatch.forms import FormKind
from app.core.dispatch.ports import ConnectivityStatus, LedgerClient
from app.infra.logging_config import get_logger, LogContext
from app.infra.metrics import AppMetrics

logger = get_logger(__name__)

SUCCESS_NOTICE = "Form submitted successfully!"
GENERIC_FAILURE_NOTICE = LedgerError.notice


class DraftOwner(Protocol):
    """What the controller needs from the session that owns the drafts."""

    @property
    def active_store(self) -> FormStore: ...

    async def discard_draft(self, form_kind: FormKind) -> None: ...


class SubmissionController:
    def __init__(
        self,
        *,
        ledger: LedgerClient,
        drafts: DraftOwner,
        connectivity: ConnectivityStatus | None = None,
    ) -> None:
        self.ledger = ledger
        self.drafts = drafts
        self.connectivity = connectivity
        self.state: SubmissionState = SubmissionState.EDITING
        self.attempt: Optional[SubmissionAttempt] = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, action: str, *allowed: SubmissionState) -> None:
        if self.state not in allowed:
            raise InvalidTransitionError(action, self.state.value)

    def _log(self) -> LogContext:
        return LogContext(logger, form_kind=self.drafts.active_store.form_kind.value)

    @property
    def is_busy(self) -> bool:
        """True while the confirm control must stay disabled."""
        return self.state is SubmissionState.SUBMITTING

    @property
    def notice(self) -> Optional[str]:
        return self.attempt.notice if self.attempt else None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_preview(self) -> ValidationResult:
        """
        EDITING → PREVIEWING if the draft validates.

        Returns:
            The validation errors; empty means the preview was opened.
            On errors the state stays EDITING and the errors are kept on
            the store for inline display.
        """
        self._require("preview", SubmissionState.EDITING)
        store = self.drafts.active_store
        if not store.check():
            self._log().info(f"Preview refused: missing {sorted(store.errors)}")
            return dict(store.errors)

        self.state = SubmissionState.PREVIEWING
        return {}

    def preview_rows(self) -> list[tuple[str, str]]:
        self._require("render preview", SubmissionState.PREVIEWING, SubmissionState.CONFIRMING)
        return self.drafts.active_store.preview_rows()

    def cancel_preview(self) -> None:
        self._require("cancel preview", SubmissionState.PREVIEWING, SubmissionState.CONFIRMING)
        self.state = SubmissionState.EDITING

    def confirm(self) -> None:
        self._require("confirm", SubmissionState.PREVIEWING)
        self.state = SubmissionState.CONFIRMING

    async def submit(self) -> SubmissionAttempt:
        """
        CONFIRMING → SUBMITTING → SUCCEEDED | FAILED.

        Never raises for ledger failures; the outcome is recorded on the
        returned attempt.  Calling again while SUBMITTING raises
        ``InvalidTransitionError``.
        """
        self._require("submit", SubmissionState.CONFIRMING)

        store = self.drafts.active_store
        kind = store.form_kind
        payload = {**store.record.to_flat(), "type": kind.ledger_type}
        attempt = SubmissionAttempt(form_kind=kind, endpoint=self.ledger.endpoint, payload=payload)
        self.attempt = attempt
        self.state = SubmissionState.SUBMITTING

        log = self._log()
        if self.connectivity is not None and not self.connectivity.is_online:
            log.warning("Submitting while offline; the attempt will likely fail")

        try:
            envelope = await self.ledger.submit(payload)
        except LedgerRejectedError as exc:
            log.warning(f"Ledger rejected submission: status={exc.status}, message={exc.notice}")
            attempt.fail(str(exc), exc.notice)
        except LedgerError as exc:
            log.warning(f"Submission failed: {exc.__class__.__name__}: {exc}")
            attempt.fail(str(exc), GENERIC_FAILURE_NOTICE)
        except Exception as exc:
            log.error(f"Submission failed unexpectedly: {exc.__class__.__name__}", exc_info=True)
            attempt.fail(f"{exc.__class__.__name__}: {exc}", GENERIC_FAILURE_NOTICE)
        else:
            await self.drafts.discard_draft(kind)
            attempt.succeed(SUCCESS_NOTICE)
            log.info(f"Dispatch submitted: {envelope.get('message') or 'ok'}")

        self.state = (
            SubmissionState.SUCCEEDED
            if attempt.outcome is SubmissionOutcome.SUCCESS
            else SubmissionState.FAILED
        )
        AppMetrics.submission_finished(kind.value, attempt.outcome.value)
        return attempt

    def acknowledge(self) -> None:
        """SUCCEEDED | FAILED → EDITING once the notice has been shown."""
        self._require("acknowledge", SubmissionState.SUCCEEDED, SubmissionState.FAILED)
        self.state = SubmissionState.EDITING
