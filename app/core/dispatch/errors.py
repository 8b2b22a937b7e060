# app/core/dispatch/errors.py
"""
Typed errors for the dispatch form engine.

Validation problems are *values* (``ValidationResult``), never exceptions:
they are field-scoped and always recoverable by the user.  The classes
below cover programming errors (unknown fields, illegal state transitions)
and the three ways a ledger call can fail.
"""
from __future__ import annotations


class DispatchError(Exception):
    """Base class for all dispatch engine errors."""


class UnknownFieldError(DispatchError):
    """Field is not declared for the form kind (or is machine-written)."""

    def __init__(self, form_kind: str, name: str):
        self.form_kind = form_kind
        self.name = name
        super().__init__(f"Field '{name}' is not editable on {form_kind} dispatch forms")


class InvalidTransitionError(DispatchError):
    """Submission state machine was asked to do something its state forbids."""

    def __init__(self, action: str, state: str):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} while {state}")


class LedgerError(DispatchError):
    """
    Base error for ledger calls.

    Attributes:
        notice: Text suitable for showing to the user.
    """

    notice: str = "Error submitting form!"

    def __init__(self, message: str, notice: str | None = None):
        if notice is not None:
            self.notice = notice
        super().__init__(message)


class LedgerTransportError(LedgerError):
    """Network unreachable, timeout or connection reset."""


class LedgerResponseError(LedgerError):
    """Body was not JSON or did not carry the ``{status, ...}`` envelope."""


class LedgerRejectedError(LedgerError):
    """Envelope ``status`` was not 200; upstream message relayed verbatim."""

    def __init__(self, status: int, message: str | None):
        self.status = status
        super().__init__(
            f"Ledger rejected submission: status={status}",
            notice=message or LedgerError.notice,
        )
