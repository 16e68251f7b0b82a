"""Structured ledger errors."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import NoReturn

from .enums import ErrorCode
from .ids import generate_event_id
from .schemas import ErrorEnvelope

__all__ = ["LedgerError", "raise_error", "require_size", "require_int_range"]


class LedgerError(RuntimeError):
    """Exception raised when a ledger operation is rejected.

    Every rejection happens before anything is written, so callers may fix
    the input and resubmit.
    """

    def __init__(self, envelope: ErrorEnvelope, *, status_code: int = 400) -> None:
        super().__init__(envelope.message)
        self.envelope = envelope
        self.status_code = status_code

    @property
    def code(self) -> str:
        return self.envelope.code


def raise_error(
    code: ErrorCode,
    message: str,
    *,
    hint: str | None = None,
    status_code: int = 400,
) -> NoReturn:
    envelope = ErrorEnvelope(
        code=code.value,
        message=message,
        hint=hint,
        event_id=generate_event_id(),
        server_time_utc=datetime.now(tz=timezone.utc),
    )
    raise LedgerError(envelope, status_code=status_code)


def require_size(value: bytes | bytearray, size: int, label: str) -> bytes:
    """Reject fixed-size inputs of the wrong length before any check runs."""

    if not isinstance(value, (bytes, bytearray)) or len(value) != size:
        raise_error(ErrorCode.INVALID_ARGUMENT, f"{label} must be exactly {size} bytes.")
    return bytes(value)


def require_int_range(value: int, low: int, high: int, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not low <= value <= high:
        raise_error(ErrorCode.INVALID_ARGUMENT, f"{label} must be an integer in [{low}, {high}].")
    return value
