"""Enumerations describing account kinds and error codes for the ledger."""
from __future__ import annotations

from enum import Enum

__all__ = [
    "AccountKind",
    "ErrorCode",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class AccountKind(_StrEnum):
    DEVICE = "Device"
    WINDOW_AGGREGATE = "WindowAggregate"


class ErrorCode(_StrEnum):
    # domain preconditions
    URI_TOO_LONG = "uri_too_long"
    DEVICE_INACTIVE = "device_inactive"
    UNAUTHORIZED = "unauthorized"
    # storage / signer failures
    ACCOUNT_ALREADY_IN_USE = "account_already_in_use"
    ACCOUNT_NOT_FOUND = "account_not_found"
    ACCOUNT_TYPE_MISMATCH = "account_type_mismatch"
    CONSTRAINT_SEEDS = "constraint_seeds"
    INVALID_SIGNER = "invalid_signer"
    INVALID_ARGUMENT = "invalid_argument"
