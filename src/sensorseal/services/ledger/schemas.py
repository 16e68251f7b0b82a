"""Pydantic-free response and error envelopes for the ledger backend."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping

__all__ = ["ResponseEnvelope", "ErrorEnvelope", "isoformat"]


def isoformat(dt: datetime) -> str:
    moment = dt.astimezone(timezone.utc)
    return moment.replace(microsecond=moment.microsecond // 1000 * 1000).isoformat().replace("+00:00", "Z")


@dataclass(slots=True)
class ResponseEnvelope:
    """Standard envelope returned by every backend call."""

    payload: Mapping[str, Any]
    event_id: str
    server_time_utc: datetime

    def as_dict(self) -> dict[str, Any]:
        data = dict(self.payload)
        data.setdefault("server_time_utc", isoformat(self.server_time_utc))
        data.setdefault("event_id", self.event_id)
        return data


@dataclass(slots=True)
class ErrorEnvelope:
    code: str
    message: str
    hint: str | None = None
    event_id: str | None = None
    server_time_utc: datetime | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.hint is not None:
            data["hint"] = self.hint
        if self.event_id is not None:
            data["event_id"] = self.event_id
        if self.server_time_utc is not None:
            data["server_time_utc"] = isoformat(self.server_time_utc)
        return data
