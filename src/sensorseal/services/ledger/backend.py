"""SQLite-backed ledger facade.

:class:`LedgerBackend` wires the account store, configuration, clock and
signer verification around the two write handlers and adds the read paths
used by dashboards and verification pages.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml

from . import aggregator, registry
from .codec import decode_aggregate, decode_device
from .enums import AccountKind, ErrorCode
from .errors import raise_error, require_int_range, require_size
from .ids import derive_aggregate_address, derive_device_address, generate_event_id
from .models import AggregateStats, DeviceRecord, WindowAggregateRecord, WindowSummary
from .persistence.sqlite import SQLitePersistence
from .schemas import ResponseEnvelope
from .signer import (
    REGISTER_DEVICE,
    SUBMIT_AGGREGATE,
    aggregate_params,
    canonical_message,
    register_params,
    verify_signer,
)

__all__ = ["LedgerBackend"]

_log = logging.getLogger("sensorseal.ledger.backend")


class LedgerBackend:
    """Registry and aggregator entry points over a single SQLite store."""

    def __init__(
        self,
        *,
        db_path: str | Path,
        config_path: str | Path | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._clock = clock or (lambda: datetime.now(tz=timezone.utc))
        self._config = self._load_config(config_path)
        try:
            self._program_id = bytes.fromhex(str(self._config.get("program_id", "")))
        except ValueError as exc:
            raise ValueError("program_id must be hex encoded") from exc
        if len(self._program_id) != 32:
            raise ValueError("program_id must be 32 bytes")
        self._max_uri_length = int(self._config.get("max_uri_length", aggregator.MAX_URI_LENGTH))
        if not 0 <= self._max_uri_length <= aggregator.MAX_URI_LENGTH:
            raise ValueError(f"max_uri_length must be between 0 and {aggregator.MAX_URI_LENGTH}")
        self._window_seconds = int(self._config.get("window_seconds", 900))
        self._persistence = SQLitePersistence(db_path)
        _log.debug("ledger opened", extra={"db_path": str(db_path), "program_id": self._program_id.hex()})

    # ------------------------------------------------------------------
    # lifecycle helpers
    # ------------------------------------------------------------------
    def close(self) -> None:
        self._persistence.close()

    @property
    def persistence(self) -> SQLitePersistence:
        return self._persistence

    @property
    def program_id(self) -> bytes:
        return self._program_id

    @property
    def window_seconds(self) -> int:
        return self._window_seconds

    # ------------------------------------------------------------------
    # configuration helpers
    # ------------------------------------------------------------------
    def _load_config(self, config_path: str | Path | None) -> Mapping[str, Any]:
        path = Path(config_path) if config_path else Path(__file__).with_name("config.yaml")
        with open(path, "r", encoding="utf-8") as handle:
            return yaml.safe_load(handle) or {}

    # ------------------------------------------------------------------
    # time helpers
    # ------------------------------------------------------------------
    def _now(self) -> datetime:
        return self._clock()

    def _unix_now(self) -> int:
        return int(self._now().timestamp())

    def _envelope(self, payload: Mapping[str, Any]) -> dict[str, Any]:
        return ResponseEnvelope(payload=payload, event_id=generate_event_id(), server_time_utc=self._now()).as_dict()

    # ------------------------------------------------------------------
    # addressing
    # ------------------------------------------------------------------
    def device_address(self, device_pubkey: bytes) -> bytes:
        device_pubkey = require_size(device_pubkey, 32, "device_pubkey")
        return derive_device_address(device_pubkey, self._program_id).address

    def aggregate_address(self, device: bytes, window_start: int) -> bytes:
        device = require_size(device, 32, "device")
        window_start = require_int_range(window_start, -(1 << 63), (1 << 63) - 1, "window_start")
        return derive_aggregate_address(device, window_start, self._program_id).address

    # ------------------------------------------------------------------
    # write paths
    # ------------------------------------------------------------------
    def register_device(
        self,
        *,
        device_pubkey: bytes,
        calibration_hash: bytes,
        authority: str | bytes | None,
        signature: str | bytes | None,
    ) -> dict[str, Any]:
        message = canonical_message(
            REGISTER_DEVICE,
            register_params(device_pubkey=device_pubkey, calibration_hash=calibration_hash),
        )
        signer = verify_signer(authority, signature, message)
        record = registry.register_device(
            self._persistence,
            program_id=self._program_id,
            signer=signer,
            device_pubkey=device_pubkey,
            calibration_hash=calibration_hash,
            now=self._unix_now(),
        )
        return self._envelope({"device": record.as_dict()})

    def submit_aggregate(
        self,
        *,
        device: bytes,
        window_start: int,
        stats: AggregateStats,
        sample_count: int,
        merkle_root: bytes,
        offchain_uri: str,
        authority: str | bytes | None,
        signature: str | bytes | None,
    ) -> dict[str, Any]:
        message = canonical_message(
            SUBMIT_AGGREGATE,
            aggregate_params(
                device=device,
                window_start=window_start,
                stats=stats,
                sample_count=sample_count,
                merkle_root=merkle_root,
                offchain_uri=offchain_uri,
            ),
        )
        signer = verify_signer(authority, signature, message)
        record = aggregator.submit_aggregate(
            self._persistence,
            program_id=self._program_id,
            signer=signer,
            device=device,
            window_start=window_start,
            stats=stats,
            sample_count=sample_count,
            merkle_root=merkle_root,
            offchain_uri=offchain_uri,
            now=self._unix_now(),
            max_uri_length=self._max_uri_length,
        )
        return self._envelope({"aggregate": self._aggregate_payload(record)})

    # ------------------------------------------------------------------
    # read paths
    # ------------------------------------------------------------------
    def _aggregate_payload(self, record: WindowAggregateRecord) -> dict[str, Any]:
        data = record.as_dict()
        data["window_end"] = record.window_start + self._window_seconds
        return data

    def _load_device(self, address: bytes) -> DeviceRecord:
        address = require_size(address, 32, "device")
        row = self._persistence.load(address)
        if row is None:
            raise_error(ErrorCode.ACCOUNT_NOT_FOUND, "Device account not found.", status_code=404)
        return decode_device(address, row.data)

    def _load_aggregate(self, address: bytes) -> WindowAggregateRecord:
        address = require_size(address, 32, "aggregate")
        row = self._persistence.load(address)
        if row is None:
            raise_error(ErrorCode.ACCOUNT_NOT_FOUND, "Aggregate account not found.", status_code=404)
        return decode_aggregate(address, row.data)

    def _aggregates(self, device: bytes, start: int | None, end: int | None) -> list[WindowAggregateRecord]:
        self._load_device(device)
        rows = self._persistence.list_by_owner(AccountKind.WINDOW_AGGREGATE.value, device)
        records = [decode_aggregate(row.address, row.data) for row in rows]
        if start is not None:
            records = [item for item in records if item.window_start >= start]
        if end is not None:
            records = [item for item in records if item.window_start <= end]
        return sorted(records, key=lambda item: item.window_start)

    def get_device(self, address: bytes) -> dict[str, Any]:
        return self._envelope({"device": self._load_device(address).as_dict()})

    def find_device(self, device_pubkey: bytes) -> dict[str, Any]:
        return self.get_device(self.device_address(device_pubkey))

    def get_aggregate(self, address: bytes) -> dict[str, Any]:
        return self._envelope({"aggregate": self._aggregate_payload(self._load_aggregate(address))})

    def find_aggregate(self, device: bytes, window_start: int) -> dict[str, Any]:
        return self.get_aggregate(self.aggregate_address(device, window_start))

    def list_aggregates(self, device: bytes, *, start: int | None = None, end: int | None = None) -> dict[str, Any]:
        records = self._aggregates(device, start, end)
        return self._envelope(
            {
                "device": device.hex(),
                "aggregates": [self._aggregate_payload(item) for item in records],
            }
        )

    def summarize(self, device: bytes, *, start: int | None = None, end: int | None = None) -> dict[str, Any]:
        records = self._aggregates(device, start, end)
        return self._envelope({"summary": WindowSummary.from_aggregates(device, records).as_dict()})
