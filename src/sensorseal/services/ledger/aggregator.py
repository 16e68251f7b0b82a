"""Aggregate window submission handler."""
from __future__ import annotations

import logging
import struct

from .codec import MAX_URI_LENGTH, decode_aggregate, decode_device, encode_aggregate, pack_stats
from .enums import AccountKind, ErrorCode
from .errors import raise_error, require_int_range, require_size
from .ids import derive_aggregate_address, derive_device_address
from .models import AggregateStats, DeviceRecord, WindowAggregateRecord
from .persistence.sqlite import AccountExistsError, SQLitePersistence
from .signer import Signer, require_authority

__all__ = ["MAX_URI_LENGTH", "submit_aggregate", "load_device"]

_log = logging.getLogger("sensorseal.ledger.aggregator")

_I64_MIN = -(1 << 63)
_I64_MAX = (1 << 63) - 1
_U32_MAX = (1 << 32) - 1


def load_device(store: SQLitePersistence, address: bytes, *, program_id: bytes) -> DeviceRecord:
    """Load a Device account and check it sits at its own derived address."""

    row = store.load(address)
    if row is None:
        raise_error(ErrorCode.ACCOUNT_NOT_FOUND, "Device account not found.", status_code=404)
    device = decode_device(address, row.data)
    if derive_device_address(device.device_pubkey, program_id).address != address:
        raise_error(
            ErrorCode.CONSTRAINT_SEEDS,
            "Device account is not stored at its derived address.",
            status_code=409,
        )
    return device


def submit_aggregate(
    store: SQLitePersistence,
    *,
    program_id: bytes,
    signer: Signer | None,
    device: bytes,
    window_start: int,
    stats: AggregateStats,
    sample_count: int,
    merkle_root: bytes,
    offchain_uri: str,
    now: int,
    max_uri_length: int = MAX_URI_LENGTH,
) -> WindowAggregateRecord:
    """Create the WindowAggregate account for (``device``, ``window_start``).

    Checks run in a fixed order and the first failure aborts without writing:
    URI length, device state, caller authority, then address uniqueness in
    the store.  ``stats`` and ``sample_count`` are stored as given.
    """

    if signer is None:
        raise_error(ErrorCode.INVALID_SIGNER, "Missing signer.", status_code=401)
    device = require_size(device, 32, "device")
    merkle_root = require_size(merkle_root, 32, "merkle_root")
    window_start = require_int_range(window_start, _I64_MIN, _I64_MAX, "window_start")
    sample_count = require_int_range(sample_count, 0, _U32_MAX, "sample_count")
    now = require_int_range(now, _I64_MIN, _I64_MAX, "submitted_at")
    if not isinstance(offchain_uri, str):
        raise_error(ErrorCode.INVALID_ARGUMENT, "offchain_uri must be text.")
    try:
        offchain_uri.encode("utf-8")
    except UnicodeEncodeError:
        raise_error(ErrorCode.INVALID_ARGUMENT, "offchain_uri must be valid UTF-8 text.")
    try:
        pack_stats(stats)
    except (OverflowError, TypeError, struct.error):
        raise_error(ErrorCode.INVALID_ARGUMENT, "stats must be representable as 32-bit floats.")

    if len(offchain_uri) > max_uri_length:
        raise_error(
            ErrorCode.URI_TOO_LONG,
            f"URI too long (max {max_uri_length} characters).",
            hint="Reference the dataset by a content address instead of a long path.",
        )

    owner = load_device(store, device, program_id=program_id)
    if not owner.is_active:
        raise_error(ErrorCode.DEVICE_INACTIVE, "Device is not active.", status_code=403)

    require_authority(signer, owner.authority)

    derived = derive_aggregate_address(device, window_start, program_id)
    record = WindowAggregateRecord(
        address=derived.address,
        device=device,
        window_start=window_start,
        stats=stats,
        sample_count=sample_count,
        merkle_root=merkle_root,
        offchain_uri=offchain_uri,
        submitted_at=now,
        bump=derived.bump,
    )
    data = encode_aggregate(record)
    try:
        store.insert_if_absent(
            derived.address,
            kind=AccountKind.WINDOW_AGGREGATE.value,
            data=data,
            created_at=now,
            owner=device,
        )
    except AccountExistsError:
        raise_error(
            ErrorCode.ACCOUNT_ALREADY_IN_USE,
            "Aggregate for this window already submitted.",
            status_code=409,
        )

    _log.info("aggregate submitted for window: %s", window_start, extra={"device": device.hex(), "window_start": window_start})
    _log.info("merkle root: %s", merkle_root.hex(), extra={"address": derived.hex, "merkle_root": merkle_root.hex()})
    return decode_aggregate(derived.address, data)
