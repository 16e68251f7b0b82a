"""Binary account layout.

Each account is an 8-byte type discriminator (first bytes of
``sha256("account:<Name>")``) followed by little-endian fields.  The
``offchain_uri`` string is stored with a u32 length prefix and never exceeds
``MAX_URI_BYTES`` of UTF-8.
"""
from __future__ import annotations

import hashlib
import struct

from .enums import AccountKind, ErrorCode
from .errors import raise_error
from .models import AggregateStats, DeviceRecord, WindowAggregateRecord

__all__ = [
    "discriminator",
    "pack_stats",
    "encode_device",
    "decode_device",
    "encode_aggregate",
    "decode_aggregate",
    "MAX_URI_LENGTH",
    "MAX_URI_BYTES",
]

MAX_URI_LENGTH = 200
# four UTF-8 bytes per character at the character cap
MAX_URI_BYTES = 4 * MAX_URI_LENGTH

_DEVICE = struct.Struct("<8s32s32s32s?q")
_AGGREGATE_HEAD = struct.Struct("<8s32sq9fI32sI")
_AGGREGATE_TAIL = struct.Struct("<qB")
_STATS = struct.Struct("<9f")


def discriminator(kind: AccountKind) -> bytes:
    return hashlib.sha256(f"account:{kind.value}".encode("utf-8")).digest()[:8]


def pack_stats(stats: AggregateStats) -> bytes:
    """Pack the nine statistics as f32; raises ``OverflowError`` when out of range."""
    return _STATS.pack(*stats.as_tuple())


def _check_header(data: bytes, kind: AccountKind) -> None:
    if len(data) < 8 or data[:8] != discriminator(kind):
        raise_error(
            ErrorCode.ACCOUNT_TYPE_MISMATCH,
            f"Account is not a {kind.value}.",
            status_code=409,
        )


def encode_device(record: DeviceRecord) -> bytes:
    return _DEVICE.pack(
        discriminator(AccountKind.DEVICE),
        record.authority,
        record.device_pubkey,
        record.calibration_hash,
        record.is_active,
        record.created_at,
    )


def decode_device(address: bytes, data: bytes) -> DeviceRecord:
    _check_header(data, AccountKind.DEVICE)
    try:
        _, authority, device_pubkey, calibration_hash, is_active, created_at = _DEVICE.unpack_from(data)
    except struct.error:
        raise_error(ErrorCode.ACCOUNT_TYPE_MISMATCH, "Device account data is truncated.", status_code=409)
    return DeviceRecord(
        address=address,
        authority=authority,
        device_pubkey=device_pubkey,
        calibration_hash=calibration_hash,
        is_active=is_active,
        created_at=created_at,
    )


def encode_aggregate(record: WindowAggregateRecord) -> bytes:
    uri = record.offchain_uri.encode("utf-8")
    if len(uri) > MAX_URI_BYTES:
        raise_error(ErrorCode.URI_TOO_LONG, f"URI too long (max {MAX_URI_BYTES} bytes stored).")
    head = _AGGREGATE_HEAD.pack(
        discriminator(AccountKind.WINDOW_AGGREGATE),
        record.device,
        record.window_start,
        *record.stats.as_tuple(),
        record.sample_count,
        record.merkle_root,
        len(uri),
    )
    return head + uri + _AGGREGATE_TAIL.pack(record.submitted_at, record.bump)


def decode_aggregate(address: bytes, data: bytes) -> WindowAggregateRecord:
    _check_header(data, AccountKind.WINDOW_AGGREGATE)
    try:
        head = _AGGREGATE_HEAD.unpack_from(data)
        device, window_start = head[1], head[2]
        stats = AggregateStats(*head[3:12])
        sample_count, merkle_root, uri_len = head[12], head[13], head[14]
        if uri_len > MAX_URI_BYTES:
            raise struct.error("uri length out of range")
        offset = _AGGREGATE_HEAD.size
        uri = data[offset:offset + uri_len]
        if len(uri) != uri_len:
            raise struct.error("uri truncated")
        submitted_at, bump = _AGGREGATE_TAIL.unpack_from(data, offset + uri_len)
    except struct.error:
        raise_error(ErrorCode.ACCOUNT_TYPE_MISMATCH, "WindowAggregate account data is truncated.", status_code=409)
    return WindowAggregateRecord(
        address=address,
        device=device,
        window_start=window_start,
        stats=stats,
        sample_count=sample_count,
        merkle_root=merkle_root,
        offchain_uri=uri.decode("utf-8"),
        submitted_at=submitted_at,
        bump=bump,
    )
