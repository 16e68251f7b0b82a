from __future__ import annotations

import hashlib
import struct

import pytest

from sensorseal.services.ledger import AggregateStats, DeviceRecord, LedgerError, WindowAggregateRecord
from sensorseal.services.ledger.codec import (
    MAX_URI_BYTES,
    MAX_URI_LENGTH,
    decode_aggregate,
    decode_device,
    discriminator,
    encode_aggregate,
    encode_device,
    pack_stats,
)
from sensorseal.services.ledger.enums import AccountKind


def _device() -> DeviceRecord:
    return DeviceRecord(
        address=b"\xaa" * 32,
        authority=b"\x01" * 32,
        device_pubkey=b"\x02" * 32,
        calibration_hash=b"\x03" * 32,
        is_active=True,
        created_at=1_700_000_000,
    )


def _aggregate(uri: str = "ipfs://cid1") -> WindowAggregateRecord:
    return WindowAggregateRecord(
        address=b"\xbb" * 32,
        device=b"\xaa" * 32,
        window_start=1_700_000_000,
        stats=AggregateStats(temp_min=20.5, temp_max=22.25, temp_avg=21.0),
        sample_count=900,
        merkle_root=b"\x04" * 32,
        offchain_uri=uri,
        submitted_at=1_700_000_960,
        bump=254,
    )


def test_discriminator_is_prefix_of_account_name_hash():
    assert discriminator(AccountKind.DEVICE) == hashlib.sha256(b"account:Device").digest()[:8]
    assert discriminator(AccountKind.DEVICE) != discriminator(AccountKind.WINDOW_AGGREGATE)


def test_device_layout():
    data = encode_device(_device())
    assert len(data) == 8 + 32 * 3 + 1 + 8
    assert data[:8] == discriminator(AccountKind.DEVICE)
    assert decode_device(b"\xaa" * 32, data) == _device()


def test_aggregate_uri_is_length_prefixed():
    record = _aggregate("ipfs://é")
    data = encode_aggregate(record)
    uri = "ipfs://é".encode("utf-8")
    offset = 8 + 32 + 8 + 9 * 4 + 4 + 32
    assert struct.unpack_from("<I", data, offset)[0] == len(uri)
    assert data[offset + 4:offset + 4 + len(uri)] == uri
    assert decode_aggregate(record.address, data) == record


def test_decode_rejects_other_account_kind():
    with pytest.raises(LedgerError) as excinfo:
        decode_device(b"\xbb" * 32, encode_aggregate(_aggregate()))
    assert excinfo.value.code == "account_type_mismatch"
    assert excinfo.value.status_code == 409

    with pytest.raises(LedgerError) as excinfo:
        decode_aggregate(b"\xaa" * 32, encode_device(_device()))
    assert excinfo.value.code == "account_type_mismatch"


def test_decode_rejects_truncated_data():
    data = encode_aggregate(_aggregate())
    with pytest.raises(LedgerError) as excinfo:
        decode_aggregate(b"\xbb" * 32, data[:-3])
    assert excinfo.value.code == "account_type_mismatch"


def test_pack_stats_rejects_values_outside_f32():
    with pytest.raises(OverflowError):
        pack_stats(AggregateStats(temp_max=1e39))


def test_stored_uri_is_bounded_in_bytes():
    assert MAX_URI_BYTES == 4 * MAX_URI_LENGTH
    encode_aggregate(_aggregate("\U0001f600" * MAX_URI_LENGTH))
    with pytest.raises(LedgerError) as excinfo:
        encode_aggregate(_aggregate("\U0001f600" * MAX_URI_LENGTH + "u"))
    assert excinfo.value.code == "uri_too_long"


def test_decode_rejects_oversized_uri_prefix():
    data = bytearray(encode_aggregate(_aggregate()))
    offset = 8 + 32 + 8 + 9 * 4 + 4 + 32
    struct.pack_into("<I", data, offset, MAX_URI_BYTES + 1)
    data.extend(b"u" * (MAX_URI_BYTES + 16))
    with pytest.raises(LedgerError) as excinfo:
        decode_aggregate(b"\xbb" * 32, bytes(data))
    assert excinfo.value.code == "account_type_mismatch"
