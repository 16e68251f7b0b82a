from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from sensorseal.services.crypto.keys import public_key_bytes
from sensorseal.services.ledger import AggregateStats, LedgerBackend
from sensorseal.services.ledger.codec import decode_device, encode_device
from sensorseal.services.ledger.signer import (
    REGISTER_DEVICE,
    SUBMIT_AGGREGATE,
    aggregate_params,
    register_params,
    sign_request,
)

NOW = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)  # 1_700_000_000


@pytest.fixture()
def backend(tmp_path: Path):
    backend = LedgerBackend(db_path=tmp_path / "ledger.sqlite", clock=lambda: NOW)
    yield backend
    backend.close()


@pytest.fixture()
def owner_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture()
def other_key() -> Ed25519PrivateKey:
    return Ed25519PrivateKey.generate()


@pytest.fixture()
def device_pubkey() -> bytes:
    return public_key_bytes(Ed25519PrivateKey.generate())


def _register(backend: LedgerBackend, key: Ed25519PrivateKey, device_pubkey: bytes, calibration_hash: bytes = b"\x11" * 32) -> dict:
    request = sign_request(key, REGISTER_DEVICE, register_params(device_pubkey=device_pubkey, calibration_hash=calibration_hash))
    return backend.register_device(
        device_pubkey=device_pubkey,
        calibration_hash=calibration_hash,
        authority=request.authority,
        signature=request.signature,
    )


def _submit(
    backend: LedgerBackend,
    key: Ed25519PrivateKey,
    device: bytes,
    *,
    window_start: int = 1_700_000_000,
    stats: AggregateStats | None = None,
    sample_count: int = 900,
    merkle_root: bytes = b"\x22" * 32,
    offchain_uri: str = "ipfs://cid1",
) -> dict:
    stats = stats or AggregateStats()
    params = aggregate_params(
        device=device,
        window_start=window_start,
        stats=stats,
        sample_count=sample_count,
        merkle_root=merkle_root,
        offchain_uri=offchain_uri,
    )
    request = sign_request(key, SUBMIT_AGGREGATE, params)
    return backend.submit_aggregate(
        device=device,
        window_start=window_start,
        stats=stats,
        sample_count=sample_count,
        merkle_root=merkle_root,
        offchain_uri=offchain_uri,
        authority=request.authority,
        signature=request.signature,
    )


def _deactivate(backend: LedgerBackend, address: bytes) -> None:
    """Flip ``is_active`` directly in the store; no handler exposes this."""
    row = backend.persistence.load(address)
    record = decode_device(address, row.data)
    record.is_active = False
    backend.persistence.connection.execute(
        "UPDATE accounts SET data = ? WHERE address = ?",
        (encode_device(record), address),
    )


@pytest.fixture()
def register():
    return _register


@pytest.fixture()
def submit():
    return _submit


@pytest.fixture()
def deactivate():
    return _deactivate
