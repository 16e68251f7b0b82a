from __future__ import annotations

import pytest

from sensorseal.services.ledger import AggregateStats, LedgerError, Signer
from sensorseal.services.ledger.aggregator import submit_aggregate
from sensorseal.services.ledger.codec import encode_device
from sensorseal.services.ledger.enums import AccountKind
from sensorseal.services.ledger.models import DeviceRecord
from sensorseal.services.ledger.persistence import AccountExistsError, SQLitePersistence
from sensorseal.services.ledger.registry import register_device

PROGRAM_ID = b"\x5a" * 32
OWNER = Signer(pubkey=b"\x01" * 32)


@pytest.fixture()
def store(tmp_path):
    store = SQLitePersistence(tmp_path / "handlers.sqlite")
    yield store
    store.close()


def _submit(store, signer, device, **overrides):
    args = dict(
        program_id=PROGRAM_ID,
        signer=signer,
        device=device,
        window_start=1_700_000_000,
        stats=AggregateStats(),
        sample_count=900,
        merkle_root=b"\x22" * 32,
        offchain_uri="ipfs://cid1",
        now=1_700_000_100,
    )
    args.update(overrides)
    return submit_aggregate(store, **args)


def test_handlers_take_identity_and_time_as_arguments(store):
    device = register_device(
        store,
        program_id=PROGRAM_ID,
        signer=OWNER,
        device_pubkey=b"\x02" * 32,
        calibration_hash=b"\x03" * 32,
        now=42,
    )
    assert device.created_at == 42
    assert device.authority == OWNER.pubkey

    record = _submit(store, OWNER, device.address, now=43)
    assert record.submitted_at == 43
    assert record.device == device.address
    row = store.load(record.address)
    assert row.kind == AccountKind.WINDOW_AGGREGATE.value
    assert row.owner == device.address


def test_missing_signer_is_rejected(store):
    with pytest.raises(LedgerError) as excinfo:
        register_device(
            store,
            program_id=PROGRAM_ID,
            signer=None,
            device_pubkey=b"\x02" * 32,
            calibration_hash=b"\x03" * 32,
            now=42,
        )
    assert excinfo.value.code == "invalid_signer"
    with pytest.raises(LedgerError) as excinfo:
        _submit(store, None, b"\x09" * 32)
    assert excinfo.value.code == "invalid_signer"


def test_device_must_sit_at_its_derived_address(store):
    record = DeviceRecord(
        address=b"\x77" * 32,
        authority=OWNER.pubkey,
        device_pubkey=b"\x02" * 32,
        calibration_hash=b"\x03" * 32,
        is_active=True,
        created_at=1,
    )
    store.insert_if_absent(record.address, kind=AccountKind.DEVICE.value, data=encode_device(record), created_at=1)
    with pytest.raises(LedgerError) as excinfo:
        _submit(store, OWNER, record.address)
    assert excinfo.value.code == "constraint_seeds"


def test_store_insert_is_create_only(store):
    store.insert_if_absent(b"\x01" * 32, kind="Device", data=b"first", created_at=1)
    with pytest.raises(AccountExistsError):
        store.insert_if_absent(b"\x01" * 32, kind="Device", data=b"second", created_at=2)
    assert store.load(b"\x01" * 32).data == b"first"
    assert store.load(b"\x02" * 32) is None


def test_unencodable_inputs_are_invalid_arguments(store):
    device = register_device(
        store,
        program_id=PROGRAM_ID,
        signer=OWNER,
        device_pubkey=b"\x02" * 32,
        calibration_hash=b"\x03" * 32,
        now=42,
    )
    before = store.snapshot()
    with pytest.raises(LedgerError) as excinfo:
        _submit(store, OWNER, device.address, stats=AggregateStats(temp_min="x"))
    assert excinfo.value.code == "invalid_argument"
    with pytest.raises(LedgerError) as excinfo:
        _submit(store, OWNER, device.address, offchain_uri="ipfs://\udfff")
    assert excinfo.value.code == "invalid_argument"
    assert store.snapshot() == before
