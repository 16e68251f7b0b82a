"""Device registration handler."""
from __future__ import annotations

import logging

from .codec import encode_device
from .enums import AccountKind, ErrorCode
from .errors import raise_error, require_int_range, require_size
from .ids import derive_device_address
from .models import DeviceRecord
from .persistence.sqlite import AccountExistsError, SQLitePersistence
from .signer import Signer

__all__ = ["register_device"]

_log = logging.getLogger("sensorseal.ledger.registry")

_I64_MIN = -(1 << 63)
_I64_MAX = (1 << 63) - 1


def register_device(
    store: SQLitePersistence,
    *,
    program_id: bytes,
    signer: Signer | None,
    device_pubkey: bytes,
    calibration_hash: bytes,
    now: int,
) -> DeviceRecord:
    """Create the Device account for ``device_pubkey`` owned by ``signer``.

    The account address is derived from the device key alone, so a second
    registration of the same key collides in the store and is rejected with
    ``account_already_in_use``.
    """

    if signer is None:
        raise_error(ErrorCode.INVALID_SIGNER, "Missing signer.", status_code=401)
    device_pubkey = require_size(device_pubkey, 32, "device_pubkey")
    calibration_hash = require_size(calibration_hash, 32, "calibration_hash")
    now = require_int_range(now, _I64_MIN, _I64_MAX, "created_at")

    derived = derive_device_address(device_pubkey, program_id)
    record = DeviceRecord(
        address=derived.address,
        authority=signer.pubkey,
        device_pubkey=device_pubkey,
        calibration_hash=calibration_hash,
        is_active=True,
        created_at=now,
    )
    try:
        store.insert_if_absent(
            derived.address,
            kind=AccountKind.DEVICE.value,
            data=encode_device(record),
            created_at=now,
        )
    except AccountExistsError:
        raise_error(
            ErrorCode.ACCOUNT_ALREADY_IN_USE,
            "Device already registered.",
            hint="Look the device up by its public key instead of registering it again.",
            status_code=409,
        )

    _log.info(
        "device registered: %s",
        device_pubkey.hex(),
        extra={"device_pubkey": device_pubkey.hex(), "address": derived.hex, "authority": signer.hex},
    )
    return record
