"""Deterministic addressing for ledger accounts.

Every record lives at an address derived from a fixed domain tag plus the
fields that identify it, so any party can locate a device or a window without
an index.  Derivation is modelled on program-derived addresses: seeds, a
one-byte ``bump`` and the program id are hashed with SHA-256 and the first
bump (counting down from 255) whose digest is *not* a valid Ed25519 point
wins.  Off-curve addresses can never collide with a real signing key.  The
program id is a local configuration value, so addresses are only meaningful
within one ledger deployment.

The module also hosts the UUIDv7 generator used for response event ids.
"""
from __future__ import annotations

from dataclasses import dataclass
import hashlib
import secrets
import time
import uuid
from typing import NewType, Sequence

__all__ = [
    "EventId",
    "DerivedAddress",
    "DEVICE_TAG",
    "AGGREGATE_TAG",
    "AddressDerivationError",
    "is_on_curve",
    "create_address",
    "find_address",
    "device_seeds",
    "aggregate_seeds",
    "derive_device_address",
    "derive_aggregate_address",
    "generate_event_id",
    "uuid7",
]

EventId = NewType("EventId", str)

DEVICE_TAG = b"device"
AGGREGATE_TAG = b"aggregate"

_PDA_MARKER = b"ProgramDerivedAddress"
_MAX_SEED_LEN = 32
_MAX_SEEDS = 16

# edwards25519 field prime and curve constant d = -121665/121666
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


class AddressDerivationError(ValueError):
    """Raised when seeds are malformed or no off-curve bump exists."""


@dataclass(frozen=True, slots=True)
class DerivedAddress:
    """An address together with the bump that produced it."""

    address: bytes
    bump: int

    @property
    def hex(self) -> str:
        return self.address.hex()


def is_on_curve(point: bytes) -> bool:
    """Return ``True`` when ``point`` decompresses to an Ed25519 curve point."""

    if len(point) != 32:
        return False
    # non-canonical y (p <= y < 2**255) is reduced, as curve25519-dalek does
    y = (int.from_bytes(point, "little") & ((1 << 255) - 1)) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def _check_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) >= _MAX_SEEDS:
        raise AddressDerivationError("too many seeds")
    for seed in seeds:
        if len(seed) > _MAX_SEED_LEN:
            raise AddressDerivationError(f"seed longer than {_MAX_SEED_LEN} bytes")


def _candidate(seeds: Sequence[bytes], bump: int, program_id: bytes) -> bytes:
    digest = hashlib.sha256()
    for seed in seeds:
        digest.update(seed)
    digest.update(bytes([bump]))
    digest.update(program_id)
    digest.update(_PDA_MARKER)
    return digest.digest()


def create_address(seeds: Sequence[bytes], bump: int, program_id: bytes) -> bytes:
    """Recompute an address from its seeds and a known bump."""

    _check_seeds(seeds)
    if not 0 <= bump <= 255:
        raise AddressDerivationError("bump must fit in one byte")
    candidate = _candidate(seeds, bump, program_id)
    if is_on_curve(candidate):
        raise AddressDerivationError("derived address lies on the ed25519 curve")
    return candidate


def find_address(seeds: Sequence[bytes], program_id: bytes) -> DerivedAddress:
    """Search bumps 255..0 and return the canonical derived address."""

    _check_seeds(seeds)
    for bump in range(255, -1, -1):
        candidate = _candidate(seeds, bump, program_id)
        if not is_on_curve(candidate):
            return DerivedAddress(address=candidate, bump=bump)
    raise AddressDerivationError("unable to find a viable bump")


def device_seeds(device_pubkey: bytes) -> list[bytes]:
    return [DEVICE_TAG, bytes(device_pubkey)]


def aggregate_seeds(device_address: bytes, window_start: int) -> list[bytes]:
    return [AGGREGATE_TAG, bytes(device_address), window_start.to_bytes(8, "little", signed=True)]


def derive_device_address(device_pubkey: bytes, program_id: bytes) -> DerivedAddress:
    return find_address(device_seeds(device_pubkey), program_id)


def derive_aggregate_address(device_address: bytes, window_start: int, program_id: bytes) -> DerivedAddress:
    return find_address(aggregate_seeds(device_address, window_start), program_id)


_UUID7_MASK_48 = (1 << 48) - 1
_UUID7_VERSION_BITS = 0x7
_UUID7_VARIANT_BITS = 0b10


def uuid7(ts: float | None = None) -> uuid.UUID:
    """Return a UUID version 7 value (millisecond timestamp + random bits)."""

    if ts is None:
        ts = time.time()

    unix_ts_ms = int(ts * 1000)
    if unix_ts_ms < 0 or unix_ts_ms > _UUID7_MASK_48:
        raise ValueError("timestamp out of range for UUIDv7")

    value = (unix_ts_ms & _UUID7_MASK_48) << 80
    value |= _UUID7_VERSION_BITS << 76
    value |= secrets.randbits(12) << 64
    value |= _UUID7_VARIANT_BITS << 62
    value |= secrets.randbits(62)
    return uuid.UUID(int=value)


def generate_event_id() -> EventId:
    return EventId(str(uuid7()))
