"""Signer verification and the authority-check primitive.

Callers prove their identity by signing the canonical JSON form of the
operation and its parameters with an Ed25519 key.  Replaying a signed
request is harmless: the target address is already occupied after the first
success, so the store rejects the copy.
"""
from __future__ import annotations

import hmac
import json
import struct
from dataclasses import dataclass
from typing import Any, Mapping

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from ..crypto.keys import public_key_bytes
from .enums import ErrorCode
from .errors import raise_error
from .models import AggregateStats

__all__ = [
    "Signer",
    "SignedRequest",
    "REGISTER_DEVICE",
    "SUBMIT_AGGREGATE",
    "canonical_message",
    "register_params",
    "aggregate_params",
    "sign_request",
    "verify_signer",
    "require_authority",
]

REGISTER_DEVICE = "register_device"
SUBMIT_AGGREGATE = "submit_aggregate"


@dataclass(frozen=True, slots=True)
class Signer:
    """A caller identity whose signature has been verified."""

    pubkey: bytes

    @property
    def hex(self) -> str:
        return self.pubkey.hex()


@dataclass(frozen=True, slots=True)
class SignedRequest:
    operation: str
    params: Mapping[str, Any]
    authority: str
    signature: str


def _normalise(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, Mapping):
        return {str(key): _normalise(item) for key, item in value.items()}
    return value


def canonical_message(operation: str, params: Mapping[str, Any]) -> bytes:
    body = {"op": operation, **_normalise(params)}
    return json.dumps(body, ensure_ascii=False, separators=(",", ":"), sort_keys=True).encode("utf-8")


def _stat_hex(value: float) -> str:
    try:
        return struct.pack("<f", value).hex()
    except (OverflowError, TypeError, struct.error):
        raise_error(ErrorCode.INVALID_ARGUMENT, "stats must be representable as 32-bit floats.")


def _utf8_text(value: str, label: str) -> str:
    if not isinstance(value, str):
        raise_error(ErrorCode.INVALID_ARGUMENT, f"{label} must be text.")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        raise_error(ErrorCode.INVALID_ARGUMENT, f"{label} must be valid UTF-8 text.")
    return value


def register_params(*, device_pubkey: bytes, calibration_hash: bytes) -> dict[str, Any]:
    return {"device_pubkey": device_pubkey, "calibration_hash": calibration_hash}


def aggregate_params(
    *,
    device: bytes,
    window_start: int,
    stats: AggregateStats,
    sample_count: int,
    merkle_root: bytes,
    offchain_uri: str,
) -> dict[str, Any]:
    return {
        "device": device,
        "window_start": int(window_start),
        # f32 bytes, so 18 and 18.0 sign the same message
        "stats": {name: _stat_hex(value) for name, value in stats.as_dict().items()},
        "sample_count": int(sample_count),
        "merkle_root": merkle_root,
        "offchain_uri": _utf8_text(offchain_uri, "offchain_uri"),
    }


def sign_request(private_key: Ed25519PrivateKey, operation: str, params: Mapping[str, Any]) -> SignedRequest:
    """Client-side helper producing a request the backend will accept."""

    public = public_key_bytes(private_key)
    signature = private_key.sign(canonical_message(operation, params))
    return SignedRequest(operation=operation, params=params, authority=public.hex(), signature=signature.hex())


def _decode_hex(value: str | bytes | None, *, size: int, label: str) -> bytes:
    if value is None or value == "" or value == b"":
        raise_error(ErrorCode.INVALID_SIGNER, f"Missing {label}.", status_code=401)
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        try:
            raw = bytes.fromhex(value)
        except ValueError:
            raise_error(ErrorCode.INVALID_SIGNER, f"Malformed {label}.", status_code=401)
    if len(raw) != size:
        raise_error(ErrorCode.INVALID_SIGNER, f"{label.capitalize()} must be {size} bytes.", status_code=401)
    return raw


def verify_signer(authority: str | bytes | None, signature: str | bytes | None, message: bytes) -> Signer:
    """Verify that ``authority`` signed ``message`` and return the identity."""

    pubkey = _decode_hex(authority, size=32, label="authority")
    sig = _decode_hex(signature, size=64, label="signature")
    try:
        Ed25519PublicKey.from_public_bytes(pubkey).verify(sig, message)
    except (InvalidSignature, ValueError):
        raise_error(ErrorCode.INVALID_SIGNER, "Signature verification failed.", status_code=401)
    return Signer(pubkey=pubkey)


def require_authority(signer: Signer, expected: bytes) -> None:
    if not hmac.compare_digest(signer.pubkey, expected):
        raise_error(
            ErrorCode.UNAUTHORIZED,
            "Unauthorized: not device authority.",
            status_code=403,
        )
