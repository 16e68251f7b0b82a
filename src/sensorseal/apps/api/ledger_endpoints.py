from __future__ import annotations

import os
import threading
from typing import Any

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from sensorseal.services.ledger import AggregateStats, ErrorCode, LedgerBackend
from sensorseal.services.ledger.errors import raise_error

router = APIRouter(prefix="/v1", tags=["ledger"])

_backend: LedgerBackend | None = None
_backend_lock = threading.Lock()


def get_backend() -> LedgerBackend:
    global _backend
    with _backend_lock:
        if _backend is None:
            _backend = LedgerBackend(
                db_path=os.getenv("SENSORSEAL_DB", "sensorseal.sqlite"),
                config_path=os.getenv("SENSORSEAL_CONFIG") or None,
            )
        return _backend


def close_backend() -> None:
    global _backend
    with _backend_lock:
        if _backend is not None:
            _backend.close()
            _backend = None


def _hex(value: str, label: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError:
        raise_error(ErrorCode.INVALID_ARGUMENT, f"{label} must be hex encoded.")


class RegisterDeviceReq(BaseModel):
    device_pubkey: str
    calibration_hash: str
    authority: str
    signature: str


class StatsReq(BaseModel):
    temp_min: float = 0.0
    temp_max: float = 0.0
    temp_avg: float = 0.0
    humidity_min: float = 0.0
    humidity_max: float = 0.0
    humidity_avg: float = 0.0
    pressure_min: float = 0.0
    pressure_max: float = 0.0
    pressure_avg: float = 0.0


class SubmitAggregateReq(BaseModel):
    window_start: int
    stats: StatsReq
    sample_count: int
    merkle_root: str
    offchain_uri: str
    authority: str
    signature: str


@router.post("/devices", status_code=201)
def register_device(req: RegisterDeviceReq, backend: LedgerBackend = Depends(get_backend)) -> dict[str, Any]:
    return backend.register_device(
        device_pubkey=_hex(req.device_pubkey, "device_pubkey"),
        calibration_hash=_hex(req.calibration_hash, "calibration_hash"),
        authority=req.authority,
        signature=req.signature,
    )


@router.get("/devices/by-pubkey/{pubkey}")
def find_device(pubkey: str, backend: LedgerBackend = Depends(get_backend)) -> dict[str, Any]:
    return backend.find_device(_hex(pubkey, "device_pubkey"))


@router.get("/devices/{address}")
def get_device(address: str, backend: LedgerBackend = Depends(get_backend)) -> dict[str, Any]:
    return backend.get_device(_hex(address, "device"))


@router.post("/devices/{address}/aggregates", status_code=201)
def submit_aggregate(
    address: str,
    req: SubmitAggregateReq,
    backend: LedgerBackend = Depends(get_backend),
) -> dict[str, Any]:
    return backend.submit_aggregate(
        device=_hex(address, "device"),
        window_start=req.window_start,
        stats=AggregateStats.from_mapping(req.stats.model_dump()),
        sample_count=req.sample_count,
        merkle_root=_hex(req.merkle_root, "merkle_root"),
        offchain_uri=req.offchain_uri,
        authority=req.authority,
        signature=req.signature,
    )


@router.get("/devices/{address}/aggregates")
def list_aggregates(
    address: str,
    start: int | None = Query(default=None),
    end: int | None = Query(default=None),
    backend: LedgerBackend = Depends(get_backend),
) -> dict[str, Any]:
    return backend.list_aggregates(_hex(address, "device"), start=start, end=end)


@router.get("/devices/{address}/aggregates/{window_start}")
def find_aggregate(address: str, window_start: int, backend: LedgerBackend = Depends(get_backend)) -> dict[str, Any]:
    return backend.find_aggregate(_hex(address, "device"), window_start)


@router.get("/devices/{address}/summary")
def summarize(
    address: str,
    start: int | None = Query(default=None),
    end: int | None = Query(default=None),
    backend: LedgerBackend = Depends(get_backend),
) -> dict[str, Any]:
    return backend.summarize(_hex(address, "device"), start=start, end=end)


@router.get("/aggregates/{address}")
def get_aggregate(address: str, backend: LedgerBackend = Depends(get_backend)) -> dict[str, Any]:
    return backend.get_aggregate(_hex(address, "aggregate"))
