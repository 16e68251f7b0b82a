"""Ledger CLI commands: key generation, registration, submission and lookups."""

from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import typer

from sensorseal.services.crypto.keys import generate_signing_key, load_private_key, public_key_bytes, write_private_key
from sensorseal.services.ledger import AggregateStats, LedgerBackend, LedgerError
from sensorseal.services.ledger.signer import (
    REGISTER_DEVICE,
    SUBMIT_AGGREGATE,
    aggregate_params,
    register_params,
    sign_request,
)

app = typer.Typer(help="Register devices and anchor aggregate windows.")

_DB_OPTION = typer.Option(None, "--db", help="SQLite database path (default: $SENSORSEAL_DB or ./sensorseal.sqlite)")
_CONFIG_OPTION = typer.Option(None, "--config", help="ledger config file (default: $SENSORSEAL_CONFIG or packaged)")


def _backend(db: Optional[Path], config: Optional[Path]) -> LedgerBackend:
    db_path = db or Path(os.getenv("SENSORSEAL_DB", "sensorseal.sqlite"))
    config_path = config or (Path(os.environ["SENSORSEAL_CONFIG"]) if os.getenv("SENSORSEAL_CONFIG") else None)
    return LedgerBackend(db_path=db_path, config_path=config_path)


def _hex(value: str, label: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise typer.BadParameter(f"{label} must be hex encoded") from exc


def _window_start(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise typer.BadParameter("window start must be unix seconds or an ISO-8601 timestamp") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp())


def _load_key(path: Path):
    try:
        return load_private_key(path)
    except (OSError, ValueError, TypeError) as exc:
        typer.secho(f"cannot load key {path}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc


def _emit(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


def _fail(exc: LedgerError) -> None:
    typer.secho(f"{exc.code}: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(1) from exc


@app.command("keygen")
def cmd_keygen(out: Path = typer.Option(..., "--out", "-o", help="where to write the PEM private key")):
    """Generate an Ed25519 key for an owner or a device."""
    if out.exists():
        typer.secho(f"{out} already exists", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    key = generate_signing_key()
    write_private_key(out, key)
    typer.echo(public_key_bytes(key).hex())


@app.command("register")
def cmd_register(
    key: Path = typer.Option(..., "--key", "-k", help="owner private key (PEM)"),
    device_pubkey: Optional[str] = typer.Option(None, "--device-pubkey", help="device public key hex; defaults to the owner key"),
    calibration_hash: str = typer.Option("00" * 32, "--calibration-hash", help="32-byte calibration fingerprint (hex)"),
    db: Optional[Path] = _DB_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
):
    """Register a device owned by the key holder."""
    owner = _load_key(key)
    pubkey = _hex(device_pubkey, "device pubkey") if device_pubkey else public_key_bytes(owner)
    cal = _hex(calibration_hash, "calibration hash")
    request = sign_request(owner, REGISTER_DEVICE, register_params(device_pubkey=pubkey, calibration_hash=cal))
    backend = _backend(db, config)
    try:
        result = backend.register_device(
            device_pubkey=pubkey,
            calibration_hash=cal,
            authority=request.authority,
            signature=request.signature,
        )
    except LedgerError as exc:
        _fail(exc)
    finally:
        backend.close()
    _emit(result)


@app.command("submit")
def cmd_submit(
    key: Path = typer.Option(..., "--key", "-k", help="owner private key (PEM)"),
    window_start: str = typer.Option(..., "--window-start", help="unix seconds or ISO-8601 timestamp"),
    merkle_root: str = typer.Option(..., "--merkle-root", help="32-byte Merkle root (hex)"),
    sample_count: int = typer.Option(..., "--sample-count"),
    stats: str = typer.Option("{}", "--stats", help="JSON object with temp/humidity/pressure min/max/avg"),
    uri: str = typer.Option("", "--uri", help="reference to the full off-system dataset"),
    device_pubkey: Optional[str] = typer.Option(None, "--device-pubkey", help="device public key hex; defaults to the owner key"),
    db: Optional[Path] = _DB_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
):
    """Anchor one aggregate window for a registered device."""
    owner = _load_key(key)
    pubkey = _hex(device_pubkey, "device pubkey") if device_pubkey else public_key_bytes(owner)
    try:
        stats_obj = AggregateStats.from_mapping(json.loads(stats))
    except (ValueError, TypeError, AttributeError) as exc:
        raise typer.BadParameter(f"invalid stats: {exc}") from exc
    start = _window_start(window_start)
    root = _hex(merkle_root, "merkle root")
    backend = _backend(db, config)
    try:
        device = backend.device_address(pubkey)
        request = sign_request(
            owner,
            SUBMIT_AGGREGATE,
            aggregate_params(
                device=device,
                window_start=start,
                stats=stats_obj,
                sample_count=sample_count,
                merkle_root=root,
                offchain_uri=uri,
            ),
        )
        result = backend.submit_aggregate(
            device=device,
            window_start=start,
            stats=stats_obj,
            sample_count=sample_count,
            merkle_root=root,
            offchain_uri=uri,
            authority=request.authority,
            signature=request.signature,
        )
    except LedgerError as exc:
        _fail(exc)
    finally:
        backend.close()
    _emit(result)


@app.command("device")
def cmd_device(
    device_pubkey: str = typer.Argument(..., help="device public key (hex)"),
    db: Optional[Path] = _DB_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
):
    """Show the Device account registered for a public key."""
    backend = _backend(db, config)
    try:
        result = backend.find_device(_hex(device_pubkey, "device pubkey"))
    except LedgerError as exc:
        _fail(exc)
    finally:
        backend.close()
    _emit(result)


@app.command("windows")
def cmd_windows(
    device_pubkey: str = typer.Argument(..., help="device public key (hex)"),
    start: Optional[str] = typer.Option(None, "--start"),
    end: Optional[str] = typer.Option(None, "--end"),
    db: Optional[Path] = _DB_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
):
    """List anchored windows of a device, oldest first."""
    backend = _backend(db, config)
    try:
        device = backend.device_address(_hex(device_pubkey, "device pubkey"))
        result = backend.list_aggregates(
            device,
            start=_window_start(start) if start else None,
            end=_window_start(end) if end else None,
        )
    except LedgerError as exc:
        _fail(exc)
    finally:
        backend.close()
    _emit(result)


@app.command("summary")
def cmd_summary(
    device_pubkey: str = typer.Argument(..., help="device public key (hex)"),
    start: Optional[str] = typer.Option(None, "--start"),
    end: Optional[str] = typer.Option(None, "--end"),
    db: Optional[Path] = _DB_OPTION,
    config: Optional[Path] = _CONFIG_OPTION,
):
    """Summarise anchored windows: extremes and sample-weighted averages."""
    backend = _backend(db, config)
    try:
        device = backend.device_address(_hex(device_pubkey, "device pubkey"))
        result = backend.summarize(
            device,
            start=_window_start(start) if start else None,
            end=_window_start(end) if end else None,
        )
    except LedgerError as exc:
        _fail(exc)
    finally:
        backend.close()
    _emit(result)
