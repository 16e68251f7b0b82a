from __future__ import annotations

import json

from typer.testing import CliRunner

from sensorseal.apps.cli.app import app

runner = CliRunner()


def _keygen(path) -> str:
    result = runner.invoke(app, ["ledger", "keygen", "--out", str(path)])
    assert result.exit_code == 0, result.output
    return result.stdout.strip()


def test_cli_register_submit_and_query(tmp_path):
    db = str(tmp_path / "cli.sqlite")
    owner_pub = _keygen(tmp_path / "owner.pem")
    assert len(bytes.fromhex(owner_pub)) == 32

    result = runner.invoke(app, ["ledger", "register", "--key", str(tmp_path / "owner.pem"), "--db", db])
    assert result.exit_code == 0, result.output
    device = json.loads(result.stdout)["device"]
    assert device["device_pubkey"] == owner_pub
    assert device["calibration_hash"] == "00" * 32

    result = runner.invoke(
        app,
        [
            "ledger", "submit",
            "--key", str(tmp_path / "owner.pem"),
            "--window-start", "2023-11-14T22:13:20Z",
            "--merkle-root", "22" * 32,
            "--sample-count", "900",
            "--stats", json.dumps({"temp_min": 18, "temp_max": 24, "temp_avg": 21}),
            "--uri", "ipfs://cid1",
            "--db", db,
        ],
    )
    assert result.exit_code == 0, result.output
    aggregate = json.loads(result.stdout)["aggregate"]
    assert aggregate["window_start"] == 1_700_000_000
    assert aggregate["device"] == device["address"]

    result = runner.invoke(app, ["ledger", "windows", owner_pub, "--db", db])
    assert result.exit_code == 0, result.output
    assert [item["window_start"] for item in json.loads(result.stdout)["aggregates"]] == [1_700_000_000]

    result = runner.invoke(app, ["ledger", "summary", owner_pub, "--db", db])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["summary"]["metrics"]["temp"]["avg"] == 21.0


def test_cli_reports_ledger_errors(tmp_path):
    db = str(tmp_path / "cli.sqlite")
    owner_pub = _keygen(tmp_path / "owner.pem")
    _keygen(tmp_path / "intruder.pem")
    assert runner.invoke(app, ["ledger", "register", "--key", str(tmp_path / "owner.pem"), "--db", db]).exit_code == 0

    result = runner.invoke(
        app,
        [
            "ledger", "submit",
            "--key", str(tmp_path / "intruder.pem"),
            "--device-pubkey", owner_pub,
            "--window-start", "1700000000",
            "--merkle-root", "22" * 32,
            "--sample-count", "900",
            "--db", db,
        ],
    )
    assert result.exit_code == 1
    assert "unauthorized" in result.output

    result = runner.invoke(app, ["ledger", "device", "ab" * 32, "--db", db])
    assert result.exit_code == 1
    assert "account_not_found" in result.output


def test_keygen_refuses_to_overwrite(tmp_path):
    _keygen(tmp_path / "owner.pem")
    result = runner.invoke(app, ["ledger", "keygen", "--out", str(tmp_path / "owner.pem")])
    assert result.exit_code == 1


def test_unreadable_key_file_exits_cleanly(tmp_path):
    db = str(tmp_path / "cli.sqlite")
    result = runner.invoke(app, ["ledger", "register", "--key", str(tmp_path / "missing.pem"), "--db", db])
    assert result.exit_code == 1
    assert "cannot load key" in result.output
    assert not isinstance(result.exception, FileNotFoundError)

    (tmp_path / "garbage.pem").write_text("not a key", encoding="utf-8")
    result = runner.invoke(
        app,
        [
            "ledger", "submit",
            "--key", str(tmp_path / "garbage.pem"),
            "--window-start", "0",
            "--merkle-root", "22" * 32,
            "--sample-count", "1",
            "--db", db,
        ],
    )
    assert result.exit_code == 1
    assert "cannot load key" in result.output
