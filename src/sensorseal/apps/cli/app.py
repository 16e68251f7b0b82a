from __future__ import annotations

import logging
import os

import typer

from sensorseal.apps.cli.commands import api, ledger

app = typer.Typer(help="SensorSeal: tamper-evident registry for sensor devices and their telemetry windows.")
app.add_typer(ledger.app, name="ledger")
app.add_typer(api.app, name="api")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="log ledger events to stderr")):
    level = logging.DEBUG if verbose or os.getenv("SENSORSEAL_CLI_DEBUG") == "1" else logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


if __name__ == "__main__":
    app()
