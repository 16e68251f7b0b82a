# src/sensorseal/apps/cli/commands/api.py
import os
from pathlib import Path
from typing import Optional

import typer
import uvicorn

app = typer.Typer(help="HTTP API for the ledger")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(8777, "--port"),
    reload: bool = typer.Option(False, "--reload", help="for development"),
    db: Optional[Path] = typer.Option(None, "--db", help="SQLite database path"),
    config: Optional[Path] = typer.Option(None, "--config", help="ledger config file"),
):
    """Serve the ledger HTTP API (FastAPI)."""
    # the app builds its backend lazily from the environment
    if db is not None:
        os.environ["SENSORSEAL_DB"] = str(db)
    if config is not None:
        os.environ["SENSORSEAL_CONFIG"] = str(config)
    uvicorn.run("sensorseal.apps.api.server:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
