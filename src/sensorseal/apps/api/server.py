# src/sensorseal/apps/api/server.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from sensorseal.apps.api import ledger_endpoints
from sensorseal.services.ledger import LedgerError

_log = logging.getLogger("sensorseal.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        ledger_endpoints.close_backend()


async def _ledger_error(request: Request, exc: LedgerError) -> JSONResponse:
    _log.info("request rejected: %s", exc.code, extra={"path": request.url.path, "code": exc.code})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.envelope.as_dict()})


def create_app() -> FastAPI:
    app = FastAPI(title="SensorSeal ledger", lifespan=lifespan)
    app.add_exception_handler(LedgerError, _ledger_error)
    app.include_router(ledger_endpoints.router)

    @app.get("/health", tags=["meta"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    return app


app = create_app()
