from __future__ import annotations

import logging
import sqlite3

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from forecast_tracker import database
from forecast_tracker.config import load_config
from forecast_tracker.core.errors import Forbidden, InvalidState, NotFound, ValidationError
from forecast_tracker.core.models import RuleKind
from webapp.recurring_routes import build_recurring_router
from webapp.resource_routes import build_entry_router
from webapp.resource_routes import router as resource_router

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message}, headers=headers)


def _format_validation(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return "; ".join(parts) or "invalid request"


def create_app(db_path: str | None = None) -> FastAPI:
    """Build the API bound to ``db_path`` (falls back to the configured path)."""
    if db_path is None:
        db_path = str(load_config()["db_path"])
    database.init_db(db_path)

    app = FastAPI(title="Forecast API")
    app.state.db_path = db_path

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound):
        return _error(404, str(exc))

    @app.exception_handler(Forbidden)
    async def _forbidden(request: Request, exc: Forbidden):
        return _error(403, str(exc))

    @app.exception_handler(InvalidState)
    async def _invalid_state(request: Request, exc: InvalidState):
        return _error(400, str(exc))

    @app.exception_handler(ValidationError)
    async def _invalid(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _bad_request(request: Request, exc: RequestValidationError):
        return _error(400, _format_validation(exc))

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(sqlite3.Error)
    async def _storage_error(request: Request, exc: sqlite3.Error):
        logger.exception("Storage failure on %s %s", request.method, request.url.path)
        return _error(500, "internal error")

    @app.get("/health", tags=["meta"])
    def health():
        return {"status": "ok"}

    app.include_router(resource_router)
    for kind in RuleKind:
        app.include_router(build_entry_router(kind))
        app.include_router(build_recurring_router(kind))
    return app
