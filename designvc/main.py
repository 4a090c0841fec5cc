# designvc/main.py
from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from designvc.core.config import Settings, settings as default_settings
from designvc.routes import versions
from designvc.services.db import Database
from designvc.services.storage import BlobStore, get_blob_store
from designvc.services.versioning import PersistenceError, VersionNotFound, VersionStore

logging.basicConfig(stream=sys.stderr, level=default_settings.log_level.upper())
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    blob_store: Optional[BlobStore] = None,
) -> FastAPI:
    """
    Build the API. `db` / `blob_store` may be injected (tests); otherwise
    they are built from settings when the app starts.
    """
    cfg = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database = db or Database(cfg.database_url)
        blobs = blob_store or get_blob_store(cfg)
        database.open()
        app.state.db = database
        app.state.blob_store = blobs
        app.state.version_store = VersionStore(database, blobs, max_attempts=cfg.commit_max_attempts)
        logger.info(f"Version store ready (blob backend: {blobs.name})")
        try:
            yield
        finally:
            database.close()

    app = FastAPI(title="Design Version Control", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.ui_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logger.info(f"➡️ {request.method} {request.url.path}")
        return await call_next(request)

    # ───────── error → {"error": "..."} ─────────
    @app.exception_handler(VersionNotFound)
    async def _not_found(request: Request, exc: VersionNotFound):
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(PersistenceError)
    async def _persistence(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure on {request.method} {request.url.path}: {exc}")
        return JSONResponse({"error": str(exc)}, status_code=500)

    @app.exception_handler(StarletteHTTPException)
    async def _http(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse({"error": detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _invalid(request: Request, exc: RequestValidationError):
        errs = exc.errors()
        first = errs[0] if errs else {}
        where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        msg = first.get("msg", "Invalid request")
        return JSONResponse({"error": f"{where}: {msg}" if where else msg}, status_code=400)

    # ───────── service routes ─────────
    @app.get("/")
    def root():
        return {
            "status": "running",
            "service": "Version Control for Adobe Express",
            "endpoints": {
                "health": "/health",
                "versions": "/api/versions",
            },
        }

    @app.get("/health", response_class=PlainTextResponse)
    def health():
        return "OK"

    @app.get("/api/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(versions.router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("designvc.main:app", host="0.0.0.0", port=default_settings.port)
