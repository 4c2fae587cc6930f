from __future__ import annotations

import asyncio
import traceback
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from institute_compass import __version__
from institute_compass.auth.crud import bootstrap_admin_if_needed
from institute_compass.auth.security import configure_password_rounds
from institute_compass.config import Config, load_config
from institute_compass.db import configure_pool, init_db, ping
from institute_compass.errors import AppError
from institute_compass.util.time import utcnow_iso

from .auth_routes import router as auth_router
from .auth_routes import users_router
from .fee_routes import router as fee_router
from .institute_routes import batches_router, enquiries_router, faculty_router, tests_router
from .records_routes import courses_router, settings_router, students_router


_TIMED_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


def _prepare_store(app: FastAPI) -> None:
    """Create the schema and bootstrap the first admin.

    A store that is down at startup does not stop the process: the app keeps
    serving and /health reports `database: disconnected`.
    """
    cfg: Config = app.state.cfg
    try:
        init_db(cfg.DB_DSN)
        boot = bootstrap_admin_if_needed(cfg)
    except AppError as e:
        app.state.schema_ready = False
        _debug(f"Database unavailable at startup ({e.detail}); running degraded")
        return
    app.state.schema_ready = True
    if boot:
        _debug(f"Bootstrapped initial admin user: email={boot.get('email')}")


def _error_response(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


def _install_error_handlers(app: FastAPI, cfg: Config) -> None:
    @app.exception_handler(AppError)
    async def _app_error(_request: Request, exc: AppError) -> JSONResponse:
        return _error_response(exc.status_code, {"detail": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(400, {"detail": "invalid_request", "errors": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def _unexpected(_request: Request, exc: Exception) -> JSONResponse:
        _debug(f"Unhandled error: {exc.__class__.__name__}: {exc}")
        body: Dict[str, Any] = {"detail": "internal_error"}
        if not cfg.is_production:
            body["trace"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=500, content=body)


def create_app(cfg: Config | None = None) -> FastAPI:
    """Build the API.

    Without an explicit config this reads the environment and refuses to start
    (RuntimeError) when production settings are incomplete.
    """
    cfg = cfg or load_config()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        configure_pool(
            cfg.DB_POOL_MAX,
            acquire_timeout=cfg.DB_POOL_TIMEOUT_SECONDS,
            connect_timeout=cfg.DB_CONNECT_TIMEOUT_SECONDS,
            statement_timeout=cfg.REQUEST_TIMEOUT_SECONDS,
        )
        configure_password_rounds(cfg.AUTH_PASSWORD_ROUNDS)
        _prepare_store(app)
        yield

    app = FastAPI(title="Institute Compass API", version=__version__, lifespan=_lifespan)
    # Make config available to auth deps and routes.
    app.state.cfg = cfg
    app.state.schema_ready = False

    # CORS is mainly needed for local development (Vite on :5173 -> API on :8000).
    origins = [o.strip() for o in (cfg.CORS_ALLOW_ORIGINS or "").split(",") if o.strip()]
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.middleware("http")
    async def _request_timeout(request: Request, call_next):
        # Writes are bounded by the store (statement_timeout, busy_timeout);
        # only reads are cut off here.
        if request.method not in _TIMED_METHODS:
            return await call_next(request)
        try:
            return await asyncio.wait_for(call_next(request), timeout=cfg.REQUEST_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            _debug(f"Request timed out: {request.method} {request.url.path}")
            return JSONResponse(status_code=504, content={"detail": "request_timeout"})

    _install_error_handlers(app, cfg)

    @app.get("/health")
    def health() -> Dict[str, Any]:
        connected = ping(cfg.DB_DSN)
        # Late recovery: the store came back after a degraded start.
        if connected and not app.state.schema_ready:
            _prepare_store(app)
        return {
            "status": "ok",
            "database": "connected" if connected else "disconnected",
            "time": utcnow_iso(),
            "version": __version__,
        }

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(fee_router)
    app.include_router(students_router)
    app.include_router(courses_router)
    app.include_router(settings_router)
    app.include_router(batches_router)
    app.include_router(faculty_router)
    app.include_router(tests_router)
    app.include_router(enquiries_router)
    return app
