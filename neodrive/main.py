# Filename: neodrive/main.py
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional
import asyncio
import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Routers
from .routers import (
    auth as auth_router,
    billing as billing_router,
    files as files_router,
    root as root_router,
    storage as storage_router,
    user as user_router,
)
from .billing import PaymentGateway
from .config import Settings, get_settings
from .db import init_db, make_engine, seed_plans
from .errors import UpstreamError
from .logging_config import configure_logging
from .sessions import SessionStore
from .storage import build_object_store

logger = logging.getLogger(__name__)


def _split(value: str):
    return ["*"] if value == "*" else [v.strip() for v in value.split(",") if v.strip()]


async def _sweep_sessions(store: SessionStore, interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        store.sweep()


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    init_db(app.state.engine, settings)
    seed_plans(app.state.engine, settings)

    if app.state.storage.check():
        logger.info("Object storage (%s) is reachable", settings.storage_backend)
    else:
        logger.warning("Object storage (%s) is not reachable", settings.storage_backend)

    sweeper = asyncio.create_task(_sweep_sessions(app.state.sessions, settings.session_sweep_interval_seconds))
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        app.state.sessions.clear()
        app.state.engine.dispose()


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid data", "errors": errors},
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def upstream_exception_handler(request: Request, exc: UpstreamError):
    logger.exception("Upstream failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": exc.public_message},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = make_engine(settings)
    app.state.sessions = SessionStore(ttl=timedelta(seconds=settings.session_ttl_seconds))
    app.state.storage = build_object_store(settings)
    app.state.payments = PaymentGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_split(settings.cors_allow_origins),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=_split(settings.cors_allow_methods),
        allow_headers=_split(settings.cors_allow_headers),
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(UpstreamError, upstream_exception_handler)

    app.include_router(root_router.router)
    app.include_router(auth_router.router)
    app.include_router(user_router.router)
    app.include_router(files_router.router)
    app.include_router(storage_router.router)
    app.include_router(billing_router.router)
    return app


app = create_app()
