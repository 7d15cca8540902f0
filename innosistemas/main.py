"""InnoSistemas Backend - FastAPI Application Factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from innosistemas.api import api_router
from innosistemas.core import async_session_maker, settings, setup_logging
from innosistemas.core.config import Settings
from innosistemas.core.logging import get_logger
from innosistemas.middleware import IdentityMiddleware, SecurityHeadersMiddleware
from innosistemas.services.revocation_store import SqlRevocationStore, StoreUnavailableError
from innosistemas.services.signer import Signer, SigningKey
from innosistemas.services.token_validator import TokenValidator
from innosistemas.services.tokens import TokenService

logger = get_logger("main")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Background task {task.get_name()} failed: {exc}")


async def revocation_sweep_loop(
    store: SqlRevocationStore, interval: int, retention: timedelta
) -> None:
    """Periodically remove records of tokens expired for longer than ``retention``."""
    while True:
        await asyncio.sleep(interval)
        try:
            removed = await store.purge_expired(datetime.now(UTC) - retention)
            if removed > 0:
                logger.info(f"Cleaned up {removed} expired revocation records")
        except StoreUnavailableError:
            logger.exception("Error cleaning up revocation records")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    config: Settings = app.state.settings
    setup_logging(config.log_level, config.log_format)
    logger.info(f"Starting {config.app_name} v{config.app_version}")

    sweep_task = None
    if config.revocation_sweep_interval_seconds > 0:
        sweep_task = asyncio.create_task(
            revocation_sweep_loop(
                app.state.revocation_store,
                config.revocation_sweep_interval_seconds,
                timedelta(seconds=config.revocation_retention_seconds),
            ),
            name="revocation-sweep",
        )
        sweep_task.add_done_callback(task_done_callback)

    yield

    logger.info("Shutting down...")
    if sweep_task is not None:
        sweep_task.cancel()
        try:
            await sweep_task
        except asyncio.CancelledError:
            pass


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    logger.error(f"Revocation store unavailable: {request.method} {request.url.path} - {exc}")
    return JSONResponse(
        status_code=503,
        content={"detail": "Authentication temporarily unavailable"},
    )


def create_app(
    config: Settings | None = None,
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    The signing key is read from settings once, here, and handed to the
    Signer; every token component is built explicitly and kept on app.state.
    """
    config = config or settings
    session_maker = session_maker or async_session_maker

    app = FastAPI(
        title=config.app_name,
        description="InnoSistemas authentication and session service",
        version=config.app_version,
        lifespan=lifespan,
        docs_url="/docs" if config.debug else None,
        redoc_url="/redoc" if config.debug else None,
        openapi_url="/openapi.json" if config.debug else None,
    )

    store = SqlRevocationStore(session_maker, timeout=config.revocation_store_timeout_seconds)
    token_service = TokenService.from_settings(
        config,
        signer=Signer(SigningKey.from_settings(config)),
        store=store,
    )

    app.state.settings = config
    app.state.session_maker = session_maker
    app.state.revocation_store = store
    app.state.token_service = token_service
    app.state.token_validator = TokenValidator(token_service)

    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)

    # Resolves request.state.identity for every request
    app.add_middleware(IdentityMiddleware)

    app.add_middleware(SecurityHeadersMiddleware)

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )

    app.include_router(api_router)

    return app


# Application instance
app = create_app()
