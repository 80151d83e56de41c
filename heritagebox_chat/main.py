"""FastAPI application entrypoint.

All routes prefixed /v1. Auto-generated OpenAPI docs at /docs.

The ChatState (session registry, relay buffer, transcript store, Slack
bridge, orchestrator) is built once during the lifespan and stored on
app.state for injection via Depends(). Relay retention and idle session
eviction run on APScheduler interval jobs.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
import logging
from typing import AsyncGenerator

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heritagebox_chat.api.v1.health import router as health_router
from heritagebox_chat.api.v1.relay import router as relay_router
from heritagebox_chat.api.v1.session import router as session_router
from heritagebox_chat.api.v1.slack import router as slack_router
from heritagebox_chat.core.config import settings
from heritagebox_chat.core.exceptions import ChatError
from heritagebox_chat.state import ChatState, build_state


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


def _sweep_relay_buffer(state: ChatState) -> None:
    """Drop aged-out relay entries. Called by APScheduler."""
    try:
        state.relay_buffer.evict_expired()
    except Exception as e:
        logger.error("relay_sweep_failed", error=str(e))


def _evict_idle_sessions(state: ChatState) -> None:
    """Forget ended and idle sessions. Called by APScheduler."""
    try:
        evicted = state.registry.evict_idle(
            timedelta(minutes=settings.session_idle_timeout_minutes)
        )
        if evicted:
            logger.info("idle_sessions_evicted", count=evicted)
    except Exception as e:
        logger.error("idle_session_eviction_failed", error=str(e))


def create_app(state: ChatState | None = None) -> FastAPI:
    """Build the API. A prebuilt state replaces the provider-backed one."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        # --- Startup ---
        logger.info("app_startup", env=settings.app_env)

        chat = state if state is not None else build_state(settings)
        app.state.chat = chat

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            _sweep_relay_buffer,
            "interval",
            minutes=settings.relay_sweep_minutes,
            args=[chat],
            id="relay_sweep",
        )
        scheduler.add_job(
            _evict_idle_sessions,
            "interval",
            minutes=5,
            args=[chat],
            id="idle_session_eviction",
        )
        scheduler.start()
        app.state.scheduler = scheduler

        logger.info("app_providers_ready")
        yield

        # --- Shutdown ---
        logger.info("app_shutdown")
        scheduler.shutdown(wait=False)
        await chat.aclose()

    app = FastAPI(
        title="Heritagebox Chat API",
        description="Customer chat widget backend with AI replies and Slack hand-off.",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS: the widget is embedded on the storefront origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        """Structured error response for all chat exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "error": {"code": "INVALID_REQUEST", "message": detail},
            },
        )

    # Mount all v1 routers
    app.include_router(health_router, prefix="/v1")
    app.include_router(session_router, prefix="/v1")
    app.include_router(relay_router, prefix="/v1")
    app.include_router(slack_router, prefix="/v1")
    return app


app = create_app()
