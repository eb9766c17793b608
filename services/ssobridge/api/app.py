"""
FastAPI application factory for the SSO bridge.

Uses lifespan handler for startup/shutdown with async resource management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ssobridge.auth.errors import SSOError
from ssobridge.auth.providers import build_registry, init_providers
from ssobridge.auth.sessions import RedisSessionIssuer
from ssobridge.auth.state import RedisStateStore, StateCache, StateTokenService
from ssobridge.config import settings
from ssobridge.db.session import close_db, init_db
from ssobridge.logging_config import configure_logging, get_logger
from ssobridge.redis.client import close_redis, init_redis
from ssobridge.services.session_bridge import SessionBridge
from ssobridge.services.user_store import SqlUserStore

from .health import router as health_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan handler for startup and shutdown."""
    # Startup
    configure_logging(json_logs=settings.json_logs, log_level=settings.log_level)
    logger.info("Starting SSO bridge", version="0.1.0")

    await init_db()
    await init_redis()

    sso = settings.sso
    state = StateTokenService(
        RedisStateStore(ttl=sso.state_ttl_seconds, consumed_ttl=sso.state_cache_ttl_seconds),
        StateCache(ttl=sso.state_cache_ttl_seconds),
        length=sso.state_length,
    )
    bridge = SessionBridge(
        users=SqlUserStore(),
        issuer=RedisSessionIssuer(
            session_ttl_hours=sso.session_ttl_hours,
            one_time_password_ttl=sso.one_time_password_ttl_seconds,
        ),
        frontend_url=settings.frontend_url,
    )
    registry = build_registry(state, bridge, sso)
    await init_providers(registry, sso)
    app.state.registry = registry

    yield

    # Shutdown
    logger.info("Shutting down SSO bridge")
    await close_redis()
    await close_db()


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="SSO Bridge",
        description="OAuth2/OIDC single sign-on bridge for GitHub, Google and OIDC issuers",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json",
    )

    # Request ID middleware
    @app.middleware("http")
    async def add_request_id(request: Request, call_next):  # type: ignore[no-untyped-def]
        """Ensure every request has a request ID for logging correlation."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        structlog.contextvars.unbind_contextvars("request_id")

        return response

    @app.exception_handler(SSOError)
    async def sso_exception_handler(request: Request, exc: SSOError) -> JSONResponse:
        """Terminal response for every login/callback failure."""
        logger.warning(
            "SSO request failed",
            kind=type(exc).__name__,
            reason=exc.reason,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled errors."""
        logger.error("Unhandled exception", exc_info=exc, path=str(request.url.path))
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.include_router(health_router)

    from ssobridge.api.routers.sso import router as sso_router

    app.include_router(sso_router)

    return app


# Application instance
app = create_application()
