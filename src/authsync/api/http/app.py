"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.authsync.api.http.app_data import (
    ApplicationDependencies,
    build_application_dependencies,
)
from src.authsync.api.http.envelope import register_exception_handlers
from src.authsync.api.http.middleware.auth import AuthMiddleware
from src.authsync.api.http.routers.auth import router as auth_router
from src.authsync.api.http.routers.health import router as health_router
from src.authsync.api.utils.app_startup import configure_logging
from src.authsync.core.security import extract_request_metadata
from src.authsync.runtime.config.config_data import ConfigData
from src.authsync.runtime.context import get_config

# Initialize logging
configure_logging()


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, *, hsts: bool) -> None:
        super().__init__(app)
        self._hsts = hsts

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault(
            "Referrer-Policy", "strict-origin-when-cross-origin"
        )
        response.headers.setdefault("Cache-Control", "no-store")
        # HSTS only in prod
        if self._hsts:
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


def validate_startup_config(config: ConfigData) -> None:
    """Fail fast on configuration that would make every login fail or leak."""
    if config.app.is_production and "*" in config.app.cors.origins:
        raise RuntimeError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    idp = config.identity_provider
    if config.app.environment != "test":
        missing = [
            name
            for name, value in (("client_id", idp.client_id), ("api_key", idp.api_key))
            if not value
        ]
        if missing:
            raise RuntimeError(f"identity_provider.{', '.join(missing)} not configured")

    if not config.auth.cookie_encryption_key:
        if config.app.is_production:
            raise RuntimeError("auth.cookie_encryption_key is required in production")
        logger.warning(
            "No cookie encryption key configured; using an ephemeral key. "
            "Sessions will not survive a restart."
        )


# --- Lifecycle hooks ---
async def startup(app: FastAPI) -> None:
    config: ConfigData = app.state.config
    logger.info("Starting up application in {} environment", config.app.environment)

    if getattr(app.state, "app_dependencies", None) is None:
        validate_startup_config(config)
        app.state.app_dependencies = build_application_dependencies(config)

    deps: ApplicationDependencies = app.state.app_dependencies
    deps.database_service.create_all()
    logger.info("Credential methods enabled: {}", deps.credential_verifiers.methods)


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    deps: ApplicationDependencies | None = getattr(app.state, "app_dependencies", None)
    if deps is not None:
        await deps.provider_client.aclose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


# --- Request logging middleware ---
async def log_requests(request: Request, call_next):
    # Correlation / tracing
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    metadata = extract_request_metadata(request)

    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": metadata.ip_address or "unknown",
        "user_agent": metadata.user_agent or "unknown",
    }

    start = time.perf_counter()

    # Everything that logs within this block inherits base_ctx
    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)
        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={"success": False, "message": "internal error"},
                headers={"X-Request-ID": request_id},
            )

        duration_ms = (time.perf_counter() - start) * 1000
        logger.bind(
            status_code=response.status_code,
            duration_ms=round(duration_ms, 1),
        ).info("request.end")

        # Attach correlation id
        response.headers.setdefault("X-Request-ID", request_id)
        return response


def create_app(config: ConfigData | None = None) -> FastAPI:
    """Build the application.

    Dependencies are wired on startup unless ``app.state.app_dependencies`` was
    set beforehand, which is how tests inject fakes.
    """
    config = config or get_config()
    production = config.app.is_production

    app = FastAPI(
        title="authsync",
        lifespan=lifespan,
        docs_url=None if production else "/docs",
        redoc_url=None if production else "/redoc",
    )
    app.state.config = config
    app.state.app_dependencies = None

    register_exception_handlers(app)

    # Added innermost first: auth runs after CORS has answered preflights.
    app.add_middleware(AuthMiddleware)
    app.add_middleware(SecurityHeadersMiddleware, hsts=production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    app.middleware("http")(log_requests)

    # --- Router registration ---
    app.include_router(health_router)
    app.include_router(auth_router)
    return app


app = create_app()

# expose startup for tests
__all__ = ["app", "create_app", "startup", "shutdown"]


if __name__ == "__main__":
    import uvicorn

    # access logging happens in middleware
    uvicorn.run(
        app,
        host=app.state.config.app.host,
        port=app.state.config.app.port,
        access_log=False,
    )
