"""Helpdesk Backend - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from helpdesk.api.error_handling import register_exception_handlers
from helpdesk.api.health import router as health_router
from helpdesk.api.router import api_router
from helpdesk.core import settings
from helpdesk.core.lifespan import shutdown, startup
from helpdesk.core.logging import get_logger
from helpdesk.middleware import RequestContextMiddleware, SecurityHeadersMiddleware
from helpdesk.services.email import EmailService, MailOutbox
from helpdesk.services.token_authority import TokenAuthority

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    authority: TokenAuthority = app.state.token_authority
    outbox: MailOutbox = app.state.mail_outbox
    tasks = await startup(logger, authority, outbox)

    yield

    logger.info("Shutting down...")
    await shutdown(logger, tasks, outbox)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Helpdesk ticketing backend",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    app.state.token_authority = TokenAuthority(
        settings.jwt_secret_bytes,
        access_ttl=timedelta(minutes=settings.jwt_access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.jwt_refresh_token_expire_days),
        revocation_retention=timedelta(hours=settings.revocation_retention_hours),
    )
    app.state.mail_outbox = MailOutbox(EmailService.from_settings(settings))

    register_exception_handlers(app)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    # CORS middleware - MUST be outermost (added last in Starlette LIFO order)
    # so that CORS headers are present on error responses too.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "X-Request-ID",
        ],
        expose_headers=["X-Request-ID"],
    )

    # Prometheus metrics (before routers so /metrics endpoint is registered first)
    if settings.enable_metrics:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator(
            excluded_handlers=["/health", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(health_router)
    app.include_router(api_router)

    upload_root = Path(settings.upload_dir)
    upload_root.mkdir(parents=True, exist_ok=True)
    app.mount("/uploads", StaticFiles(directory=upload_root), name="uploads")

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
