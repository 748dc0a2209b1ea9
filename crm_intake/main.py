# crm_intake/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from crm_intake.core.config import Settings, get_settings
from crm_intake.core.exceptions import APIError, BaseAPIException
from crm_intake.core.logging import configure_structlog, get_structlog_logger
from crm_intake.db.session import create_database_engine, create_session_factory
from crm_intake.middleware.logging import LoggingMiddleware
from crm_intake.middleware.request_id import RequestIdMiddleware
from crm_intake.routes import health, lead

logger = get_structlog_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Owns the database engine: created on startup, disposed on shutdown."""
    settings: Settings = app.state.settings

    logger.info(
        "application.starting",
        environment=settings.environment,
        port=settings.api_port,
        log_level=settings.log_level,
        database_url=settings.safe_database_url(),
    )

    engine = create_database_engine(settings)
    app.state.db_engine = engine
    app.state.session_factory = create_session_factory(engine)

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            integrations=[
                AsyncioIntegration(),
                FastApiIntegration(),
                StarletteIntegration(),
            ],
            traces_sample_rate=1.0 if settings.is_development else 0.1,
            send_default_pii=False,
        )
        logger.info("sentry.initialized")

    logger.info("application.started")
    try:
        yield
    finally:
        logger.info("application.shutting_down")
        await engine.dispose()
        logger.info("database.connection_closed")
        logger.info("application.shutdown_complete")


async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions. Only ``exc.code`` reaches the client."""
    # Chained failures were logged with full context where they occurred.
    if exc.status_code >= 500 and exc.__cause__ is None:
        log = logger.error
    else:
        log = logger.warning
    log(
        "api.exception",
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        path=request.url.path,
        method=request.method,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions with a content-free body."""
    error_id = f"err_{uuid.uuid4().hex[:12]}"

    logger.error(
        "unhandled.exception",
        error_id=error_id,
        error_type=type(exc).__name__,
        error=str(exc),
        path=request.url.path,
        method=request.method,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIError().to_response(),
        headers={"X-Error-ID": error_id},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_structlog(settings)

    app = FastAPI(
        title="CRM Intake API",
        version="1.0.0",
        description="Zero-loss lead ingestion with idempotent deduplication",
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.origins(),
        allow_credentials=True,
        allow_methods=settings.methods(),
        allow_headers=settings.headers(),
        expose_headers=["X-Request-ID", "X-Response-Time"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(BaseAPIException, api_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(health.router)
    app.include_router(lead.router, prefix=settings.api_prefix, tags=["leads"])

    if not settings.is_testing:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    logger.info("application.configured", environment=settings.environment)
    return app


app = create_app()
