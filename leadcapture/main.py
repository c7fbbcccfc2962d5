"""
Lead capture chat service.
Main FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from leadcapture.config import get_settings
from leadcapture.api.router import api_router
from leadcapture.database import dispose_engine, init_models
from leadcapture.services.ai import is_generation_configured
from leadcapture.services.session_store import SessionStore
from leadcapture.services.submission import drain_background_tasks
from leadcapture.utils.logging import (
    configure_structured_logging,
    generate_correlation_id,
    set_correlation_id,
)

logger = logging.getLogger("leadcapture")


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Injects a correlation ID into every request context and response header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get("X-Correlation-ID") or generate_correlation_id()
        set_correlation_id(cid)
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = cid
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    settings = get_settings()
    logger.info("Lead capture starting up (env=%s)", settings.app_env)

    if not is_generation_configured():
        logger.warning(
            "Neither OPENAI_API_KEY nor ANTHROPIC_API_KEY is set - "
            "new sessions will open as unavailable."
        )
    if not settings.sheet_webhook_url:
        logger.warning("SHEET_WEBHOOK_URL not set - leads survive a database outage in the local backup only.")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                traces_sample_rate=0.1,
                environment=settings.app_env,
            )
            logger.info("Sentry initialized")
        except Exception as e:
            logger.warning("Sentry initialization failed: %s", str(e))

    await init_models()
    app.state.sessions = SessionStore(idle_timeout_minutes=settings.session_idle_timeout_minutes)

    yield

    logger.info("Lead capture shutting down - waiting for side channels...")
    await drain_background_tasks()
    await dispose_engine()
    logger.info("Lead capture shutdown complete")


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    # Configure structured JSON logging with correlation IDs
    configure_structured_logging(settings.log_level)

    application = FastAPI(
        title="Lead Capture",
        description="AI-assisted lead intake conversations",
        version="1.0.0",
        lifespan=lifespan,
    )

    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    return application


app = create_app()
