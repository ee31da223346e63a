"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from authgate.api.errors import register_exception_handlers
from authgate.api.middleware import RequestIDMiddleware
from authgate.api.router import api_router
from authgate.config import Settings, get_settings
from authgate.database import close_db
from authgate.logging import setup_logging
from authgate.services.delivery import get_delivery_backend
from authgate.services.rate_limit import InMemoryRateLimiter
from authgate.services.telegram import get_bot_transport

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup: Database initialization is handled by Alembic migrations
    setup_logging(app.state.settings)
    yield
    # Shutdown
    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application around one settings value.

    Process-wide collaborators (rate limiter, delivery, bot transport) live on
    ``app.state`` and are handed to request handlers through dependencies.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="authgate API",
        description="Phone, Telegram widget and Telegram bot sign-in",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug_enabled else None,
        redoc_url="/api/redoc" if settings.debug_enabled else None,
        openapi_url="/api/openapi.json" if settings.debug_enabled else None,
    )

    app.state.settings = settings
    app.state.rate_limiter = InMemoryRateLimiter(settings)
    app.state.delivery = get_delivery_backend(settings)
    app.state.bot_transport = get_bot_transport(settings)

    # Request ID middleware for distributed tracing
    app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
    )

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        "authgate.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=None,
    )
