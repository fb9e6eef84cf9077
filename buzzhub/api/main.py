"""FastAPI application factory and configuration."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from buzzhub import __version__
from buzzhub.api.dependencies import build_storage
from buzzhub.api.routes import (
    conversations_router,
    health_router,
    subscriptions_router,
    users_router,
)
from buzzhub.core.config import settings
from buzzhub.core.exceptions import AppException
from buzzhub.services.delivery import DeliveryBus, SubscriptionRegistry
from buzzhub.services.messaging import MessageRouter
from buzzhub.storage.base import StorageBackend
from buzzhub.storage.memory import InMemoryStorage

# Configure structured logging
logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer() if settings.log_format == "json" else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info(
        "Starting BuzzHub API",
        environment=settings.app_env,
        debug=settings.app_debug,
        storage=settings.storage_backend,
    )

    storage: StorageBackend = app.state.storage

    # Seed demo users in development
    if settings.is_development and isinstance(storage, InMemoryStorage):
        await storage.seed_demo_users()
        logger.info("Seeded demo users for development")

    yield

    # Shutdown
    logger.info("Shutting down BuzzHub API")
    await app.state.bus.close()
    await storage.close()


def create_app(storage: StorageBackend | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        storage: Backend to use instead of the one selected by settings
    """
    app = FastAPI(
        title="BuzzHub API",
        description="Real-time conversational messaging",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Messaging components, owned by this app instance
    bus = DeliveryBus(
        queue_size=settings.delivery_queue_size,
        handler_timeout=settings.delivery_handler_timeout_seconds,
    )
    app.state.storage = storage or build_storage(settings)
    app.state.bus = bus
    app.state.registry = SubscriptionRegistry(bus)
    app.state.router = MessageRouter(app.state.storage, bus)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else settings.cors_origins,
        allow_credentials=not settings.is_development,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        """Handle application-specific exceptions."""
        logger.warning(
            "Application exception",
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": exc.code,
                "message": exc.message,
                "details": exc.details,
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception", error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(conversations_router)
    app.include_router(subscriptions_router)

    # Root endpoint
    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "BuzzHub API",
            "version": __version__,
            "status": "running",
        }

    return app


# Create default app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "buzzhub.api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
    )
