"""
OrderHub Sync Engine - Main Application Entry Point.

Connects e-commerce platforms and shipping carriers, syncs their orders and
products into the local store and routes orders to warehouses.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orderhub.core.config import settings
from orderhub.core.database import close_db, init_db
from orderhub.core.logging import configure_logging, get_logger
from orderhub.middleware import ErrorHandlerMiddleware, RequestIdMiddleware
from orderhub.routers import (
    auth_router,
    gdpr_router,
    health_router,
    integrations_router,
    shipping_router,
    stores_router,
)

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize database
    await init_db()

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    yield

    # Shutdown
    logger.info("Shutting down application")
    await close_db()


def create_app() -> FastAPI:
    """
    Application factory function.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order and product sync engine for e-commerce platforms and shipping carriers",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    # Add middleware (order matters - last added = outermost)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Shopify-Hmac-Sha256",
            "X-Request-ID",
        ],
    )

    # Register routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(integrations_router)
    app.include_router(gdpr_router)
    app.include_router(stores_router)
    app.include_router(shipping_router)

    logger.info(
        "Application created",
        routes=len(app.routes),
        cors_origins=len(settings.allowed_origins),
    )

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "orderhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
