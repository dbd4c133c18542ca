"""
Marketplace backend - Main Application Entry Point

Listings, profiles and realtime buyer/seller chat.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from marketplace.core.config import get_settings
from marketplace.core.logger import setup_logger
from marketplace.services.realtime_service import realtime_hub

logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    logger.info("Starting marketplace backend in %s mode...", settings.ENVIRONMENT)

    if settings.is_local:
        from marketplace.infrastructure.local.database import init_db

        await init_db()

    yield

    logger.info("Shutting down marketplace backend...")
    # Ends open chat streams so their controllers close
    await realtime_hub.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Marketplace",
        description="Listings, profiles and buyer/seller chat",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    from marketplace.api import chats, listings, profiles

    app.include_router(listings.router, prefix="/api/listings", tags=["listings"])
    app.include_router(profiles.router, prefix="/api/profiles", tags=["profiles"])
    app.include_router(chats.router, prefix="/api/chats", tags=["chats"])

    # Mount storage for local development
    storage_path = settings.STORAGE_BASE_PATH
    if not os.path.isabs(storage_path):
        storage_path = os.path.join(os.getcwd(), storage_path)

    if os.path.exists(storage_path):
        app.mount("/storage", StaticFiles(directory=storage_path), name="storage")

    @app.get("/health")
    async def health_check():
        """Liveness plus the number of open chat subscriptions."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "realtime_subscribers": realtime_hub.subscriber_count(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "marketplace.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
