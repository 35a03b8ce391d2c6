"""
SuperStock - Main Application Entry Point
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from superstock import __version__
from superstock.config import settings
from superstock.api.stock_data import router as stock_data_router
from superstock.data_providers.provider_init import create_api_key_manager, create_stock_data_service
from superstock.utils.logger import setup_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events handler."""
    # Startup
    setup_logging(settings)
    logger.info("🚀 Starting SuperStock quote service...")

    app.state.stock_data_service = await create_stock_data_service(settings)
    app.state.api_key_manager = create_api_key_manager(settings)
    logger.info("✅ Stock data providers initialized")

    yield

    # Shutdown
    logger.info("🛑 Shutting down SuperStock quote service...")
    await app.state.stock_data_service.shutdown()
    await app.state.api_key_manager.close()
    logger.info("👋 Goodbye!")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Multi-provider stock quote service with fallback and circuit breakers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(stock_data_router, prefix=f"{settings.API_V1_PREFIX}/stock-data", tags=["Stock Data"])

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": __version__,
        }

    return app


# Create the application instance
app = create_application()
