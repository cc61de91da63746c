"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from prodai_engine import __version__
from prodai_engine.api.routes import admin, health, jobs, worker
from prodai_engine.config import settings
from prodai_engine.logging import get_logger, setup_logging

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("application_starting", version=__version__)

    # Startup: verify database connection
    try:
        from prodai_engine.db.session import init_db

        init_db()
        logger.info("database_connected")
    except SQLAlchemyError as e:
        logger.error("database_connection_failed", error=str(e))
        # Don't raise - let health checks report the issue

    yield

    # Shutdown
    logger.info("application_shutting_down")


# Create FastAPI app
app = FastAPI(
    title="Prodai Engine",
    description="Generation job pipeline for AI product images and videos",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Register routers
app.include_router(health.router)
app.include_router(worker.router, prefix="/api/v1")
app.include_router(jobs.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint redirect to docs."""
    return {
        "name": "Prodai Engine",
        "version": __version__,
        "docs": "/docs",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "prodai_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
