"""
FastAPI Application Entry Point.

Administrative and storefront search API for the catalog search index.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config.settings import get_settings
from internal.container import Container
from internal.domain.documents import EntityType
from internal.transport.http.middleware import MetricsMiddleware, RequestIDMiddleware
from internal.transport.http.v1.handlers import router, set_dependencies
from internal.transport.http.v1.store import router as store_router
from pkg.logger.logger import get_logger, setup_logging


# Load environment variables
load_dotenv()

settings = get_settings()

# Setup logging
setup_logging(
    level=settings.log_level,
    json_format=settings.log_format == "json",
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Handles startup and shutdown of resources.
    """
    logger.info("Starting catalog search API...")

    try:
        container = await Container.create(settings)
    except Exception as e:
        logger.error("Failed to initialize resources", error=str(e))
        raise

    for entity_type in EntityType:
        try:
            await container.gateway.ensure_index(entity_type)
        except Exception as e:
            logger.warning("Failed to ensure index exists", entity_type=entity_type.value, error=str(e))

    services = container.services
    set_dependencies(
        rebuild_use_case=services.rebuild,
        search_use_case=services.search,
        gateway=services.gateway,
        dispatcher=services.dispatcher,
    )
    app.state.container = container

    logger.info("Catalog search API started successfully")

    yield

    logger.info("Shutting down catalog search API...")
    set_dependencies(None, None, None, None)
    await container.close()
    logger.info("Catalog search API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Catalog Search Sync API",
    description="Keeps the product and category search indexes in sync with the catalog",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestIDMiddleware)

# Include routers
app.include_router(router)
app.include_router(store_router)


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with service information."""
    return {
        "service": "catalog-search-sync",
        "version": "1.0.0",
        "status": "running",
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
    )
