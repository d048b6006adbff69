"""
FastAPI application entry point for the Technician Analytics API.

This module configures logging, CORS and the database pool lifecycle, and
registers the performance and coordinator routers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from technician_analytics import __version__
from technician_analytics.core.database import init_db, close_db
from technician_analytics.api.performance import router as performance_router
from technician_analytics.api.coordinator import router as coordinator_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Initialize database connection pool

    On shutdown:
        - Close database connection pool
    """
    logger.info("Technician Analytics API starting")
    try:
        await init_db()
        logger.info("Database connection pool initialized")
    except Exception as e:
        # Endpoints retry pool creation lazily through get_db_pool()
        logger.error(f"Failed to initialize database: {e}")

    yield

    logger.info("Technician Analytics API shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="Technician Analytics API",
    version=__version__,
    description=(
        "Performance and routing analytics for pest-control technicians. "
        "Provides cohort rankings, monthly trends, pest specialization, "
        "utilization ratings and route optimization scores."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(performance_router, prefix="/performance", tags=["performance"])
app.include_router(coordinator_router, prefix="/coordinator", tags=["coordinator"])


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer health checks.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    """
    Root endpoint providing API information.

    Returns:
        Dict with API name and version
    """
    return {
        "name": "Technician Analytics API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "technician_analytics.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
