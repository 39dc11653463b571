"""
Challenge League Scheduler API Server

FastAPI server that exposes the prompt phase scheduler: cron entry points,
manual phase transitions and prompt queue administration.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from challenge_league.api.routes import router, limiter as routes_limiter
from challenge_league.database import db
from challenge_league.models.schemas import HealthResponse
from challenge_league.services import redis_service
from challenge_league.services.scheduler_worker import (
    get_scheduler_worker,
    is_scheduler_worker_enabled,
)

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    # Startup
    logger.info("Starting up Challenge League Scheduler API...")

    # Initialize database (create tables if they don't exist)
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)
        # Don't raise - allow app to start even if initialization fails

    # Start in-process scheduler (external cron is the primary trigger)
    if is_scheduler_worker_enabled():
        try:
            get_scheduler_worker().start()
        except Exception as e:
            logger.error(f"Failed to start scheduler worker: {e}", exc_info=True)

    yield  # App is running

    # Shutdown
    logger.info("Shutting down Challenge League Scheduler API...")

    if is_scheduler_worker_enabled():
        try:
            get_scheduler_worker().stop()
        except Exception as e:
            logger.error(f"Error stopping scheduler worker: {e}", exc_info=True)

    # Close Redis connection
    try:
        await redis_service.close_redis_connection()
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


app = FastAPI(
    title="Challenge League Scheduler API",
    description="Prompt phase scheduler for Challenge League photo challenges",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware; origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(router)


@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
