"""
FastAPI Application Entry Point.

This is the main application file for the ParcelHop Backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from parcelhop.app.core.config import settings
from parcelhop.app.api.v1.router import router as api_v1_router
from parcelhop.app.core.observability import ObservabilityMiddleware, configure_logging
from parcelhop.app.core.redis_client import ping_redis, close_redis
from parcelhop.app.db.session import engine, Base, AsyncSessionLocal
from parcelhop.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from parcelhop.app.services.scheduler import PackagingConfirmationScheduler

# Import models to ensure they are registered with Base
from parcelhop.app.models.user import User
from parcelhop.app.models.address import Address
from parcelhop.app.models.carrier_profile import CarrierProfile
from parcelhop.app.models.parcel import Parcel
from parcelhop.app.models.mission import Mission
from parcelhop.app.models.transaction import Transaction
from parcelhop.app.models.review import Review
from parcelhop.app.models.audit_log import AuditLog
from parcelhop.app.models.notification import Notification

logger = logging.getLogger("parcelhop")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging and creates database tables on startup.
    2. Starts the packaging auto-confirmation scheduler.
    3. On shutdown, stops the scheduler and lets an in-flight sweep finish.
    """
    configure_logging(settings.log_level)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if not await ping_redis():
        logger.warning("Redis unreachable at startup, pickup code limiting will fail")

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = PackagingConfirmationScheduler(AsyncSessionLocal)
        scheduler.start()
    app.state.scheduler = scheduler

    logger.info("%s started", settings.app_name)
    yield

    if scheduler is not None:
        await scheduler.stop()
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Parcel-delivery marketplace: vendors, carriers and delivery missions",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and whether a packaging
        sweep is currently running
    """
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "scheduler": {
            "enabled": scheduler is not None,
            "sweeping": scheduler.is_sweeping if scheduler else False,
        },
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to ParcelHop Backend API",
        "docs": "/docs",
        "health": "/health",
    }
