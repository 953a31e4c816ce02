"""
FastAPI Application Entry Point.

This is the main application file for the Ordering Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Depends
from fastapi.exceptions import RequestValidationError
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from ordering_backend.app.core.config import settings
from ordering_backend.app.core.redis_client import get_redis
from ordering_backend.app.api.v1.router import router as api_v1_router
from ordering_backend.app.core.observability import ObservabilityMiddleware, configure_logging
from ordering_backend.app.db.session import engine, Base
from ordering_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    sqlalchemy_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from ordering_backend.app.models.tenant import Tenant
from ordering_backend.app.models.user import User
from ordering_backend.app.models.audit_log import AuditLog
from ordering_backend.app.models.route import Route  # before orders for FK
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.route_stop import RouteStop
from ordering_backend.app.models.payment import Payment
from ordering_backend.app.models.customer_relationship import CustomerRelationship

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Order, route and ledger reconciliation for multi-tenant B2B ordering",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check(redis_client=Depends(get_redis)):
    """
    Health check endpoint.

    Redis only carries invalidation events, so an unreachable Redis is
    reported but does not make the service unhealthy.

    Returns:
        dict: Status and application information
    """
    try:
        redis_up = bool(await redis_client.ping())
    except (RedisError, OSError):
        redis_up = False

    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": "up" if redis_up else "down",
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
        "message": "Welcome to the Ordering Backend API",
        "docs": "/docs",
        "health": "/health",
    }
