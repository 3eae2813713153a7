"""
FastAPI Application Entry Point.

This is the main application file for the Poultry POS Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from poultry_backend.app.core.config import LockBackend, Settings, settings
from poultry_backend.app.api.v1.router import router as api_v1_router
from poultry_backend.app.core.observability import ObservabilityMiddleware, configure_logging, logger
from poultry_backend.app.core.redis_client import ping_redis
from poultry_backend.app.core.reliability import STORAGE_ERRORS
from poultry_backend.app.db.session import engine, Base
from poultry_backend.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from poultry_backend.app.models.truck import Truck  # noqa: F401
from poultry_backend.app.models.truck_load import TruckLoad  # noqa: F401
from poultry_backend.app.models.customer import Customer  # noqa: F401
from poultry_backend.app.models.invoice import Invoice  # noqa: F401
from poultry_backend.app.models.invoice_item import InvoiceItem  # noqa: F401
from poultry_backend.app.models.invoice_sequence import InvoiceSequence  # noqa: F401
from poultry_backend.app.models.payment import Payment  # noqa: F401
from poultry_backend.app.models.debt_adjustment import DebtAdjustment  # noqa: F401
from poultry_backend.app.models.daily_reconciliation import DailyReconciliation  # noqa: F401
from poultry_backend.app.models.aging_snapshot import AgingSnapshot  # noqa: F401
from poultry_backend.app.models.audit_log import AuditLog  # noqa: F401

configure_logging(settings.log_level)


def log_startup_policies(config: Settings) -> None:
    """Log the business policies in force, warning for those left at their default."""
    if "overpayment_policy" not in config.model_fields_set:
        logger.warning("OVERPAYMENT_POLICY not configured, defaulting to %s", config.overpayment_policy.value)
    logger.info(
        "Business policies in force: overpayment_policy=%s max_payment_amount=%s "
        "reconciliation_tolerance_kg=%s aging_bucket_boundaries=%s",
        config.overpayment_policy.value,
        config.max_payment_amount,
        config.reconciliation_tolerance_kg,
        config.aging_bucket_boundaries,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Logs the business policies in force.
    3. Disposes the connection pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Application started", extra={"lock_backend": settings.lock_backend.value})
    log_startup_policies(settings)
    yield
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Point-of-sale core for a poultry slaughterhouse: sales ledger, debt aging and daily truck reconciliation",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status of the database (and Redis when it backs the locks)
    """
    checks = {}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except STORAGE_ERRORS:
        checks["database"] = "unavailable"

    if settings.lock_backend == LockBackend.REDIS:
        checks["redis"] = "ok" if await ping_redis() else "unavailable"

    healthy = all(value == "ok" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "app_name": settings.app_name,
            "version": settings.api_version,
            "checks": checks,
        },
    )


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
        "message": "Welcome to the Poultry POS Backend API",
        "docs": "/docs",
        "health": "/health",
    }
