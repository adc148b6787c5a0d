"""Rental Billing Engine - FastAPI Entry Point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import engine, Base
from app.api import rentals
from app.services.rentals.errors import (
    RentalEngineError,
    ValidationError,
    NotFoundError,
    InvariantViolation,
    NotEligibleError,
)

from app import models  # noqa: F401  registers every table on Base.metadata

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (InvariantViolation, 409),
    (NotEligibleError, 409),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup (dev only); in prod use Alembic migrations."""
    if settings.environment == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()


app = FastAPI(
    title="Rental Billing API",
    description="Lease installments, payments, late penalties and security deposits",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(RentalEngineError)
async def rental_engine_error_handler(request: Request, exc: RentalEngineError):
    status_code = next((code for cls, code in _ERROR_STATUS if isinstance(exc, cls)), 400)
    logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Routers
app.include_router(rentals.router, prefix="/api/rentals", tags=["Rentals"])


@app.get("/api/health")
async def health_check():
    return {"status": "healthy", "service": "rental-billing-api", "version": "0.1.0"}
