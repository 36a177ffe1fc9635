"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import bookings, calendars, public_booking
from scheduling.exceptions import (
    BookingEngineError,
    ConflictError,
    InvalidTransitionError,
    NoEligibleOwnerError,
    NotFoundError,
    ValidationError,
)
from shared.config import get_settings
from shared.logging_config import configure_logging

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Booking Engine API",
    version="1.0.0",
)

settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(calendars.router, tags=["calendars"])
app.include_router(bookings.router, tags=["bookings"])
app.include_router(public_booking.router, tags=["public"])

# Most specific class first
ERROR_STATUS_CODES: list[tuple[type[BookingEngineError], int]] = [
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidTransitionError, 409),
    (NoEligibleOwnerError, 422),
]


def status_code_for(exc: BookingEngineError) -> int:
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 400


@app.exception_handler(BookingEngineError)
async def booking_engine_exception_handler(request: Request, exc: BookingEngineError) -> JSONResponse:
    """Return the engine error as {"error_code", "error_message", "details"}."""
    status_code = status_code_for(exc)
    log = logger.error if isinstance(exc, NoEligibleOwnerError) else logger.info
    log(
        f"{exc.error_code}: {exc.message}",
        extra={"request_path": request.url.path},
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Returns:
        200 OK if PostgreSQL answers
        503 Service Unavailable otherwise
    """
    from sqlalchemy import text

    from database.connection import get_async_session

    health_status = {"status": "healthy", "postgres": "unknown"}
    status_code = 200

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["postgres"] = "connected"
    except Exception:
        logger.warning("Health check: PostgreSQL unreachable", exc_info=True)
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    return JSONResponse(status_code=status_code, content=health_status)
