"""Staybook Reservations - FastAPI Application Entry Point."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from staybook.core.config import get_settings
from staybook.core.database import async_session_factory, create_all
from staybook.core.env_validation import validate_environment
from staybook.core.errors import BookingError
from staybook.routers import bookings_router, calendar_router, payments_router
from staybook.services.ical_sync import sync_loop

# Hard-fails (exit 1) if required configuration is missing
validate_environment()

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables for local SQLite and run the iCal sync scheduler."""
    if settings.debug and settings.database_url.startswith("sqlite"):
        await create_all()

    sync_task = None
    if settings.ical_sync_interval_minutes > 0:
        sync_task = asyncio.create_task(sync_loop(async_session_factory, settings))

    yield

    if sync_task is not None:
        sync_task.cancel()
        await asyncio.gather(sync_task, return_exceptions=True)


app = FastAPI(
    title=settings.app_name,
    description="Listing availability, reservations, payments and iCal calendar sync.",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

# In production, wildcard (*) is blocked by env_validation.py
print(f"🔒 CORS configured with origins: {settings.origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Render domain errors as ``{"error": kind, "detail": message}``."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# API v1 routers
app.include_router(bookings_router, prefix=settings.api_v1_prefix)
app.include_router(calendar_router, prefix=settings.api_v1_prefix)
app.include_router(payments_router, prefix=settings.api_v1_prefix)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}
