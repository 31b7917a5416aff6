"""API Routers for Staybook reservations."""

from staybook.routers.bookings import router as bookings_router
from staybook.routers.calendar import router as calendar_router
from staybook.routers.payments import router as payments_router

__all__ = [
    "bookings_router",
    "calendar_router",
    "payments_router",
]
