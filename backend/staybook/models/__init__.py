"""SQLAlchemy models for Staybook reservations."""

from staybook.models.listing import Listing
from staybook.models.availability import AvailabilityBlock, PriceOverride
from staybook.models.booking import Booking
from staybook.models.calendar import Calendar
from staybook.models.notification import Notification

__all__ = [
    "Listing",
    "AvailabilityBlock",
    "PriceOverride",
    "Booking",
    "Calendar",
    "Notification",
]
