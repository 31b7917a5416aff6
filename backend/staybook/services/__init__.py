"""Services for Staybook reservations."""

from staybook.services.availability import AvailabilityService
from staybook.services.booking_engine import BookingEngine
from staybook.services.ical_sync import ICalSyncService
from staybook.services.notifications import NotificationService, Notifier
from staybook.services.payments import PaymentGateway, StripeGateway, get_payment_gateway
from staybook.services.pricing import FeePolicy, calculate_price
from staybook.services.refunds import calculate_refund

__all__ = [
    "AvailabilityService",
    "BookingEngine",
    "ICalSyncService",
    "NotificationService",
    "Notifier",
    "PaymentGateway",
    "StripeGateway",
    "get_payment_gateway",
    "FeePolicy",
    "calculate_price",
    "calculate_refund",
]
