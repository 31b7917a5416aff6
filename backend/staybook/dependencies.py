"""Per-request wiring of repositories and services."""

from datetime import datetime
from typing import Callable, Optional

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.clock import utcnow
from staybook.core.config import get_settings
from staybook.core.database import async_session_factory, get_db
from staybook.repositories import CalendarRepository, SqlCalendarRepository
from staybook.services.availability import AvailabilityService
from staybook.services.booking_engine import BookingEngine
from staybook.services.ical_sync import ICalSyncService
from staybook.services.notifications import NotificationService, Notifier
from staybook.services.payments import PaymentGateway, get_payment_gateway
from staybook.services.pricing import FeePolicy


async def get_repository(db: AsyncSession = Depends(get_db)) -> CalendarRepository:
    return SqlCalendarRepository(db)


def get_notifier() -> Notifier:
    return NotificationService(async_session_factory, get_settings())


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_ical_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Default network transport; replaced in tests."""
    return None


def get_availability_service(
    repo: CalendarRepository = Depends(get_repository),
) -> AvailabilityService:
    return AvailabilityService(repo)


def get_booking_engine(
    repo: CalendarRepository = Depends(get_repository),
    availability: AvailabilityService = Depends(get_availability_service),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: Notifier = Depends(get_notifier),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> BookingEngine:
    return BookingEngine(
        repo,
        availability,
        gateway,
        notifier,
        fee_policy=FeePolicy.from_settings(get_settings()),
        clock=clock,
    )


def get_ical_sync_service(
    repo: CalendarRepository = Depends(get_repository),
    availability: AvailabilityService = Depends(get_availability_service),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_ical_transport),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> ICalSyncService:
    return ICalSyncService(repo, availability, get_settings(), transport=transport, clock=clock)
