"""
Staybook - iCal Sync Adapter

Imports remote calendars (Airbnb, VRBO, Google...) as blocks and exports a
listing's unavailable ranges as a token-gated feed.

A sync replaces the calendar's own blocks only after the feed was fetched and
parsed. A failed fetch or parse keeps the previous blocks and is recorded on
the calendar for the next scheduled or manual retry.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staybook.core.clock import utcnow
from staybook.core.config import Settings
from staybook.core.errors import (
    BookingError,
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from staybook.core.security import generate_export_token, tokens_match
from staybook.models.enums import CalendarSource
from staybook.repositories.base import CalendarRepository
from staybook.repositories.sql import SqlCalendarRepository
from staybook.schemas.calendar import CalendarCreate, CalendarRecord, SyncResult
from staybook.services.availability import AvailabilityService
from staybook.services.ical import parse_ical, render_ical

logger = logging.getLogger(__name__)


class ICalSyncService:
    """Import and export of listing calendars."""

    def __init__(
        self,
        repo: CalendarRepository,
        availability: AvailabilityService,
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.availability = availability
        self.settings = settings
        self.transport = transport
        self.clock = clock

    async def create_calendar(
        self,
        listing_id: UUID,
        host_id: str,
        data: CalendarCreate,
    ) -> CalendarRecord:
        """Attach a calendar to a listing.

        Export calendars get a fresh capability token. Import calendars are
        synced once right away; a failure there is recorded, not raised.
        """
        await self.availability.require_host(listing_id, host_id)

        if data.source == CalendarSource.INTERNAL:
            calendar = CalendarRecord(
                listing_id=listing_id,
                source=CalendarSource.INTERNAL,
                ical_export_token=generate_export_token(),
                sync_enabled=False,
            )
        else:
            calendar = CalendarRecord(
                listing_id=listing_id,
                source=CalendarSource.ICAL,
                ical_url=str(data.ical_url),
            )

        async with self.repo.atomic(listing_id):
            if data.source == CalendarSource.INTERNAL:
                existing = await self.repo.list_calendars(
                    listing_id=listing_id, source=CalendarSource.INTERNAL
                )
                if existing:
                    raise ConflictError("Listing already has an export calendar")
            calendar = await self.repo.insert_calendar(calendar)

        logger.info(f"[ICAL] Calendar {calendar.id} ({calendar.source.value}) added to listing {listing_id}")

        if calendar.source == CalendarSource.ICAL:
            try:
                await self.sync_calendar(calendar.id)
            except ExternalServiceError as e:
                logger.warning(f"[ICAL] Initial sync of calendar {calendar.id} failed: {e.message}")
            calendar = await self.repo.get_calendar(calendar.id)

        return calendar

    async def fetch(self, url: str) -> str:
        """GET a remote feed with the configured timeout."""
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.ical_fetch_timeout_seconds,
                transport=self.transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(url, headers={"Accept": "text/calendar"})
                response.raise_for_status()
        except httpx.TimeoutException:
            raise ExternalServiceError("ical", "Timed out fetching remote calendar")
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "ical", f"Remote calendar returned HTTP {e.response.status_code}"
            )
        except httpx.HTTPError as e:
            raise ExternalServiceError("ical", f"Could not fetch remote calendar: {e}")

        return response.text

    async def sync_calendar(self, calendar_id: UUID, host_id: Optional[str] = None) -> SyncResult:
        """Fetch, parse and replace the calendar's blocks as one unit.

        When ``host_id`` is given it must own the calendar's listing.
        """
        calendar = await self.repo.get_calendar(calendar_id)
        if calendar is None:
            raise NotFoundError("Calendar")
        if host_id is not None:
            await self.availability.require_host(calendar.listing_id, host_id)
        if calendar.source != CalendarSource.ICAL:
            raise ValidationError("Only iCal calendars can be synced")
        if not calendar.sync_enabled:
            raise ConflictError("Calendar sync is disabled")

        try:
            events = parse_ical(await self.fetch(calendar.ical_url))
        except ExternalServiceError as e:
            await self._record_failure(calendar, e.message)
            raise

        synced_at = self.clock()
        async with self.repo.atomic(calendar.listing_id):
            blocks = await self.availability.replace_calendar_blocks(
                calendar, [(event.start, event.end) for event in events]
            )
            current = await self.repo.get_calendar(calendar.id)
            current.last_sync_at = synced_at
            current.last_sync_error = None
            await self.repo.update_calendar(current)

        logger.info(
            f"[ICAL] Synced calendar {calendar.id}: {len(events)} events, {len(blocks)} blocks"
        )
        return SyncResult(
            calendar_id=calendar.id,
            listing_id=calendar.listing_id,
            events_parsed=len(events),
            blocks_written=len(blocks),
            synced_at=synced_at,
        )

    async def _record_failure(self, calendar: CalendarRecord, message: str) -> None:
        logger.warning(f"[ICAL] Sync of calendar {calendar.id} failed: {message}")
        async with self.repo.atomic(calendar.listing_id):
            current = await self.repo.get_calendar(calendar.id)
            if current is None:
                return
            current.last_sync_error = message[:500]
            await self.repo.update_calendar(current)

    async def sync_all(self) -> list[SyncResult]:
        """Sync every enabled iCal calendar; one failure does not stop the batch."""
        calendars = await self.repo.list_calendars(source=CalendarSource.ICAL, sync_enabled=True)

        results = []
        for calendar in calendars:
            try:
                results.append(await self.sync_calendar(calendar.id))
            except BookingError as e:
                logger.warning(f"[ICAL] Skipping calendar {calendar.id}: {e.message}")

        logger.info(f"[ICAL] Sync run finished: {len(results)}/{len(calendars)} calendars synced")
        return results

    async def export_calendar(self, listing_id: UUID, token: str) -> str:
        """Render the listing feed for a holder of a valid export token."""
        calendars = await self.repo.list_calendars(
            listing_id=listing_id, source=CalendarSource.INTERNAL
        )
        if not any(
            c.ical_export_token and tokens_match(c.ical_export_token, token) for c in calendars
        ):
            raise ForbiddenError("Invalid export token")

        listing = await self.availability.get_listing(listing_id)
        blocks = await self.repo.list_blocks(listing_id)
        return render_ical(listing, blocks, self.settings)


async def run_scheduled_sync(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> list[SyncResult]:
    """One sync run over all enabled calendars with a fresh session."""
    async with session_factory() as session:
        repo = SqlCalendarRepository(session)
        service = ICalSyncService(repo, AvailabilityService(repo), settings)
        return await service.sync_all()


async def sync_loop(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
) -> None:
    """Background task: sync every ``ical_sync_interval_minutes`` until cancelled."""
    interval = settings.ical_sync_interval_minutes * 60
    logger.info(f"[SCHEDULER] iCal sync every {settings.ical_sync_interval_minutes} minutes")
    while True:
        try:
            await asyncio.sleep(interval)
            await run_scheduled_sync(session_factory, settings)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"[SCHEDULER] iCal sync run failed: {e}")
