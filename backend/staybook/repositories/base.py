"""Persistence interface for listings, blocks, prices, bookings and calendars."""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from typing import Optional
from uuid import UUID

from staybook.models.enums import BookingStatus, CalendarSource
from staybook.schemas.availability import BlockRecord, PriceOverrideRecord
from staybook.schemas.booking import BookingRecord
from staybook.schemas.calendar import CalendarRecord
from staybook.schemas.listing import ListingRecord


class CalendarRepository(ABC):
    """Abstract datastore used by the availability store and booking engine.

    Records returned are copies; mutating one has no effect until it is passed
    back to an ``update_*`` method.

    Writes must happen inside ``atomic(listing_id)``: the unit of work that
    serializes all mutations on one listing and commits or rolls back as a
    whole. ``atomic`` is re-entrant within the same task.
    """

    @abstractmethod
    def atomic(self, listing_id: UUID) -> AbstractAsyncContextManager[None]:
        """Serialize and transact all work on ``listing_id`` inside the block."""
        pass

    # Listings

    @abstractmethod
    async def get_listing(self, listing_id: UUID) -> Optional[ListingRecord]:
        pass

    # Blocks

    @abstractmethod
    async def list_blocks(
        self,
        listing_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[BlockRecord]:
        """Blocks of a listing, optionally only those overlapping ``[start, end)``."""
        pass

    @abstractmethod
    async def get_block(self, block_id: UUID) -> Optional[BlockRecord]:
        pass

    @abstractmethod
    async def insert_block(self, block: BlockRecord) -> BlockRecord:
        pass

    @abstractmethod
    async def delete_block(self, block_id: UUID) -> None:
        pass

    @abstractmethod
    async def delete_blocks(
        self,
        listing_id: UUID,
        source: CalendarSource,
        source_id: str,
    ) -> int:
        """Delete every block of the listing owned by ``(source, source_id)``."""
        pass

    # Price overrides

    @abstractmethod
    async def list_price_overrides(
        self,
        listing_id: UUID,
        start: date,
        end: date,
    ) -> list[PriceOverrideRecord]:
        """Overrides for dates in ``[start, end)``."""
        pass

    @abstractmethod
    async def upsert_price_override(self, override: PriceOverrideRecord) -> PriceOverrideRecord:
        """Insert or replace the override for ``(listing_id, override_date)``."""
        pass

    # Bookings

    @abstractmethod
    async def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]:
        pass

    @abstractmethod
    async def insert_booking(self, booking: BookingRecord) -> BookingRecord:
        pass

    @abstractmethod
    async def update_booking(self, booking: BookingRecord) -> BookingRecord:
        pass

    @abstractmethod
    async def list_bookings(
        self,
        guest_id: Optional[str] = None,
        host_id: Optional[str] = None,
        listing_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[BookingRecord]:
        """Bookings matching every given filter, newest check-in first."""
        pass

    # Calendars

    @abstractmethod
    async def get_calendar(self, calendar_id: UUID) -> Optional[CalendarRecord]:
        pass

    @abstractmethod
    async def insert_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        pass

    @abstractmethod
    async def update_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        pass

    @abstractmethod
    async def list_calendars(
        self,
        listing_id: Optional[UUID] = None,
        source: Optional[CalendarSource] = None,
        sync_enabled: Optional[bool] = None,
    ) -> list[CalendarRecord]:
        pass
