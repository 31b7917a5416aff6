"""In-memory repository for tests and local development."""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date
from typing import Any, AsyncIterator, Optional
from uuid import UUID

from staybook.models.enums import BookingStatus, CalendarSource
from staybook.repositories.base import CalendarRepository
from staybook.schemas.availability import BlockRecord, PriceOverrideRecord
from staybook.schemas.booking import BookingRecord
from staybook.schemas.calendar import CalendarRecord
from staybook.schemas.listing import ListingRecord

_DELETED = object()


class _UnitOfWork:
    """Listings held by the current task plus its staged writes.

    Staged writes are visible only to the owning task and are applied to the
    shared tables in one step at commit, so concurrent readers see either the
    state before the unit or the state after it.
    """

    def __init__(self, repo: "InMemoryCalendarRepository"):
        self.repo = repo
        self.held: set[UUID] = set()
        self.staged: dict[int, tuple[dict, dict]] = {}

    def stage(self, table: dict, key: Any, value: Any) -> None:
        _, changes = self.staged.setdefault(id(table), (table, {}))
        changes[key] = value

    def view(self, table: dict) -> dict:
        entry = self.staged.get(id(table))
        if entry is None:
            return table
        merged = dict(table)
        for key, value in entry[1].items():
            if value is _DELETED:
                merged.pop(key, None)
            else:
                merged[key] = value
        return merged

    def commit(self) -> None:
        for table, changes in self.staged.values():
            for key, value in changes.items():
                if value is _DELETED:
                    table.pop(key, None)
                else:
                    table[key] = value
        self.staged.clear()


_current_unit: ContextVar[Optional[_UnitOfWork]] = ContextVar("staybook_memory_unit", default=None)


async def _io() -> None:
    # Every datastore call is a suspension point, like a real driver
    await asyncio.sleep(0)


class InMemoryCalendarRepository(CalendarRepository):
    """Dict-backed repository with per-listing ``asyncio.Lock`` serialization."""

    def __init__(self):
        self._listings: dict[UUID, ListingRecord] = {}
        self._blocks: dict[UUID, BlockRecord] = {}
        self._overrides: dict[tuple[UUID, date], PriceOverrideRecord] = {}
        self._bookings: dict[UUID, BookingRecord] = {}
        self._calendars: dict[UUID, CalendarRecord] = {}
        self._locks: defaultdict[UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

    def add_listing(self, listing: ListingRecord) -> ListingRecord:
        """Seed a listing (listings are owned by another subsystem)."""
        self._listings[listing.id] = listing.model_copy(deep=True)
        return listing

    @asynccontextmanager
    async def atomic(self, listing_id: UUID) -> AsyncIterator[None]:
        unit = _current_unit.get()
        if unit is not None and unit.repo is self:
            if listing_id in unit.held:
                yield
                return
            async with self._locks[listing_id]:
                unit.held.add(listing_id)
                try:
                    yield
                finally:
                    unit.held.discard(listing_id)
            return

        unit = _UnitOfWork(self)
        token = _current_unit.set(unit)
        try:
            async with self._locks[listing_id]:
                unit.held.add(listing_id)
                yield
                unit.commit()
        finally:
            _current_unit.reset(token)

    def _unit(self) -> Optional[_UnitOfWork]:
        unit = _current_unit.get()
        return unit if unit is not None and unit.repo is self else None

    def _table(self, table: dict) -> dict:
        unit = self._unit()
        return unit.view(table) if unit is not None else table

    def _write(self, table: dict, key: Any, value: Any = None, delete: bool = False) -> None:
        unit = self._unit()
        if unit is None:
            raise RuntimeError("repository writes must run inside atomic()")
        unit.stage(table, key, _DELETED if delete else value)

    # Listings

    async def get_listing(self, listing_id: UUID) -> Optional[ListingRecord]:
        await _io()
        listing = self._listings.get(listing_id)
        return listing.model_copy(deep=True) if listing else None

    # Blocks

    async def list_blocks(
        self,
        listing_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[BlockRecord]:
        await _io()
        blocks = [b for b in self._table(self._blocks).values() if b.listing_id == listing_id]
        if start is not None and end is not None:
            blocks = [b for b in blocks if b.overlaps(start, end)]
        blocks.sort(key=lambda b: (b.start_date, b.end_date))
        return [b.model_copy(deep=True) for b in blocks]

    async def get_block(self, block_id: UUID) -> Optional[BlockRecord]:
        await _io()
        block = self._table(self._blocks).get(block_id)
        return block.model_copy(deep=True) if block else None

    async def insert_block(self, block: BlockRecord) -> BlockRecord:
        await _io()
        self._write(self._blocks, block.id, block.model_copy(deep=True))
        return block

    async def delete_block(self, block_id: UUID) -> None:
        await _io()
        self._write(self._blocks, block_id, delete=True)

    async def delete_blocks(
        self,
        listing_id: UUID,
        source: CalendarSource,
        source_id: str,
    ) -> int:
        await _io()
        owned = [
            b.id
            for b in self._table(self._blocks).values()
            if b.listing_id == listing_id and b.source == source and b.source_id == source_id
        ]
        for block_id in owned:
            self._write(self._blocks, block_id, delete=True)
        return len(owned)

    # Price overrides

    async def list_price_overrides(
        self,
        listing_id: UUID,
        start: date,
        end: date,
    ) -> list[PriceOverrideRecord]:
        await _io()
        return [
            o.model_copy(deep=True)
            for (lid, day), o in sorted(self._table(self._overrides).items(), key=lambda kv: kv[0][1])
            if lid == listing_id and start <= day < end
        ]

    async def upsert_price_override(self, override: PriceOverrideRecord) -> PriceOverrideRecord:
        await _io()
        key = (override.listing_id, override.override_date)
        existing = self._table(self._overrides).get(key)
        if existing is not None:
            override = override.model_copy(update={"id": existing.id})
        self._write(self._overrides, key, override.model_copy(deep=True))
        return override

    # Bookings

    async def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]:
        await _io()
        booking = self._table(self._bookings).get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def insert_booking(self, booking: BookingRecord) -> BookingRecord:
        await _io()
        self._write(self._bookings, booking.id, booking.model_copy(deep=True))
        return booking

    async def update_booking(self, booking: BookingRecord) -> BookingRecord:
        await _io()
        if booking.id not in self._table(self._bookings):
            raise KeyError(f"booking {booking.id} does not exist")
        self._write(self._bookings, booking.id, booking.model_copy(deep=True))
        return booking

    async def list_bookings(
        self,
        guest_id: Optional[str] = None,
        host_id: Optional[str] = None,
        listing_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[BookingRecord]:
        await _io()
        bookings = [
            b
            for b in self._table(self._bookings).values()
            if (guest_id is None or b.guest_id == guest_id)
            and (host_id is None or b.host_id == host_id)
            and (listing_id is None or b.listing_id == listing_id)
            and (status is None or b.status == status)
        ]
        bookings.sort(key=lambda b: b.check_in, reverse=True)
        return [b.model_copy(deep=True) for b in bookings]

    # Calendars

    async def get_calendar(self, calendar_id: UUID) -> Optional[CalendarRecord]:
        await _io()
        calendar = self._table(self._calendars).get(calendar_id)
        return calendar.model_copy(deep=True) if calendar else None

    async def insert_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        await _io()
        self._write(self._calendars, calendar.id, calendar.model_copy(deep=True))
        return calendar

    async def update_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        await _io()
        if calendar.id not in self._table(self._calendars):
            raise KeyError(f"calendar {calendar.id} does not exist")
        self._write(self._calendars, calendar.id, calendar.model_copy(deep=True))
        return calendar

    async def list_calendars(
        self,
        listing_id: Optional[UUID] = None,
        source: Optional[CalendarSource] = None,
        sync_enabled: Optional[bool] = None,
    ) -> list[CalendarRecord]:
        await _io()
        return [
            c.model_copy(deep=True)
            for c in self._table(self._calendars).values()
            if (listing_id is None or c.listing_id == listing_id)
            and (source is None or c.source == source)
            and (sync_enabled is None or c.sync_enabled == sync_enabled)
        ]
