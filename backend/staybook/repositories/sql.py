"""SQLAlchemy implementation of the calendar repository."""

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from staybook.core.errors import NotFoundError
from staybook.models.availability import AvailabilityBlock, PriceOverride
from staybook.models.booking import Booking
from staybook.models.calendar import Calendar
from staybook.models.enums import BookingStatus, CalendarSource
from staybook.models.listing import Listing
from staybook.repositories.base import CalendarRepository
from staybook.schemas.availability import BlockRecord, PriceOverrideRecord
from staybook.schemas.booking import BookingRecord
from staybook.schemas.calendar import CalendarRecord
from staybook.schemas.listing import ListingRecord


class SqlCalendarRepository(CalendarRepository):
    """Repository bound to one request-scoped ``AsyncSession``."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self._held: set[UUID] = set()

    @asynccontextmanager
    async def atomic(self, listing_id: UUID) -> AsyncIterator[None]:
        if listing_id in self._held:
            yield
            return

        outermost = not self._held
        try:
            await self._lock_listing(listing_id)
            self._held.add(listing_id)
            yield
            if outermost:
                await self.db.commit()
        except BaseException:
            if outermost:
                await self.db.rollback()
            raise
        finally:
            self._held.discard(listing_id)

    async def _lock_listing(self, listing_id: UUID) -> None:
        # Row lock is held until commit/rollback; concurrent units on the same
        # listing queue here and then read the committed state.
        result = await self.db.execute(
            update(Listing)
            .where(Listing.id == listing_id)
            .values(availability_version=Listing.availability_version + 1)
        )
        if result.rowcount == 0:
            raise NotFoundError("Listing")

    # Listings

    async def get_listing(self, listing_id: UUID) -> Optional[ListingRecord]:
        row = await self.db.get(Listing, listing_id, populate_existing=True)
        return ListingRecord.model_validate(row) if row else None

    # Blocks

    async def list_blocks(
        self,
        listing_id: UUID,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[BlockRecord]:
        query = select(AvailabilityBlock).where(AvailabilityBlock.listing_id == listing_id)
        if start is not None and end is not None:
            query = query.where(
                AvailabilityBlock.start_date < end,
                AvailabilityBlock.end_date > start,
            )
        query = query.order_by(AvailabilityBlock.start_date, AvailabilityBlock.end_date)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return [BlockRecord.model_validate(row) for row in result.scalars().all()]

    async def get_block(self, block_id: UUID) -> Optional[BlockRecord]:
        row = await self.db.get(AvailabilityBlock, block_id, populate_existing=True)
        return BlockRecord.model_validate(row) if row else None

    async def insert_block(self, block: BlockRecord) -> BlockRecord:
        self.db.add(AvailabilityBlock(**block.model_dump()))
        await self.db.flush()
        return block

    async def delete_block(self, block_id: UUID) -> None:
        await self.db.execute(delete(AvailabilityBlock).where(AvailabilityBlock.id == block_id))

    async def delete_blocks(
        self,
        listing_id: UUID,
        source: CalendarSource,
        source_id: str,
    ) -> int:
        result = await self.db.execute(
            delete(AvailabilityBlock).where(
                AvailabilityBlock.listing_id == listing_id,
                AvailabilityBlock.source == source,
                AvailabilityBlock.source_id == source_id,
            )
        )
        return result.rowcount

    # Price overrides

    async def list_price_overrides(
        self,
        listing_id: UUID,
        start: date,
        end: date,
    ) -> list[PriceOverrideRecord]:
        result = await self.db.execute(
            select(PriceOverride)
            .where(
                PriceOverride.listing_id == listing_id,
                PriceOverride.override_date >= start,
                PriceOverride.override_date < end,
            )
            .order_by(PriceOverride.override_date)
            .execution_options(populate_existing=True)
        )
        return [PriceOverrideRecord.model_validate(row) for row in result.scalars().all()]

    async def upsert_price_override(self, override: PriceOverrideRecord) -> PriceOverrideRecord:
        result = await self.db.execute(
            select(PriceOverride).where(
                PriceOverride.listing_id == override.listing_id,
                PriceOverride.override_date == override.override_date,
            )
        )
        row = result.scalar_one_or_none()

        if row is None:
            row = PriceOverride(**override.model_dump())
            self.db.add(row)
        else:
            row.nightly_price = override.nightly_price
            row.reason = override.reason

        await self.db.flush()
        return PriceOverrideRecord.model_validate(row)

    # Bookings

    async def get_booking(self, booking_id: UUID) -> Optional[BookingRecord]:
        row = await self.db.get(Booking, booking_id, populate_existing=True)
        return BookingRecord.model_validate(row) if row else None

    async def insert_booking(self, booking: BookingRecord) -> BookingRecord:
        row = Booking(**booking.model_dump(exclude={"updated_at"}))
        self.db.add(row)
        await self.db.flush()
        return BookingRecord.model_validate(row)

    async def update_booking(self, booking: BookingRecord) -> BookingRecord:
        row = await self.db.get(Booking, booking.id)
        if row is None:
            raise KeyError(f"booking {booking.id} does not exist")

        for field, value in booking.model_dump(exclude={"id", "created_at", "updated_at"}).items():
            setattr(row, field, value)

        await self.db.flush()
        return BookingRecord.model_validate(row)

    async def list_bookings(
        self,
        guest_id: Optional[str] = None,
        host_id: Optional[str] = None,
        listing_id: Optional[UUID] = None,
        status: Optional[BookingStatus] = None,
    ) -> list[BookingRecord]:
        query = select(Booking)

        if guest_id:
            query = query.where(Booking.guest_id == guest_id)
        if host_id:
            query = query.where(Booking.host_id == host_id)
        if listing_id:
            query = query.where(Booking.listing_id == listing_id)
        if status:
            query = query.where(Booking.status == status)

        query = query.order_by(Booking.check_in.desc())

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return [BookingRecord.model_validate(row) for row in result.scalars().all()]

    # Calendars

    async def get_calendar(self, calendar_id: UUID) -> Optional[CalendarRecord]:
        row = await self.db.get(Calendar, calendar_id, populate_existing=True)
        return CalendarRecord.model_validate(row) if row else None

    async def insert_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        self.db.add(Calendar(**calendar.model_dump()))
        await self.db.flush()
        return calendar

    async def update_calendar(self, calendar: CalendarRecord) -> CalendarRecord:
        row = await self.db.get(Calendar, calendar.id)
        if row is None:
            raise KeyError(f"calendar {calendar.id} does not exist")

        for field, value in calendar.model_dump(exclude={"id", "listing_id", "created_at"}).items():
            setattr(row, field, value)

        await self.db.flush()
        return CalendarRecord.model_validate(row)

    async def list_calendars(
        self,
        listing_id: Optional[UUID] = None,
        source: Optional[CalendarSource] = None,
        sync_enabled: Optional[bool] = None,
    ) -> list[CalendarRecord]:
        query = select(Calendar)

        if listing_id:
            query = query.where(Calendar.listing_id == listing_id)
        if source:
            query = query.where(Calendar.source == source)
        if sync_enabled is not None:
            query = query.where(Calendar.sync_enabled == sync_enabled)

        query = query.order_by(Calendar.created_at)

        result = await self.db.execute(query.execution_options(populate_existing=True))
        return [CalendarRecord.model_validate(row) for row in result.scalars().all()]
