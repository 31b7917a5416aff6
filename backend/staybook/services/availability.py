"""Availability store: per-date status, blocks and price overrides of a listing.

No two unavailable ranges of a listing ever overlap. Every write goes through
``repo.atomic(listing_id)`` so the overlap check and the write it guards are
one unit.
"""

import logging
from datetime import date, timedelta
from typing import Iterable, Optional
from uuid import UUID

from staybook.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from staybook.models.enums import BlockReason, CalendarSource
from staybook.repositories.base import CalendarRepository
from staybook.schemas.availability import BlockRecord, DayStatus, PriceOverrideRecord
from staybook.schemas.calendar import CalendarRecord
from staybook.schemas.listing import ListingRecord

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 366

DateRange = tuple[date, date]


def merge_ranges(ranges: Iterable[DateRange]) -> list[DateRange]:
    """Sort and merge overlapping half-open ranges; empty ranges are dropped."""
    merged: list[DateRange] = []
    for start, end in sorted(r for r in ranges if r[0] < r[1]):
        if merged and start < merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract_ranges(ranges: Iterable[DateRange], taken: Iterable[DateRange]) -> list[DateRange]:
    """Parts of ``ranges`` not covered by any range in ``taken``."""
    taken = sorted(taken)
    result: list[DateRange] = []
    for start, end in ranges:
        cursor = start
        for taken_start, taken_end in taken:
            if taken_end <= cursor or taken_start >= end:
                continue
            if taken_start > cursor:
                result.append((cursor, taken_start))
            cursor = max(cursor, taken_end)
            if cursor >= end:
                break
        if cursor < end:
            result.append((cursor, end))
    return result


class AvailabilityService:
    """Source of truth for which nights of a listing can be booked."""

    def __init__(self, repo: CalendarRepository):
        self.repo = repo

    async def get_listing(self, listing_id: UUID) -> ListingRecord:
        listing = await self.repo.get_listing(listing_id)
        if listing is None:
            raise NotFoundError("Listing")
        return listing

    async def require_host(self, listing_id: UUID, host_id: str) -> ListingRecord:
        """Get the listing and verify ``host_id`` owns it."""
        listing = await self.get_listing(listing_id)
        if listing.host_id != host_id:
            raise ForbiddenError("Not authorized for this listing")
        return listing

    # Reads

    async def get_availability(self, listing_id: UUID, start: date, end: date) -> list[DayStatus]:
        """Status of every night in ``[start, end)``."""
        if end <= start:
            raise ValidationError("end must be after start")
        if (end - start).days > MAX_RANGE_DAYS:
            raise ValidationError(f"Availability range is limited to {MAX_RANGE_DAYS} days")

        listing = await self.get_listing(listing_id)
        blocks = await self.repo.list_blocks(listing_id, start, end)
        overrides = {
            o.override_date: o.nightly_price
            for o in await self.repo.list_price_overrides(listing_id, start, end)
        }

        days = []
        day = start
        while day < end:
            next_day = day + timedelta(days=1)
            blocked = any(not b.is_available and b.overlaps(day, next_day) for b in blocks)
            days.append(
                DayStatus(
                    date=day,
                    available=not blocked,
                    price=overrides.get(day, listing.base_price),
                    min_nights=listing.min_nights,
                )
            )
            day = next_day
        return days

    async def is_range_available(
        self,
        listing_id: UUID,
        start: date,
        end: date,
        ignore_booking_id: Optional[UUID] = None,
    ) -> bool:
        """Whether every night in ``[start, end)`` is free.

        ``ignore_booking_id`` skips that booking's own block, for re-validating
        a reservation that already holds its dates.
        """
        if end <= start:
            raise ValidationError("end must be after start")

        blocks = await self.repo.list_blocks(listing_id, start, end)
        for block in blocks:
            if block.is_available:
                continue
            if (
                ignore_booking_id is not None
                and block.reason == BlockReason.BOOKING
                and block.source_id == str(ignore_booking_id)
            ):
                continue
            return False
        return True

    # Writes

    async def add_block(
        self,
        listing_id: UUID,
        start: date,
        end: date,
        reason: BlockReason,
        source: CalendarSource = CalendarSource.INTERNAL,
        source_id: Optional[str] = None,
    ) -> BlockRecord:
        """Remove ``[start, end)`` from availability.

        Raises ConflictError when the range overlaps any existing block; a
        non-booking block over an active reservation gets its own message.
        """
        if end <= start:
            raise ValidationError("end must be after start")

        async with self.repo.atomic(listing_id):
            await self.get_listing(listing_id)

            overlapping = await self.repo.list_blocks(listing_id, start, end)
            if overlapping:
                if reason != BlockReason.BOOKING and any(
                    b.reason == BlockReason.BOOKING for b in overlapping
                ):
                    raise ConflictError("Cannot block dates with existing bookings")
                if reason == BlockReason.BOOKING:
                    raise ConflictError("Dates not available")
                raise ConflictError("Dates already blocked")

            block = BlockRecord(
                listing_id=listing_id,
                start_date=start,
                end_date=end,
                reason=reason,
                source=source,
                source_id=source_id,
            )
            return await self.repo.insert_block(block)

    async def remove_block(self, block_id: UUID, listing_id: Optional[UUID] = None) -> None:
        """Delete a host or iCal block. Booking blocks are released only by booking transitions."""
        block = await self.repo.get_block(block_id)
        if block is None or (listing_id is not None and block.listing_id != listing_id):
            raise NotFoundError("Block")
        if block.reason == BlockReason.BOOKING:
            raise ForbiddenError("Cannot unblock booking reservations; cancel the booking instead")

        async with self.repo.atomic(block.listing_id):
            await self.repo.delete_block(block_id)

    async def release_booking_block(self, listing_id: UUID, booking_id: UUID) -> int:
        """Delete the block held by a booking (booking engine only)."""
        async with self.repo.atomic(listing_id):
            return await self.repo.delete_blocks(listing_id, CalendarSource.INTERNAL, str(booking_id))

    async def replace_calendar_blocks(
        self,
        calendar: CalendarRecord,
        ranges: Iterable[DateRange],
    ) -> list[BlockRecord]:
        """Swap the calendar's imported blocks for ``ranges`` in one unit.

        Ranges are merged and clipped against blocks the calendar does not own,
        so an imported feed never overlaps a booking or a host block.
        """
        listing_id = calendar.listing_id
        owner = str(calendar.id)

        async with self.repo.atomic(listing_id):
            removed = await self.repo.delete_blocks(listing_id, CalendarSource.ICAL, owner)
            others = await self.repo.list_blocks(listing_id)
            pieces = subtract_ranges(
                merge_ranges(ranges),
                [(b.start_date, b.end_date) for b in others],
            )

            blocks = []
            for start, end in pieces:
                block = BlockRecord(
                    listing_id=listing_id,
                    start_date=start,
                    end_date=end,
                    reason=BlockReason.ICAL_BLOCKED,
                    source=CalendarSource.ICAL,
                    source_id=owner,
                )
                blocks.append(await self.repo.insert_block(block))

        logger.info(
            f"[ICAL] Calendar {calendar.id}: replaced {removed} blocks with {len(blocks)}"
        )
        return blocks

    # Host operations

    async def block_dates(self, listing_id: UUID, host_id: str, start: date, end: date) -> BlockRecord:
        await self.require_host(listing_id, host_id)
        return await self.add_block(listing_id, start, end, BlockReason.HOST_BLOCKED)

    async def unblock_dates(self, listing_id: UUID, host_id: str, block_id: UUID) -> None:
        await self.require_host(listing_id, host_id)
        await self.remove_block(block_id, listing_id=listing_id)

    async def set_price_override(
        self,
        listing_id: UUID,
        host_id: str,
        override_date: date,
        nightly_price: int,
        reason: Optional[str] = None,
    ) -> PriceOverrideRecord:
        """Set the price of one night (one override per listing and date)."""
        await self.require_host(listing_id, host_id)
        if nightly_price < 0:
            raise ValidationError("nightly_price cannot be negative")

        async with self.repo.atomic(listing_id):
            return await self.repo.upsert_price_override(
                PriceOverrideRecord(
                    listing_id=listing_id,
                    override_date=override_date,
                    nightly_price=nightly_price,
                    reason=reason,
                )
            )
