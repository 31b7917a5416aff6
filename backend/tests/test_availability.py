"""Tests for the availability store."""

import asyncio
from datetime import date, timedelta
from uuid import uuid4

import pytest

from staybook.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from staybook.models.enums import BlockReason, CalendarSource
from staybook.schemas.calendar import CalendarRecord
from staybook.services.availability import merge_ranges, subtract_ranges

from conftest import HOST_ID, june


class TestRangeHelpers:
    def test_merge_overlapping_and_keep_adjacent(self):
        ranges = [(june(12), june(15)), (june(10), june(13)), (june(15), june(17)), (june(20), june(20))]

        assert merge_ranges(ranges) == [(june(10), june(15)), (june(15), june(17))]

    def test_subtract_clips_around_taken_ranges(self):
        result = subtract_ranges([(june(1), june(20))], [(june(5), june(8)), (june(10), june(12))])

        assert result == [(june(1), june(5)), (june(8), june(10)), (june(12), june(20))]

    def test_subtract_fully_covered(self):
        assert subtract_ranges([(june(5), june(7))], [(june(1), june(10))]) == []


class TestGetAvailability:
    async def test_reports_blocks_and_prices(self, availability, listing):
        await availability.add_block(listing.id, june(11), june(13), BlockReason.HOST_BLOCKED)
        await availability.set_price_override(listing.id, HOST_ID, june(14), 22000)

        days = await availability.get_availability(listing.id, june(10), june(15))

        assert [d.date for d in days] == [june(10), june(11), june(12), june(13), june(14)]
        assert [d.available for d in days] == [True, False, False, True, True]
        assert [d.price for d in days] == [15000, 15000, 15000, 15000, 22000]
        assert all(d.min_nights == 2 for d in days)

    async def test_rejects_reversed_range(self, availability, listing):
        with pytest.raises(ValidationError):
            await availability.get_availability(listing.id, june(10), june(10))

    async def test_rejects_ranges_longer_than_a_year(self, availability, listing):
        with pytest.raises(ValidationError):
            await availability.get_availability(listing.id, june(1), june(1) + timedelta(days=367))

    async def test_unknown_listing(self, availability):
        with pytest.raises(NotFoundError):
            await availability.get_availability(uuid4(), june(1), june(5))


class TestIsRangeAvailable:
    async def test_adjacent_blocks_do_not_overlap(self, availability, listing):
        await availability.add_block(listing.id, june(10), june(13), BlockReason.HOST_BLOCKED)

        assert await availability.is_range_available(listing.id, june(13), june(15))
        assert await availability.is_range_available(listing.id, june(8), june(10))
        assert not await availability.is_range_available(listing.id, june(12), june(14))

    async def test_ignores_the_booking_own_block(self, availability, listing):
        booking_id = uuid4()
        await availability.add_block(
            listing.id, june(10), june(13), BlockReason.BOOKING, source_id=str(booking_id)
        )

        assert await availability.is_range_available(
            listing.id, june(10), june(13), ignore_booking_id=booking_id
        )
        assert not await availability.is_range_available(
            listing.id, june(10), june(13), ignore_booking_id=uuid4()
        )


class TestAddBlock:
    async def test_host_block_over_booking_conflicts(self, availability, listing):
        await availability.add_block(
            listing.id, june(10), june(13), BlockReason.BOOKING, source_id=str(uuid4())
        )

        with pytest.raises(ConflictError, match="existing bookings"):
            await availability.add_block(listing.id, june(12), june(14), BlockReason.HOST_BLOCKED)

    async def test_overlapping_host_blocks_conflict(self, availability, listing):
        await availability.add_block(listing.id, june(10), june(13), BlockReason.HOST_BLOCKED)

        with pytest.raises(ConflictError, match="already blocked"):
            await availability.add_block(listing.id, june(11), june(12), BlockReason.HOST_BLOCKED)

    async def test_rejects_empty_range(self, availability, listing):
        with pytest.raises(ValidationError):
            await availability.add_block(listing.id, june(10), june(10), BlockReason.HOST_BLOCKED)

    async def test_failed_add_leaves_no_partial_state(self, availability, listing, repo):
        await availability.add_block(listing.id, june(10), june(13), BlockReason.HOST_BLOCKED)

        with pytest.raises(ConflictError):
            await availability.add_block(listing.id, june(12), june(16), BlockReason.HOST_BLOCKED)

        blocks = await repo.list_blocks(listing.id)
        assert [(b.start_date, b.end_date) for b in blocks] == [(june(10), june(13))]


class TestRemoveBlock:
    async def test_booking_blocks_cannot_be_removed_directly(self, availability, listing):
        block = await availability.add_block(
            listing.id, june(10), june(13), BlockReason.BOOKING, source_id=str(uuid4())
        )

        with pytest.raises(ForbiddenError):
            await availability.remove_block(block.id)

    async def test_removes_host_block(self, availability, listing):
        block = await availability.add_block(listing.id, june(10), june(13), BlockReason.HOST_BLOCKED)

        await availability.remove_block(block.id)

        assert await availability.is_range_available(listing.id, june(10), june(13))

    async def test_unknown_block(self, availability):
        with pytest.raises(NotFoundError):
            await availability.remove_block(uuid4())


class TestHostOperations:
    async def test_block_dates_requires_host(self, availability, listing):
        with pytest.raises(ForbiddenError):
            await availability.block_dates(listing.id, "someone-else", june(10), june(12))

    async def test_block_and_unblock(self, availability, listing):
        block = await availability.block_dates(listing.id, HOST_ID, june(10), june(12))
        assert block.reason == BlockReason.HOST_BLOCKED
        assert block.source == CalendarSource.INTERNAL

        await availability.unblock_dates(listing.id, HOST_ID, block.id)

        assert await availability.is_range_available(listing.id, june(10), june(12))

    async def test_unblock_requires_block_of_that_listing(self, availability, listing, repo):
        from conftest import make_listing

        other = repo.add_listing(make_listing())
        block = await availability.block_dates(other.id, HOST_ID, june(10), june(12))

        with pytest.raises(NotFoundError):
            await availability.unblock_dates(listing.id, HOST_ID, block.id)

    async def test_price_override_is_upserted(self, availability, listing, repo):
        await availability.set_price_override(listing.id, HOST_ID, june(14), 20000, reason="weekend")
        await availability.set_price_override(listing.id, HOST_ID, june(14), 25000, reason="holiday")

        overrides = await repo.list_price_overrides(listing.id, june(1), june(30))
        assert len(overrides) == 1
        assert overrides[0].nightly_price == 25000
        assert overrides[0].reason == "holiday"

    async def test_price_override_requires_host(self, availability, listing):
        with pytest.raises(ForbiddenError):
            await availability.set_price_override(listing.id, "guest-1", june(14), 1)


class TestReplaceCalendarBlocks:
    def calendar(self, listing):
        return CalendarRecord(
            listing_id=listing.id,
            source=CalendarSource.ICAL,
            ical_url="https://remote.example/feed.ics",
        )

    async def test_replaces_only_owned_blocks(self, availability, listing, repo):
        calendar = self.calendar(listing)
        host_block = await availability.add_block(listing.id, june(1), june(3), BlockReason.HOST_BLOCKED)

        await availability.replace_calendar_blocks(calendar, [(june(10), june(12))])
        await availability.replace_calendar_blocks(calendar, [(june(20), june(22))])

        blocks = await repo.list_blocks(listing.id)
        assert [(b.start_date, b.end_date, b.reason) for b in blocks] == [
            (june(1), june(3), BlockReason.HOST_BLOCKED),
            (june(20), june(22), BlockReason.ICAL_BLOCKED),
        ]
        assert blocks[0].id == host_block.id

    async def test_clips_against_bookings(self, availability, listing, repo):
        calendar = self.calendar(listing)
        await availability.add_block(
            listing.id, june(10), june(13), BlockReason.BOOKING, source_id=str(uuid4())
        )

        written = await availability.replace_calendar_blocks(
            calendar, [(june(8), june(15)), (june(11), june(12))]
        )

        assert [(b.start_date, b.end_date) for b in written] == [
            (june(8), june(10)),
            (june(13), june(15)),
        ]
        assert all(b.source_id == str(calendar.id) for b in written)


class TestUnitOfWork:
    async def test_error_inside_atomic_rolls_back_writes(self, availability, listing, repo):
        with pytest.raises(RuntimeError):
            async with repo.atomic(listing.id):
                await availability.add_block(listing.id, june(10), june(12), BlockReason.HOST_BLOCKED)
                raise RuntimeError("boom")

        assert await repo.list_blocks(listing.id) == []

    async def test_writes_outside_atomic_are_rejected(self, repo, listing):
        from staybook.schemas.availability import BlockRecord

        with pytest.raises(RuntimeError):
            await repo.insert_block(
                BlockRecord(
                    listing_id=listing.id,
                    start_date=date(2025, 6, 1),
                    end_date=date(2025, 6, 2),
                    reason=BlockReason.HOST_BLOCKED,
                )
            )

    async def test_uncommitted_writes_are_invisible_to_other_tasks(self, availability, listing, repo):
        written = asyncio.Event()
        release = asyncio.Event()

        async def writer():
            async with repo.atomic(listing.id):
                await availability.add_block(listing.id, june(10), june(12), BlockReason.HOST_BLOCKED)
                assert len(await repo.list_blocks(listing.id)) == 1
                written.set()
                await release.wait()

        task = asyncio.create_task(writer())
        await written.wait()

        assert await repo.list_blocks(listing.id) == []
        release.set()
        await task
        assert len(await repo.list_blocks(listing.id)) == 1

    async def test_readers_never_see_a_sync_half_applied(self, availability, listing):
        calendar = CalendarRecord(
            listing_id=listing.id,
            source=CalendarSource.ICAL,
            ical_url="https://remote.example/feed.ics",
        )
        await availability.replace_calendar_blocks(calendar, [(june(10), june(13))])

        results = await asyncio.gather(
            availability.replace_calendar_blocks(calendar, [(june(10), june(13))]),
            *(availability.get_availability(listing.id, june(10), june(13)) for _ in range(20)),
        )

        for days in results[1:]:
            assert [d.available for d in days] == [False, False, False]
