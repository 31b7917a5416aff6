"""SQL repository against an in-memory SQLite database."""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import staybook.models  # noqa: F401
from staybook.core.database import Base
from staybook.core.errors import ConflictError, NotFoundError
from staybook.models.availability import AvailabilityBlock
from staybook.models.enums import BlockReason, BookingStatus, CalendarSource
from staybook.models.listing import Listing
from staybook.repositories.sql import SqlCalendarRepository
from staybook.schemas.availability import BlockRecord, PriceOverrideRecord
from staybook.schemas.calendar import CalendarRecord
from staybook.services.availability import AvailabilityService
from staybook.services.booking_engine import BookingEngine

from conftest import GUEST_ID, HOST_ID, OTHER_GUEST_ID, FakeGateway, FakeNotifier, fixed_clock, june, make_listing


@pytest.fixture
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def sql_listing(session_factory):
    listing = make_listing()
    async with session_factory() as session:
        session.add(Listing(**listing.model_dump()))
        await session.commit()
    return listing


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def sql_repo(session):
    return SqlCalendarRepository(session)


def host_block(listing, start, end):
    return BlockRecord(
        listing_id=listing.id,
        start_date=start,
        end_date=end,
        reason=BlockReason.HOST_BLOCKED,
    )


async def count_blocks(session_factory):
    async with session_factory() as other:
        result = await other.execute(select(AvailabilityBlock))
        return len(result.scalars().all())


class TestAtomic:
    async def test_commit_is_visible_to_other_sessions(self, sql_repo, sql_listing, session_factory):
        async with sql_repo.atomic(sql_listing.id):
            await sql_repo.insert_block(host_block(sql_listing, june(10), june(12)))

        assert await count_blocks(session_factory) == 1

    async def test_exception_rolls_back(self, sql_repo, sql_listing, session_factory):
        with pytest.raises(RuntimeError):
            async with sql_repo.atomic(sql_listing.id):
                await sql_repo.insert_block(host_block(sql_listing, june(10), june(12)))
                raise RuntimeError("boom")

        assert await count_blocks(session_factory) == 0
        assert await sql_repo.list_blocks(sql_listing.id) == []

    async def test_nested_unit_commits_with_outer(self, sql_repo, sql_listing, session_factory):
        with pytest.raises(RuntimeError):
            async with sql_repo.atomic(sql_listing.id):
                async with sql_repo.atomic(sql_listing.id):
                    await sql_repo.insert_block(host_block(sql_listing, june(10), june(12)))
                raise RuntimeError("boom")

        assert await count_blocks(session_factory) == 0

    async def test_unknown_listing(self, sql_repo, sql_listing):
        with pytest.raises(NotFoundError):
            async with sql_repo.atomic(uuid4()):
                pass

    async def test_lock_bumps_version(self, sql_repo, sql_listing, session_factory):
        async with sql_repo.atomic(sql_listing.id):
            pass
        async with sql_repo.atomic(sql_listing.id):
            pass

        async with session_factory() as other:
            row = await other.get(Listing, sql_listing.id)
        assert row.availability_version == 2


class TestQueries:
    async def test_list_blocks_filters_by_overlap(self, sql_repo, sql_listing):
        async with sql_repo.atomic(sql_listing.id):
            await sql_repo.insert_block(host_block(sql_listing, june(1), june(3)))
            await sql_repo.insert_block(host_block(sql_listing, june(10), june(12)))

        overlapping = await sql_repo.list_blocks(sql_listing.id, june(3), june(11))

        assert [(b.start_date, b.end_date) for b in overlapping] == [(june(10), june(12))]
        assert overlapping[0].reason == BlockReason.HOST_BLOCKED

    async def test_delete_blocks_by_owner(self, sql_repo, sql_listing):
        owner = str(uuid4())
        async with sql_repo.atomic(sql_listing.id):
            await sql_repo.insert_block(
                BlockRecord(
                    listing_id=sql_listing.id,
                    start_date=june(5),
                    end_date=june(7),
                    reason=BlockReason.ICAL_BLOCKED,
                    source=CalendarSource.ICAL,
                    source_id=owner,
                )
            )
            await sql_repo.insert_block(host_block(sql_listing, june(10), june(12)))
            removed = await sql_repo.delete_blocks(sql_listing.id, CalendarSource.ICAL, owner)

        assert removed == 1
        assert len(await sql_repo.list_blocks(sql_listing.id)) == 1

    async def test_price_override_upsert(self, sql_repo, sql_listing):
        async with sql_repo.atomic(sql_listing.id):
            first = await sql_repo.upsert_price_override(
                PriceOverrideRecord(listing_id=sql_listing.id, override_date=june(10), nightly_price=20000)
            )
            second = await sql_repo.upsert_price_override(
                PriceOverrideRecord(listing_id=sql_listing.id, override_date=june(10), nightly_price=22000)
            )

        overrides = await sql_repo.list_price_overrides(sql_listing.id, june(1), june(30))
        assert [o.nightly_price for o in overrides] == [22000]
        assert second.id == first.id

    async def test_calendar_round_trip(self, sql_repo, sql_listing):
        calendar = CalendarRecord(
            listing_id=sql_listing.id,
            source=CalendarSource.ICAL,
            ical_url="https://calendar.example.com/a.ics",
        )
        async with sql_repo.atomic(sql_listing.id):
            await sql_repo.insert_calendar(calendar)
            calendar.last_sync_error = "HTTP 500"
            await sql_repo.update_calendar(calendar)

        enabled = await sql_repo.list_calendars(source=CalendarSource.ICAL, sync_enabled=True)
        assert [c.id for c in enabled] == [calendar.id]
        assert enabled[0].last_sync_error == "HTTP 500"


class TestBookingEngineOnSql:
    @pytest.fixture
    def sql_engine(self, sql_repo):
        return BookingEngine(
            sql_repo,
            AvailabilityService(sql_repo),
            FakeGateway(),
            FakeNotifier(),
            clock=fixed_clock,
        )

    async def test_create_then_conflict(self, sql_engine, sql_repo, sql_listing, session_factory):
        created = await sql_engine.create(GUEST_ID, sql_listing.id, june(10), june(13), 2)

        with pytest.raises(ConflictError):
            await sql_engine.create(OTHER_GUEST_ID, sql_listing.id, june(12), june(14), 2)

        stored = await sql_repo.get_booking(created.booking.id)
        assert stored.status == BookingStatus.PENDING
        assert stored.payment_intent_id == "pi_1"
        assert await count_blocks(session_factory) == 1

    async def test_full_lifecycle(self, sql_engine, sql_repo, sql_listing, session_factory):
        created = await sql_engine.create(GUEST_ID, sql_listing.id, june(10), june(13), 2)
        await sql_engine.confirm(created.booking.id)
        await sql_engine.accept(created.booking.id, HOST_ID)
        await sql_engine.check_in(created.booking.id, HOST_ID)

        done = await sql_engine.check_out(created.booking.id, HOST_ID)

        assert done.status == BookingStatus.CHECKED_OUT
        assert await count_blocks(session_factory) == 0
        hosted = await sql_repo.list_bookings(host_id=HOST_ID, status=BookingStatus.CHECKED_OUT)
        assert [b.id for b in hosted] == [created.booking.id]
