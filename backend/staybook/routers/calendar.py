"""Calendar router: availability, host blocks, price overrides and iCal feeds."""

from datetime import date
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from staybook.core.security import AuthenticatedUser, get_current_user
from staybook.dependencies import get_availability_service, get_ical_sync_service
from staybook.schemas.availability import (
    BlockCreate,
    BlockRecord,
    DayStatus,
    PriceOverrideCreate,
    PriceOverrideRecord,
)
from staybook.schemas.calendar import CalendarCreate, CalendarRecord, SyncResult
from staybook.services.availability import AvailabilityService
from staybook.services.ical_sync import ICalSyncService

router = APIRouter(prefix="/calendar", tags=["calendar"])


@router.get("/listings/{listing_id}/availability", response_model=List[DayStatus])
async def get_availability(
    listing_id: UUID,
    start: date = Query(...),
    end: date = Query(...),
    availability: AvailabilityService = Depends(get_availability_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Per-night status for ``[start, end)``."""
    return await availability.get_availability(listing_id, start, end)


@router.get("/listings/{listing_id}/export/{token}")
async def export_calendar(
    listing_id: UUID,
    token: str,
    sync: ICalSyncService = Depends(get_ical_sync_service),
):
    """Public iCal feed. The token in the URL is the only credential."""
    content = await sync.export_calendar(listing_id, token)
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={
            "Content-Disposition": f'inline; filename="listing-{listing_id}.ics"',
            "Cache-Control": "no-store",
        },
    )


@router.post(
    "/listings/{listing_id}/calendars",
    response_model=CalendarRecord,
    status_code=status.HTTP_201_CREATED,
)
async def create_calendar(
    listing_id: UUID,
    data: CalendarCreate,
    sync: ICalSyncService = Depends(get_ical_sync_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Attach an export calendar or an iCal import to the listing."""
    return await sync.create_calendar(listing_id, current_user.uid, data)


@router.post("/calendars/{calendar_id}/sync", response_model=SyncResult)
async def sync_calendar(
    calendar_id: UUID,
    sync: ICalSyncService = Depends(get_ical_sync_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await sync.sync_calendar(calendar_id, host_id=current_user.uid)


@router.post(
    "/listings/{listing_id}/block",
    response_model=BlockRecord,
    status_code=status.HTTP_201_CREATED,
)
async def block_dates(
    listing_id: UUID,
    data: BlockCreate,
    availability: AvailabilityService = Depends(get_availability_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await availability.block_dates(
        listing_id, current_user.uid, data.start_date, data.end_date
    )


@router.delete("/blocks/{block_id}", status_code=status.HTTP_204_NO_CONTENT)
async def unblock_dates(
    block_id: UUID,
    listing_id: UUID = Query(...),
    availability: AvailabilityService = Depends(get_availability_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Remove a host or iCal block. Booking blocks are released by cancelling."""
    await availability.unblock_dates(listing_id, current_user.uid, block_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/listings/{listing_id}/price-override", response_model=PriceOverrideRecord)
async def set_price_override(
    listing_id: UUID,
    data: PriceOverrideCreate,
    availability: AvailabilityService = Depends(get_availability_service),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await availability.set_price_override(
        listing_id,
        current_user.uid,
        data.override_date,
        data.nightly_price,
        reason=data.reason,
    )
