"""Bookings router: guest requests, host review and stay lifecycle."""

from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from staybook.core.security import AuthenticatedUser, get_current_user
from staybook.dependencies import get_booking_engine
from staybook.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingCreateResponse,
    BookingDeclineRequest,
    BookingRecord,
    CancellationResponse,
)
from staybook.services.booking_engine import BookingEngine

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    data: BookingCreate,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Request a stay.

    Instant-book listings confirm immediately; others wait for the host.
    The response carries the payment intent client secret when the payment
    provider was reachable.
    """
    return await engine.create(
        guest_id=current_user.uid,
        listing_id=data.listing_id,
        check_in=data.check_in,
        check_out=data.check_out,
        guests=data.guests,
        special_requests=data.special_requests,
    )


@router.get("", response_model=List[BookingRecord])
async def list_bookings(
    role: Literal["guest", "host"] = Query("guest"),
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """List the caller's bookings as guest or as host, newest check-in first."""
    if role == "host":
        return await engine.list_for_host(current_user.uid)
    return await engine.list_for_guest(current_user.uid)


@router.get("/{booking_id}", response_model=BookingRecord)
async def get_booking(
    booking_id: UUID,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await engine.get(booking_id, current_user.uid)


@router.post("/{booking_id}/confirm", response_model=BookingRecord)
async def confirm_booking(
    booking_id: UUID,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Confirm payment after the client completed it with the provider."""
    return await engine.confirm(booking_id, actor_id=current_user.uid)


@router.post("/{booking_id}/accept", response_model=BookingRecord)
async def accept_booking(
    booking_id: UUID,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await engine.accept(booking_id, current_user.uid)


@router.post("/{booking_id}/decline", response_model=CancellationResponse)
async def decline_booking(
    booking_id: UUID,
    data: Optional[BookingDeclineRequest] = None,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await engine.decline(booking_id, current_user.uid, reason=data.reason if data else None)


@router.post("/{booking_id}/cancel", response_model=CancellationResponse)
async def cancel_booking(
    booking_id: UUID,
    data: Optional[BookingCancelRequest] = None,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Cancel as guest or host. Refund follows the booking's cancellation policy."""
    return await engine.cancel(booking_id, current_user.uid, reason=data.reason if data else None)


@router.post("/{booking_id}/check-in", response_model=BookingRecord)
async def check_in_booking(
    booking_id: UUID,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return await engine.check_in(booking_id, current_user.uid)


@router.post("/{booking_id}/check-out", response_model=BookingRecord)
async def check_out_booking(
    booking_id: UUID,
    engine: BookingEngine = Depends(get_booking_engine),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Close the stay and trigger the host payout."""
    return await engine.check_out(booking_id, current_user.uid)
