"""Payment provider webhook."""

import logging
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Request

from staybook.core.errors import ConflictError, NotFoundError
from staybook.dependencies import get_booking_engine
from staybook.services.booking_engine import BookingEngine
from staybook.services.payments import PaymentGateway, get_payment_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    engine: BookingEngine = Depends(get_booking_engine),
):
    """Handle signed provider events.

    ``payment_intent.succeeded`` confirms the booking named in the intent
    metadata. Conflicts are acknowledged so the provider stops retrying;
    gateway errors surface as 502 and are retried.
    """
    payload = await request.body()
    event = gateway.parse_webhook(payload, stripe_signature)

    if event.type != "payment_intent.succeeded":
        logger.info(f"[PAYMENTS] Ignoring webhook event {event.type} ({event.event_id})")
        return {"received": True}

    if not event.booking_id:
        logger.warning(f"[PAYMENTS] Payment intent {event.payment_intent_id} has no bookingId")
        return {"received": True}

    try:
        booking_id = UUID(event.booking_id)
    except ValueError:
        logger.warning(f"[PAYMENTS] Malformed bookingId in event {event.event_id}")
        return {"received": True}

    try:
        booking = await engine.confirm(booking_id)
    except (ConflictError, NotFoundError) as e:
        logger.warning(f"[PAYMENTS] Booking {booking_id} not confirmed: {e.message}")
        return {"received": True, "confirmed": False, "detail": e.message}

    return {"received": True, "confirmed": True, "status": booking.status.value}
