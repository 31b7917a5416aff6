"""
Staybook - Booking Engine

Create, confirm, accept, decline, cancel, check-in and check-out of bookings.

Check-then-reserve runs inside ``repo.atomic(listing_id)``: the availability
check, the booking insert and its calendar block commit together or not at
all. Gateway calls happen outside the unit so a slow provider never holds
the listing. Notifications are fire-and-forget.
"""

import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from staybook.core.clock import utcnow
from staybook.core.errors import (
    ConflictError,
    ExternalServiceError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from staybook.models.enums import (
    BOOKING_TRANSITIONS,
    BlockReason,
    BookingStatus,
    CalendarSource,
    NotificationType,
    PayoutStatus,
)
from staybook.repositories.base import CalendarRepository
from staybook.schemas.booking import (
    BookingCreateResponse,
    BookingRecord,
    CancellationResponse,
    PaymentIntentResponse,
)
from staybook.schemas.base import nights_between
from staybook.services.availability import AvailabilityService
from staybook.services.notifications import Notifier
from staybook.services.payments import PaymentGateway
from staybook.services.pricing import FeePolicy, calculate_price
from staybook.services.refunds import calculate_refund

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"

CLOSED_STATUSES = (BookingStatus.CANCELED, BookingStatus.DECLINED)


def _money(amount: int, currency: str) -> str:
    return f"{amount / 100:.2f} {currency}"


class BookingEngine:
    """Booking state machine over the availability store."""

    def __init__(
        self,
        repo: CalendarRepository,
        availability: AvailabilityService,
        gateway: PaymentGateway,
        notifier: Notifier,
        fee_policy: Optional[FeePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.availability = availability
        self.gateway = gateway
        self.notifier = notifier
        self.fee_policy = fee_policy or FeePolicy()
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    async def _load(self, booking_id: UUID) -> BookingRecord:
        booking = await self.repo.get_booking(booking_id)
        if booking is None:
            raise NotFoundError("Booking")
        return booking

    @staticmethod
    def _ensure_transition(booking: BookingRecord, target: BookingStatus) -> None:
        if target not in BOOKING_TRANSITIONS[booking.status]:
            raise ConflictError(
                f"Cannot move a {booking.status.value} booking to {target.value}"
            )

    async def _notify(self, description: str, call: Awaitable[Any]) -> None:
        try:
            await call
        except Exception as e:
            logger.warning(f"[NOTIFY] {description} failed: {e}")

    # Reads

    async def get(self, booking_id: UUID, actor_id: str) -> BookingRecord:
        booking = await self._load(booking_id)
        if not booking.is_party(actor_id):
            raise ForbiddenError("Not authorized to view this booking")
        return booking

    async def list_for_guest(self, guest_id: str) -> list[BookingRecord]:
        return await self.repo.list_bookings(guest_id=guest_id)

    async def list_for_host(self, host_id: str) -> list[BookingRecord]:
        return await self.repo.list_bookings(host_id=host_id)

    # Create

    async def create(
        self,
        guest_id: str,
        listing_id: UUID,
        check_in: date,
        check_out: date,
        guests: int,
        special_requests: Optional[str] = None,
    ) -> BookingCreateResponse:
        """Reserve ``[check_in, check_out)`` and start payment.

        A payment gateway failure does not undo the reservation; it is
        reported in ``payment_error`` and reconciled later.
        """
        if guests < 1:
            raise ValidationError("At least one guest is required")
        if check_out <= check_in:
            raise ValidationError("check_out must be after check_in")
        if check_in < self._today():
            raise ValidationError("check_in cannot be in the past")

        listing = await self.availability.get_listing(listing_id)

        nights = nights_between(check_in, check_out)
        if not listing.min_nights <= nights <= listing.max_nights:
            raise ValidationError(
                f"Stay must be between {listing.min_nights} and {listing.max_nights} nights"
            )
        if guests > listing.max_guests:
            raise ValidationError(f"Maximum {listing.max_guests} guests allowed")

        async with self.repo.atomic(listing_id):
            if not await self.availability.is_range_available(listing_id, check_in, check_out):
                raise ConflictError("Dates not available")

            overrides = {
                o.override_date: o.nightly_price
                for o in await self.repo.list_price_overrides(listing_id, check_in, check_out)
            }
            price = calculate_price(
                check_in,
                check_out,
                listing.base_price,
                listing.cleaning_fee,
                overrides,
                policy=self.fee_policy,
                currency=listing.currency,
            )

            booking = await self.repo.insert_booking(
                BookingRecord(
                    listing_id=listing_id,
                    guest_id=guest_id,
                    host_id=listing.host_id,
                    check_in=check_in,
                    check_out=check_out,
                    guests=guests,
                    status=BookingStatus.CONFIRMED if listing.instant_book else BookingStatus.PENDING,
                    subtotal=price.subtotal,
                    cleaning_fee=price.cleaning_fee,
                    service_fee=price.service_fee,
                    taxes=price.taxes,
                    total=price.total,
                    currency=price.currency,
                    cancellation_policy=listing.cancellation_policy,
                    special_requests=special_requests,
                )
            )
            await self.availability.add_block(
                listing_id,
                check_in,
                check_out,
                BlockReason.BOOKING,
                source=CalendarSource.INTERNAL,
                source_id=str(booking.id),
            )

        logger.info(
            f"[BOOKING] Booking {booking.id} created for listing {listing_id} "
            f"({check_in} to {check_out}, {booking.status.value})"
        )

        try:
            intent = await self.gateway.create_payment_intent(
                booking.total,
                booking.currency,
                {
                    "bookingId": str(booking.id),
                    "listingId": str(listing_id),
                    "guestId": guest_id,
                },
            )
        except ExternalServiceError as e:
            logger.error(f"[BOOKING] Payment intent for booking {booking.id} failed: {e.message}")
            return BookingCreateResponse(booking=booking, payment_error=e.message)

        async with self.repo.atomic(listing_id):
            current = await self._load(booking.id)
            current.payment_intent_id = intent.payment_intent_id
            booking = await self.repo.update_booking(current)

        return BookingCreateResponse(
            booking=booking,
            payment_intent=PaymentIntentResponse(
                payment_intent_id=intent.payment_intent_id,
                client_secret=intent.client_secret,
            ),
        )

    # Confirm

    async def confirm(self, booking_id: UUID, actor_id: Optional[str] = None) -> BookingRecord:
        """Record a completed payment and re-validate the dates.

        Repeating a confirm is a no-op. A payment that lands on a canceled or
        declined booking is refunded in full and ConflictError raised; a late
        payment on a stay already under way is only recorded. If the dates were
        lost in the meantime the booking is canceled, the payment refunded and
        ConflictError raised. When the gateway cannot confirm, the payment is
        refunded and the booking closed, so a retried confirm cannot revive it.
        """
        booking = await self._load(booking_id)
        if actor_id is not None and not booking.is_party(actor_id):
            raise ForbiddenError("Not authorized for this booking")
        if booking.paid_at is not None:
            if booking.status in CLOSED_STATUSES:
                raise ConflictError(f"Booking is {booking.status.value} and cannot be confirmed")
            return booking
        if booking.refund_id is not None:
            raise ConflictError("Payment for this booking was refunded")
        if not booking.payment_intent_id:
            raise ConflictError("Booking has no payment intent")

        try:
            paid = await self.gateway.confirm_payment(booking.payment_intent_id)
        except ExternalServiceError:
            await self._void_unconfirmed_payment(booking)
            raise
        if not paid:
            if booking.status in CLOSED_STATUSES:
                raise ConflictError(f"Booking is {booking.status.value} and cannot be confirmed")
            raise ConflictError("Payment has not been completed")

        listing = await self.availability.get_listing(booking.listing_id)

        outcome = "confirmed"
        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)

            if current.paid_at is not None:
                if current.status in CLOSED_STATUSES:
                    raise ConflictError(f"Booking is {current.status.value} and cannot be confirmed")
                return current
            if current.refund_id is not None:
                raise ConflictError("Payment for this booking was refunded")

            if current.status in CLOSED_STATUSES:
                outcome = "closed"
            elif current.status in (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT):
                outcome = "late"
            elif not await self.availability.is_range_available(
                current.listing_id, current.check_in, current.check_out, ignore_booking_id=current.id
            ):
                outcome = "unavailable"
                current.status = BookingStatus.CANCELED
                current.cancel_reason = "Dates no longer available"
                current.canceled_by = SYSTEM_ACTOR
                current.refund_amount = current.total
                await self.availability.release_booking_block(current.listing_id, current.id)
            else:
                own_blocks = [
                    b
                    for b in await self.repo.list_blocks(
                        current.listing_id, current.check_in, current.check_out
                    )
                    if b.reason == BlockReason.BOOKING and b.source_id == str(current.id)
                ]
                if not own_blocks:
                    await self.availability.add_block(
                        current.listing_id,
                        current.check_in,
                        current.check_out,
                        BlockReason.BOOKING,
                        source=CalendarSource.INTERNAL,
                        source_id=str(current.id),
                    )
                if current.status != BookingStatus.CONFIRMED:
                    current.status = (
                        BookingStatus.CONFIRMED if listing.instant_book else BookingStatus.PENDING
                    )

            if outcome != "closed":
                current.paid_at = self.clock()
                current = await self.repo.update_booking(current)

        if outcome == "closed":
            logger.warning(f"[BOOKING] Payment landed on {current.status.value} booking {booking_id}; refunding")
            await self._refund(current, current.total, "Booking closed before payment")
            raise ConflictError(
                f"Booking is {current.status.value} and cannot be confirmed; payment refunded"
            )

        if outcome == "late":
            logger.info(f"[BOOKING] Late payment recorded for {current.status.value} booking {booking_id}")
            return current

        if outcome == "unavailable":
            logger.warning(f"[BOOKING] Booking {booking_id} lost its dates before payment; refunding")
            await self._refund(current, current.total, "Dates no longer available")
            await self._notify(
                f"Cancellation notice for booking {booking_id}",
                self.notifier.create_notification(
                    current.guest_id,
                    NotificationType.BOOKING_CANCELED,
                    "Booking Canceled",
                    f"Your dates at {listing.title} are no longer available. Your payment was refunded.",
                    {"bookingId": str(booking_id)},
                ),
            )
            raise ConflictError("Dates no longer available; payment refunded")

        logger.info(f"[BOOKING] Booking {booking_id} paid, status {current.status.value}")

        if current.status == BookingStatus.CONFIRMED:
            await self._notify(
                f"Confirmation email for booking {booking_id}",
                self.notifier.send_booking_confirmation(current, listing.title),
            )
            await self._notify(
                f"Confirmation notice for booking {booking_id}",
                self.notifier.create_notification(
                    current.guest_id,
                    NotificationType.BOOKING_CONFIRMED,
                    "Booking Confirmed",
                    f"Your booking at {listing.title} is confirmed",
                    {"bookingId": str(booking_id)},
                ),
            )
        else:
            await self._notify(
                f"Request email for booking {booking_id}",
                self.notifier.send_booking_request(current, listing.title),
            )

        await self._notify(
            f"Host notice for booking {booking_id}",
            self.notifier.create_notification(
                current.host_id,
                NotificationType.BOOKING_REQUEST,
                "New Booking" if current.status == BookingStatus.CONFIRMED else "New Booking Request",
                f"{current.check_in} to {current.check_out} at {listing.title}",
                {"bookingId": str(booking_id)},
            ),
        )
        return current

    # Host review

    async def accept(self, booking_id: UUID, host_id: str) -> BookingRecord:
        booking = await self._load(booking_id)
        if booking.host_id != host_id:
            raise ForbiddenError("Not authorized for this booking")

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            if current.status != BookingStatus.PENDING:
                raise ConflictError("Booking is not pending")
            current.status = BookingStatus.CONFIRMED
            current = await self.repo.update_booking(current)

        logger.info(f"[BOOKING] Booking {booking_id} accepted by host")

        listing = await self.availability.get_listing(current.listing_id)
        await self._notify(
            f"Confirmation email for booking {booking_id}",
            self.notifier.send_booking_confirmation(current, listing.title),
        )
        await self._notify(
            f"Confirmation notice for booking {booking_id}",
            self.notifier.create_notification(
                current.guest_id,
                NotificationType.BOOKING_CONFIRMED,
                "Booking Confirmed",
                f"Your booking at {listing.title} has been confirmed by the host",
                {"bookingId": str(booking_id)},
            ),
        )
        return current

    async def decline(
        self,
        booking_id: UUID,
        host_id: str,
        reason: Optional[str] = None,
    ) -> CancellationResponse:
        """Reject a pending request, free its dates and refund any payment in full."""
        booking = await self._load(booking_id)
        if booking.host_id != host_id:
            raise ForbiddenError("Not authorized for this booking")

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            if current.status != BookingStatus.PENDING:
                raise ConflictError("Booking is not pending")

            current.status = BookingStatus.DECLINED
            current.cancel_reason = reason
            current.canceled_by = host_id
            current.refund_amount = current.total if current.paid_at else 0
            await self.availability.release_booking_block(current.listing_id, current.id)
            current = await self.repo.update_booking(current)

        logger.info(f"[BOOKING] Booking {booking_id} declined by host")

        result = await self._settle_refund(current, reason or "Declined by host")

        await self._notify(
            f"Decline notice for booking {booking_id}",
            self.notifier.create_notification(
                current.guest_id,
                NotificationType.BOOKING_DECLINED,
                "Booking Declined",
                reason or "Your booking request was declined",
                {"bookingId": str(booking_id)},
            ),
        )
        return result

    # Cancel

    async def cancel(
        self,
        booking_id: UUID,
        actor_id: str,
        reason: Optional[str] = None,
    ) -> CancellationResponse:
        """Cancel as guest or host; the refund follows the booking's policy."""
        booking = await self._load(booking_id)
        if not booking.is_party(actor_id):
            raise ForbiddenError("Not authorized for this booking")

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            if current.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                raise ConflictError(f"Cannot cancel a {current.status.value} booking")

            days_until_check_in = (current.check_in - self._today()).days
            current.refund_amount = (
                calculate_refund(current.total, days_until_check_in, current.cancellation_policy)
                if current.paid_at
                else 0
            )
            current.status = BookingStatus.CANCELED
            current.cancel_reason = reason
            current.canceled_by = actor_id
            await self.availability.release_booking_block(current.listing_id, current.id)
            current = await self.repo.update_booking(current)

        logger.info(
            f"[BOOKING] Booking {booking_id} canceled by "
            f"{'guest' if actor_id == current.guest_id else 'host'}, "
            f"refund {_money(current.refund_amount, current.currency)}"
        )

        result = await self._settle_refund(current, reason or "Canceled")

        counterparty = current.host_id if actor_id == current.guest_id else current.guest_id
        await self._notify(
            f"Cancellation notice for booking {booking_id}",
            self.notifier.create_notification(
                counterparty,
                NotificationType.BOOKING_CANCELED,
                "Booking Canceled",
                reason or f"Booking {current.check_in} to {current.check_out} was canceled",
                {"bookingId": str(booking_id)},
            ),
        )
        return result

    # Refunds

    async def _refund(
        self,
        booking: BookingRecord,
        amount: int,
        reason: str,
    ) -> tuple[BookingRecord, Optional[str], Optional[str]]:
        """Issue a refund and record it. Returns (booking, refund_id, error)."""
        if amount <= 0 or not booking.payment_intent_id:
            return booking, None, None

        try:
            refund_id = await self.gateway.refund_payment(booking.payment_intent_id, amount, reason)
        except ExternalServiceError as e:
            logger.error(f"[BOOKING] Refund for booking {booking.id} failed: {e.message}")
            return booking, None, e.message

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking.id)
            current.refund_id = refund_id
            current.refund_amount = amount
            if amount >= current.total:
                current.payout_status = PayoutStatus.REFUNDED
            current = await self.repo.update_booking(current)

        logger.info(f"[BOOKING] Refunded {_money(amount, current.currency)} for booking {booking.id}")
        return current, refund_id, None

    async def _settle_refund(self, booking: BookingRecord, reason: str) -> CancellationResponse:
        amount = booking.refund_amount or 0
        booking, refund_id, error = await self._refund(booking, amount, reason)
        return CancellationResponse(
            booking=booking,
            refund_amount=amount,
            refund_id=refund_id,
            refund_error=error,
        )

    async def _void_unconfirmed_payment(self, booking: BookingRecord) -> None:
        """Refund a payment the gateway could not confirm and close the booking.

        A stay already under way is left alone. When the refund itself fails
        the booking is kept open so a retried confirm can still settle it.
        """
        if booking.status in (BookingStatus.CHECKED_IN, BookingStatus.CHECKED_OUT):
            return
        booking, refund_id, _ = await self._refund(booking, booking.total, "Payment confirmation failed")
        if refund_id is None or booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            return

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking.id)
            if current.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
                return
            current.status = BookingStatus.CANCELED
            current.cancel_reason = "Payment confirmation failed"
            current.canceled_by = SYSTEM_ACTOR
            await self.availability.release_booking_block(current.listing_id, current.id)
            await self.repo.update_booking(current)

        logger.warning(f"[BOOKING] Booking {booking.id} canceled after failed payment confirmation")

    # Stay

    async def check_in(self, booking_id: UUID, host_id: str) -> BookingRecord:
        booking = await self._load(booking_id)
        if booking.host_id != host_id:
            raise ForbiddenError("Not authorized for this booking")

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            self._ensure_transition(current, BookingStatus.CHECKED_IN)
            current.status = BookingStatus.CHECKED_IN
            current = await self.repo.update_booking(current)

        logger.info(f"[BOOKING] Booking {booking_id} checked in")
        return current

    async def check_out(self, booking_id: UUID, host_id: str) -> BookingRecord:
        """Close the stay, free the dates and pay the host out."""
        booking = await self._load(booking_id)
        if booking.host_id != host_id:
            raise ForbiddenError("Not authorized for this booking")

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            self._ensure_transition(current, BookingStatus.CHECKED_OUT)
            current.status = BookingStatus.CHECKED_OUT
            await self.availability.release_booking_block(current.listing_id, current.id)
            await self.repo.update_booking(current)

        logger.info(f"[BOOKING] Booking {booking_id} checked out")
        return await self.process_payout(booking_id)

    async def process_payout(self, booking_id: UUID) -> BookingRecord:
        """Transfer the host's share of a checked-out booking.

        Host payout is subtotal plus cleaning fee minus the platform fee on
        the subtotal. Runs once: only ``pending`` payouts are processed.
        """
        booking = await self._load(booking_id)
        if booking.status != BookingStatus.CHECKED_OUT:
            raise ConflictError("Only checked-out bookings are paid out")
        if booking.payout_status != PayoutStatus.PENDING:
            return booking

        listing = await self.availability.get_listing(booking.listing_id)
        if not listing.host_payout_account:
            logger.error(f"[BOOKING] Host {booking.host_id} has no payout account; payout deferred")
            return booking

        amount = (
            booking.subtotal
            + booking.cleaning_fee
            - self.fee_policy.platform_fee(booking.subtotal)
        )

        try:
            await self.gateway.create_transfer(
                listing.host_payout_account, amount, booking.currency, booking.id
            )
        except ExternalServiceError as e:
            logger.error(f"[BOOKING] Payout for booking {booking_id} failed: {e.message}")
            status = PayoutStatus.FAILED
        else:
            status = PayoutStatus.COMPLETED

        async with self.repo.atomic(booking.listing_id):
            current = await self._load(booking_id)
            current.payout_status = status
            current = await self.repo.update_booking(current)

        if status == PayoutStatus.COMPLETED:
            logger.info(f"[BOOKING] Paid out {_money(amount, booking.currency)} for booking {booking_id}")
            await self._notify(
                f"Payout email for booking {booking_id}",
                self.notifier.send_payout_notification(booking.host_id, amount, booking.currency),
            )
            await self._notify(
                f"Payout notice for booking {booking_id}",
                self.notifier.create_notification(
                    booking.host_id,
                    NotificationType.PAYOUT_SENT,
                    "Payout Sent",
                    f"Your payout of {_money(amount, booking.currency)} has been sent",
                    {"bookingId": str(booking_id)},
                ),
            )
        return current
