"""
Staybook - Notifications

In-app notifications are stored in the ``notifications`` table. Emails are
handed to an outbound relay webhook, which resolves the user's address and
delivers the message. Without a relay URL emails are only logged.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staybook.core.config import Settings
from staybook.core.errors import ExternalServiceError
from staybook.models.enums import NotificationType
from staybook.models.notification import Notification
from staybook.schemas.booking import BookingRecord

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Notification collaborator used by the booking engine."""

    @abstractmethod
    async def send_booking_confirmation(self, booking: BookingRecord, listing_title: str) -> None:
        pass

    @abstractmethod
    async def send_booking_request(self, booking: BookingRecord, listing_title: str) -> None:
        pass

    @abstractmethod
    async def send_payout_notification(self, host_id: str, amount: int, currency: str) -> None:
        pass

    @abstractmethod
    async def create_notification(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        pass


class NotificationService(Notifier):
    """Database-backed in-app notifications plus the email relay."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session_factory = session_factory
        self.webhook_url = settings.notifications_webhook_url
        self.timeout = settings.notifications_timeout_seconds
        self.app_name = settings.app_name
        self.transport = transport

    async def send_email(self, user_id: str, subject: str, html: str) -> None:
        if not self.webhook_url:
            logger.info(f"[NOTIFY] Email relay not configured, skipping '{subject}' to {user_id}")
            return

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    self.webhook_url,
                    json={"userId": user_id, "subject": subject, "html": html},
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise ExternalServiceError("notifications", f"Email relay failed: {e}")

        logger.info(f"[NOTIFY] Email '{subject}' queued for {user_id}")

    async def send_booking_confirmation(self, booking: BookingRecord, listing_title: str) -> None:
        subject = f"Booking Confirmed - {self.app_name}"
        html = (
            "<h1>Your booking is confirmed!</h1>"
            f"<p>Booking ID: {booking.id}</p>"
            f"<p>Property: {listing_title}</p>"
            f"<p>Check-in: {booking.check_in.isoformat()}</p>"
            f"<p>Check-out: {booking.check_out.isoformat()}</p>"
        )
        await self.send_email(booking.guest_id, subject, html)

    async def send_booking_request(self, booking: BookingRecord, listing_title: str) -> None:
        subject = f"New Booking Request - {self.app_name}"
        html = (
            "<h1>You have a new booking request!</h1>"
            f"<p>Property: {listing_title}</p>"
            f"<p>Dates: {booking.check_in.isoformat()} to {booking.check_out.isoformat()}</p>"
            f"<p>Guests: {booking.guests}</p>"
            f"<p>Booking ID: {booking.id}</p>"
            "<p>Please review and respond to the request.</p>"
        )
        await self.send_email(booking.host_id, subject, html)

    async def send_payout_notification(self, host_id: str, amount: int, currency: str) -> None:
        subject = f"Payout Sent - {self.app_name}"
        html = (
            "<h1>Your payout has been sent!</h1>"
            f"<p>Amount: {amount / 100:.2f} {currency}</p>"
        )
        await self.send_email(host_id, subject, html)

    async def create_notification(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        async with self.session_factory() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    type=type,
                    title=title,
                    body=body,
                    data=data,
                )
            )
            await session.commit()
