"""Shared fixtures: in-memory repository, recording fakes and a fixed clock."""

import json
import os

# Settings are read at import time by staybook.core.database and staybook.main
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["FIREBASE_PROJECT_ID"] = "staybook-test"
os.environ["ALLOWED_ORIGINS"] = "http://localhost:3000"
os.environ["DEBUG"] = "true"
os.environ["ICAL_SYNC_INTERVAL_MINUTES"] = "0"
for _name in ("GOOGLE_APPLICATION_CREDENTIALS", "STRIPE_WEBHOOK_SECRET", "NOTIFICATIONS_WEBHOOK_URL"):
    os.environ.pop(_name, None)

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID, uuid4

import pytest

from staybook.core.errors import ExternalServiceError, ValidationError
from staybook.models.enums import CancellationPolicy, NotificationType
from staybook.repositories.memory import InMemoryCalendarRepository
from staybook.schemas.booking import BookingRecord
from staybook.schemas.listing import ListingRecord
from staybook.services.availability import AvailabilityService
from staybook.services.booking_engine import BookingEngine
from staybook.services.notifications import Notifier
from staybook.services.payments import PaymentGateway, PaymentIntent, WebhookEvent

FIXED_NOW = datetime(2025, 6, 1, 12, 0, 0)

HOST_ID = "host-1"
GUEST_ID = "guest-1"
OTHER_GUEST_ID = "guest-2"


def fixed_clock() -> datetime:
    return FIXED_NOW


class FakeGateway(PaymentGateway):
    """Recording payment gateway with switchable failures."""

    def __init__(self):
        self.paid = True
        self.fail_create = False
        self.fail_confirm = False
        self.fail_refund = False
        self.fail_transfer = False
        self.intents: list[tuple[int, str, dict]] = []
        self.refunds: list[tuple[str, Optional[int], Optional[str]]] = []
        self.transfers: list[tuple[str, int, str, UUID]] = []

    async def create_payment_intent(self, amount, currency, metadata) -> PaymentIntent:
        if self.fail_create:
            raise ExternalServiceError("stripe", "Payment provider unavailable")
        self.intents.append((amount, currency, metadata))
        intent_id = f"pi_{len(self.intents)}"
        return PaymentIntent(payment_intent_id=intent_id, client_secret=f"{intent_id}_secret")

    async def confirm_payment(self, payment_intent_id) -> bool:
        if self.fail_confirm:
            raise ExternalServiceError("stripe", "Payment provider unavailable")
        return self.paid

    async def refund_payment(self, payment_intent_id, amount=None, reason=None) -> str:
        if self.fail_refund:
            raise ExternalServiceError("stripe", "Refund rejected")
        self.refunds.append((payment_intent_id, amount, reason))
        return f"re_{len(self.refunds)}"

    async def create_transfer(self, destination_account, amount, currency, booking_id) -> str:
        if self.fail_transfer:
            raise ExternalServiceError("stripe", "Transfer rejected")
        self.transfers.append((destination_account, amount, currency, booking_id))
        return f"tr_{len(self.transfers)}"

    def parse_webhook(self, payload: bytes, signature: Optional[str]) -> WebhookEvent:
        if signature != "valid":
            raise ValidationError("Invalid webhook signature")
        event = json.loads(payload)
        obj = event["data"]["object"]
        return WebhookEvent(
            event_id=event["id"],
            type=event["type"],
            payment_intent_id=obj.get("id"),
            booking_id=(obj.get("metadata") or {}).get("bookingId"),
        )


class FakeNotifier(Notifier):
    """Records every notification; raises on demand."""

    def __init__(self):
        self.fail = False
        self.sent: list[tuple[str, Any]] = []

    def _record(self, kind: str, payload: Any) -> None:
        if self.fail:
            raise RuntimeError("notification backend down")
        self.sent.append((kind, payload))

    async def send_booking_confirmation(self, booking: BookingRecord, listing_title: str) -> None:
        self._record("confirmation_email", booking.guest_id)

    async def send_booking_request(self, booking: BookingRecord, listing_title: str) -> None:
        self._record("request_email", booking.host_id)

    async def send_payout_notification(self, host_id: str, amount: int, currency: str) -> None:
        self._record("payout_email", (host_id, amount))

    async def create_notification(
        self,
        user_id: str,
        type: NotificationType,
        title: str,
        body: str,
        data: Optional[dict[str, Any]] = None,
    ) -> None:
        self._record("in_app", (user_id, type))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.sent]


def make_listing(**overrides) -> ListingRecord:
    values = dict(
        id=uuid4(),
        host_id=HOST_ID,
        title="Seaside Loft",
        base_price=15000,
        cleaning_fee=5000,
        currency="USD",
        min_nights=2,
        max_nights=30,
        max_guests=4,
        instant_book=False,
        cancellation_policy=CancellationPolicy.MODERATE,
        host_payout_account="acct_host_1",
    )
    values.update(overrides)
    return ListingRecord(**values)


@pytest.fixture
def listing() -> ListingRecord:
    return make_listing()


@pytest.fixture
def repo(listing) -> InMemoryCalendarRepository:
    repo = InMemoryCalendarRepository()
    repo.add_listing(listing)
    return repo


@pytest.fixture
def availability(repo) -> AvailabilityService:
    return AvailabilityService(repo)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def engine(repo, availability, gateway, notifier) -> BookingEngine:
    return BookingEngine(repo, availability, gateway, notifier, clock=fixed_clock)


def june(day: int) -> date:
    return date(2025, 6, day)
