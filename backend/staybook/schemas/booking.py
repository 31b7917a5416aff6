"""Booking schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import Field, model_validator

from staybook.core.clock import utcnow
from staybook.schemas.base import BaseSchema, nights_between
from staybook.models.enums import BookingStatus, CancellationPolicy, PayoutStatus


class NightlyRate(BaseSchema):
    """Price charged for one night of a stay."""

    night: date
    price: int


class PriceBreakdown(BaseSchema):
    """Stay price in minor units; ``total`` is the exact sum of its parts."""

    nights: int
    subtotal: int
    cleaning_fee: int
    service_fee: int
    taxes: int
    total: int
    currency: str
    nightly_rates: list[NightlyRate] = []


class BookingRecord(BaseSchema):
    """A reservation as stored by the core."""

    id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    guest_id: str
    host_id: str
    check_in: date
    check_out: date
    guests: int = Field(ge=1)
    status: BookingStatus = BookingStatus.PENDING

    subtotal: int = Field(ge=0)
    cleaning_fee: int = Field(default=0, ge=0)
    service_fee: int = Field(default=0, ge=0)
    taxes: int = Field(default=0, ge=0)
    total: int = Field(ge=0)
    currency: str = "USD"
    cancellation_policy: CancellationPolicy = CancellationPolicy.MODERATE

    payment_intent_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    payout_status: PayoutStatus = PayoutStatus.PENDING
    refund_amount: Optional[int] = None
    refund_id: Optional[str] = None

    cancel_reason: Optional[str] = None
    canceled_by: Optional[str] = None
    special_requests: Optional[str] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_booking(self):
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        if self.total != self.subtotal + self.cleaning_fee + self.service_fee + self.taxes:
            raise ValueError("total must equal subtotal + cleaning_fee + service_fee + taxes")
        return self

    @property
    def nights(self) -> int:
        return nights_between(self.check_in, self.check_out)

    def is_party(self, user_id: str) -> bool:
        """Whether the user is the guest or the host of this booking."""
        return user_id in (self.guest_id, self.host_id)


class BookingCreate(BaseSchema):
    """Guest request to reserve a listing."""

    listing_id: UUID
    check_in: date
    check_out: date
    guests: int = Field(default=1, ge=1, le=50)
    special_requests: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_dates(self):
        """Check-out must be after check-in."""
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class BookingDeclineRequest(BaseSchema):
    """Host declines a pending booking."""

    reason: Optional[str] = Field(None, max_length=1000)


class BookingCancelRequest(BaseSchema):
    """Guest or host cancels a booking."""

    reason: Optional[str] = Field(None, max_length=1000)


class PaymentIntentResponse(BaseSchema):
    """Client-side handle for completing payment."""

    payment_intent_id: str
    client_secret: str


class BookingCreateResponse(BaseSchema):
    """Result of a booking request.

    ``payment_error`` is set when the gateway could not create a payment
    intent; the booking still exists and is reconciled later.
    """

    booking: BookingRecord
    payment_intent: Optional[PaymentIntentResponse] = None
    payment_error: Optional[str] = None


class CancellationResponse(BaseSchema):
    """Result of a cancel or decline."""

    booking: BookingRecord
    refund_amount: int = 0
    refund_id: Optional[str] = None
    refund_error: Optional[str] = None
