"""Listing record as seen by the reservation core (read-only)."""

from typing import Optional
from uuid import UUID

from pydantic import Field, model_validator

from staybook.schemas.base import BaseSchema
from staybook.models.enums import CancellationPolicy


class ListingRecord(BaseSchema):
    """Booking-relevant listing attributes."""

    id: UUID
    host_id: str = Field(min_length=1)
    title: str
    base_price: int = Field(ge=0)
    cleaning_fee: int = Field(default=0, ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    min_nights: int = Field(default=1, ge=1)
    max_nights: int = Field(default=30, ge=1)
    max_guests: int = Field(default=1, ge=1)
    instant_book: bool = False
    cancellation_policy: CancellationPolicy = CancellationPolicy.MODERATE
    host_payout_account: Optional[str] = None

    @model_validator(mode="after")
    def validate_night_bounds(self):
        if self.max_nights < self.min_nights:
            raise ValueError("max_nights must be >= min_nights")
        return self
