"""Availability schemas: blocks, price overrides and per-day status."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import Field, model_validator

from staybook.core.clock import utcnow
from staybook.schemas.base import BaseSchema
from staybook.models.enums import BlockReason, CalendarSource


class BlockRecord(BaseSchema):
    """An unavailable half-open range ``[start_date, end_date)``."""

    id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    start_date: date
    end_date: date
    is_available: bool = False
    reason: BlockReason
    source: CalendarSource = CalendarSource.INTERNAL
    source_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_block(self):
        if self.start_date >= self.end_date:
            raise ValueError("start_date must be before end_date")
        if self.is_available:
            raise ValueError("a block always removes availability")
        return self

    def overlaps(self, start: date, end: date) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        return ranges_overlap(self.start_date, self.end_date, start, end)


class PriceOverrideRecord(BaseSchema):
    """Nightly price for a single date."""

    id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    override_date: date
    nightly_price: int = Field(ge=0)
    reason: Optional[str] = Field(None, max_length=50)


class DayStatus(BaseSchema):
    """Availability of one night."""

    date: date
    available: bool
    price: int
    min_nights: int


class BlockCreate(BaseSchema):
    """Host request to block a date range."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def validate_dates(self):
        """End must be after start."""
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class PriceOverrideCreate(BaseSchema):
    """Host request to set the price of one night."""

    override_date: date
    nightly_price: int = Field(ge=0)
    reason: Optional[str] = Field(None, max_length=50)


def ranges_overlap(s1: date, e1: date, s2: date, e2: date) -> bool:
    """Two half-open intervals overlap iff ``s1 < e2 and s2 < e1``."""
    return s1 < e2 and s2 < e1
