"""Calendar schemas."""

from datetime import date, datetime
from typing import Optional
from uuid import UUID, uuid4

from pydantic import Field, HttpUrl, model_validator

from staybook.core.clock import utcnow
from staybook.schemas.base import BaseSchema
from staybook.models.enums import CalendarSource


class CalendarRecord(BaseSchema):
    """Internal (export) or iCal (import) calendar of a listing."""

    id: UUID = Field(default_factory=uuid4)
    listing_id: UUID
    source: CalendarSource
    ical_url: Optional[str] = None
    ical_export_token: Optional[str] = None
    sync_enabled: bool = True
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_source(self):
        if self.source == CalendarSource.ICAL and not self.ical_url:
            raise ValueError("iCal calendars require ical_url")
        if self.source == CalendarSource.INTERNAL and not self.ical_export_token:
            raise ValueError("internal calendars require an export token")
        return self


class CalendarCreate(BaseSchema):
    """Host request to attach a calendar to a listing."""

    source: CalendarSource = CalendarSource.ICAL
    ical_url: Optional[HttpUrl] = None

    @model_validator(mode="after")
    def validate_url(self):
        if self.source == CalendarSource.ICAL and self.ical_url is None:
            raise ValueError("ical_url is required for iCal calendars")
        return self


class SyncResult(BaseSchema):
    """Outcome of one iCal import."""

    calendar_id: UUID
    listing_id: UUID
    events_parsed: int
    blocks_written: int
    synced_at: datetime


class ImportedEvent(BaseSchema):
    """A VEVENT reduced to its half-open date range."""

    start: date
    end: date
    uid: Optional[str] = None
    summary: Optional[str] = None
