"""iCalendar (RFC 5545) parsing and rendering for listing calendars."""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from icalendar import Calendar as ICalendar, Event

from staybook.core.config import Settings
from staybook.core.errors import ExternalServiceError
from staybook.models.enums import BlockReason
from staybook.schemas.availability import BlockRecord
from staybook.schemas.calendar import ImportedEvent
from staybook.schemas.listing import ListingRecord

logger = logging.getLogger(__name__)

BLOCK_DESCRIPTIONS = {
    BlockReason.BOOKING: "Reserved",
    BlockReason.HOST_BLOCKED: "Blocked by host",
    BlockReason.ICAL_BLOCKED: "Unavailable",
}


def _as_date(value) -> date:
    # datetime is a subclass of date, so test it first
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise ValueError(f"unsupported date value: {value!r}")


def _event_range(component) -> Optional[tuple[date, date]]:
    dtstart = component.get("DTSTART")
    if dtstart is None:
        return None
    start_value = dtstart.dt
    start = _as_date(start_value)

    dtend = component.get("DTEND")
    duration = component.get("DURATION")
    if dtend is not None:
        end = _as_date(dtend.dt)
    elif duration is not None:
        end = _as_date(start_value + duration.dt)
    elif not isinstance(start_value, datetime):
        # All-day event without an end covers one day
        end = start + timedelta(days=1)
    else:
        return None

    if end <= start:
        return None
    return start, end


def parse_ical(text: str) -> list[ImportedEvent]:
    """Parse a feed into the date ranges it blocks.

    Timed events use their date part; events that cover no night and
    cancelled events are skipped. Raises ExternalServiceError on a malformed
    feed.
    """
    try:
        calendar = ICalendar.from_ical(text)
    except ValueError as e:
        raise ExternalServiceError("ical", f"Invalid iCal data: {e}")

    if calendar.name != "VCALENDAR":
        raise ExternalServiceError("ical", "Invalid iCal data: missing VCALENDAR")

    events = []
    try:
        for component in calendar.walk("VEVENT"):
            if str(component.get("STATUS", "")).upper() == "CANCELLED":
                continue

            span = _event_range(component)
            if span is None:
                logger.debug(f"[ICAL] Skipping event without a night: {component.get('UID')}")
                continue

            uid = component.get("UID")
            summary = component.get("SUMMARY")
            events.append(
                ImportedEvent(
                    start=span[0],
                    end=span[1],
                    uid=str(uid) if uid is not None else None,
                    summary=str(summary) if summary is not None else None,
                )
            )
    except (ValueError, TypeError) as e:
        raise ExternalServiceError("ical", f"Invalid iCal event: {e}")

    return events


def render_ical(
    listing: ListingRecord,
    blocks: Iterable[BlockRecord],
    settings: Settings,
    now: Optional[datetime] = None,
) -> str:
    """Render one all-day VEVENT per unavailable block of the listing."""
    calendar = ICalendar()
    calendar.add("prodid", settings.ical_product_id)
    calendar.add("version", "2.0")
    calendar.add("calscale", "GREGORIAN")
    calendar.add("method", "PUBLISH")
    calendar.add("x-wr-calname", listing.title)

    stamp = now or datetime.now(timezone.utc)
    for block in blocks:
        if block.is_available:
            continue
        event = Event()
        event.add("uid", f"{block.id}@{settings.ical_uid_domain}")
        event.add("dtstamp", stamp)
        event.add("dtstart", block.start_date)
        event.add("dtend", block.end_date)
        event.add("summary", f"Blocked - {listing.title}")
        event.add("description", BLOCK_DESCRIPTIONS[block.reason])
        calendar.add_component(event)

    return calendar.to_ical().decode("utf-8")
