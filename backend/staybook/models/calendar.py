"""Calendar model (internal export calendar or imported iCal feed)."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from staybook.core.clock import utcnow
from staybook.core.database import Base
from staybook.models.enums import CalendarSource


class Calendar(Base):
    """A listing calendar.

    Internal calendars carry the capability token for the public iCal export.
    iCal calendars carry the remote feed URL whose events become ical_blocked
    blocks owned by this calendar.
    """

    __tablename__ = "calendars"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source: Mapped[CalendarSource] = mapped_column(SQLEnum(CalendarSource), nullable=False)
    ical_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ical_export_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_sync_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
