"""Availability block and nightly price override models."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from staybook.core.clock import utcnow
from staybook.core.database import Base
from staybook.models.enums import BlockReason, CalendarSource


class AvailabilityBlock(Base):
    """A half-open ``[start_date, end_date)`` range removed from a listing's calendar.

    Blocks with reason=booking are created and removed only by booking
    transitions; source_id then holds the booking id. iCal blocks carry the
    calendar id in source_id.
    """

    __tablename__ = "availability_blocks"
    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_blocks_date_order"),
        Index("ix_blocks_listing_range", "listing_id", "start_date", "end_date"),
        Index("ix_blocks_owner", "listing_id", "source", "source_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reason: Mapped[BlockReason] = mapped_column(SQLEnum(BlockReason), nullable=False)
    source: Mapped[CalendarSource] = mapped_column(
        SQLEnum(CalendarSource),
        default=CalendarSource.INTERNAL,
        nullable=False,
    )
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class PriceOverride(Base):
    """Nightly price for one date, replacing the listing's base price."""

    __tablename__ = "price_overrides"
    __table_args__ = (
        UniqueConstraint("listing_id", "override_date", name="uq_price_override_listing_date"),
        CheckConstraint("nightly_price >= 0", name="ck_price_override_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    override_date: Mapped[date] = mapped_column(Date, nullable=False)
    nightly_price: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # weekend, holiday, peak_season
