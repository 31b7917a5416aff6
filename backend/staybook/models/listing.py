"""Listing model (owned by the listings subsystem; read-only to reservations)."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum as SQLEnum, Integer, String, Uuid, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from staybook.core.clock import utcnow
from staybook.core.database import Base
from staybook.models.enums import CancellationPolicy


class Listing(Base):
    """A rentable unit published by a host.

    ``availability_version`` is the only column reservations write: bumping it
    takes the row lock that serializes booking/block mutations per listing.
    """

    __tablename__ = "listings"
    __table_args__ = (
        CheckConstraint("min_nights >= 1", name="ck_listings_min_nights"),
        CheckConstraint("max_nights >= min_nights", name="ck_listings_night_bounds"),
        CheckConstraint("max_guests >= 1", name="ck_listings_max_guests"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    host_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)

    # Money in minor units (cents)
    base_price: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    min_nights: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    max_nights: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    max_guests: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    instant_book: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancellation_policy: Mapped[CancellationPolicy] = mapped_column(
        SQLEnum(CancellationPolicy),
        default=CancellationPolicy.MODERATE,
        nullable=False,
    )

    # Stripe Connect account receiving host payouts
    host_payout_account: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    availability_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
