"""Booking model."""

import uuid
from datetime import datetime, date
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from staybook.core.clock import utcnow
from staybook.core.database import Base
from staybook.models.enums import BookingStatus, CancellationPolicy, PayoutStatus


class Booking(Base):
    """A guest reservation of ``[check_in, check_out)`` on a listing.

    Never hard-deleted: cancellation and decline are statuses. While the status
    is PENDING, CONFIRMED or CHECKED_IN an availability block with
    reason=booking and source_id=<booking id> exists for the same range.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_in < check_out", name="ck_bookings_date_order"),
        CheckConstraint("guests >= 1", name="ck_bookings_guests"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    listing_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("listings.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    guest_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    host_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)

    # Dates (half-open)
    check_in: Mapped[date] = mapped_column(Date, nullable=False)
    check_out: Mapped[date] = mapped_column(Date, nullable=False)
    guests: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    status: Mapped[BookingStatus] = mapped_column(
        SQLEnum(BookingStatus),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Pricing breakdown (minor units)
    subtotal: Mapped[int] = mapped_column(Integer, nullable=False)
    cleaning_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    service_fee: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    taxes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    cancellation_policy: Mapped[CancellationPolicy] = mapped_column(
        SQLEnum(CancellationPolicy),
        default=CancellationPolicy.MODERATE,
        nullable=False,
    )

    # Payment
    payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    payout_status: Mapped[PayoutStatus] = mapped_column(
        SQLEnum(PayoutStatus),
        default=PayoutStatus.PENDING,
        nullable=False,
    )
    refund_amount: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    refund_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Cancellation / decline
    cancel_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    canceled_by: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
