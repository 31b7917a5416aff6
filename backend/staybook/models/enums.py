"""Enumeration types for the reservation domain model."""

from enum import Enum


class BookingStatus(str, Enum):
    """Status of a booking (see BOOKING_TRANSITIONS for legal moves)."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELED = "canceled"
    DECLINED = "declined"


# Legal state transitions. DECLINED, CANCELED and CHECKED_OUT are terminal.
BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset(
        {BookingStatus.CONFIRMED, BookingStatus.DECLINED, BookingStatus.CANCELED}
    ),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELED, BookingStatus.CHECKED_IN}),
    BookingStatus.CHECKED_IN: frozenset({BookingStatus.CHECKED_OUT}),
    BookingStatus.CHECKED_OUT: frozenset(),
    BookingStatus.CANCELED: frozenset(),
    BookingStatus.DECLINED: frozenset(),
}

# Statuses whose booking holds a calendar block.
BLOCKING_STATUSES = frozenset(
    {BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.CHECKED_IN}
)


class CancellationPolicy(str, Enum):
    """Refund policy attached to a booking."""
    FLEXIBLE = "flexible"          # Full refund up to 1 day before check-in
    MODERATE = "moderate"          # Full refund 5+ days out, 50% 1+ day out
    STRICT = "strict"              # 50% refund 7+ days out
    SUPER_STRICT = "super_strict"  # No refund


class PayoutStatus(str, Enum):
    """Host payout status for a booking."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class BlockReason(str, Enum):
    """Why a date range is unavailable."""
    HOST_BLOCKED = "host_blocked"
    ICAL_BLOCKED = "ical_blocked"
    BOOKING = "booking"


class CalendarSource(str, Enum):
    """Origin of a calendar or block."""
    INTERNAL = "internal"
    ICAL = "ical"


class NotificationType(str, Enum):
    """In-app notification types emitted by booking transitions."""
    BOOKING_REQUEST = "booking_request"
    BOOKING_CONFIRMED = "booking_confirmed"
    BOOKING_DECLINED = "booking_declined"
    BOOKING_CANCELED = "booking_canceled"
    PAYOUT_SENT = "payout_sent"
