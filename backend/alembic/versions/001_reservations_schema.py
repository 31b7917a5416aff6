"""Reservation core schema: listings, availability, bookings, calendars, notifications.

Revision ID: 001_reservations_schema
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ENUM

revision = '001_reservations_schema'
down_revision = None
branch_labels = None
depends_on = None

# Enum types store member names, matching SQLAlchemy's Enum(PythonEnum) mapping
ENUM_TYPES = {
    'bookingstatus': ('PENDING', 'CONFIRMED', 'CHECKED_IN', 'CHECKED_OUT', 'CANCELED', 'DECLINED'),
    'cancellationpolicy': ('FLEXIBLE', 'MODERATE', 'STRICT', 'SUPER_STRICT'),
    'payoutstatus': ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED'),
    'blockreason': ('HOST_BLOCKED', 'ICAL_BLOCKED', 'BOOKING'),
    'calendarsource': ('INTERNAL', 'ICAL'),
    'notificationtype': (
        'BOOKING_REQUEST', 'BOOKING_CONFIRMED', 'BOOKING_DECLINED', 'BOOKING_CANCELED', 'PAYOUT_SENT',
    ),
}


def _enum(name: str) -> ENUM:
    return ENUM(*ENUM_TYPES[name], name=name, create_type=False)


def upgrade() -> None:
    for name, values in ENUM_TYPES.items():
        labels = ", ".join(f"'{value}'" for value in values)
        op.execute(f"""
            DO $$ BEGIN
                CREATE TYPE {name} AS ENUM ({labels});
            EXCEPTION WHEN duplicate_object THEN NULL;
            END $$;
        """)

    op.create_table(
        'listings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('host_id', sa.String(128), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('base_price', sa.Integer(), nullable=False),
        sa.Column('cleaning_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('min_nights', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('max_nights', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('max_guests', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('instant_book', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cancellation_policy', _enum('cancellationpolicy'), nullable=False, server_default='MODERATE'),
        sa.Column('host_payout_account', sa.String(255), nullable=True),
        sa.Column('availability_version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('min_nights >= 1', name='ck_listings_min_nights'),
        sa.CheckConstraint('max_nights >= min_nights', name='ck_listings_night_bounds'),
        sa.CheckConstraint('max_guests >= 1', name='ck_listings_max_guests'),
    )
    op.create_index('ix_listings_host_id', 'listings', ['host_id'])

    op.create_table(
        'availability_blocks',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('listing_id', sa.Uuid(), sa.ForeignKey('listings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('reason', _enum('blockreason'), nullable=False),
        sa.Column('source', _enum('calendarsource'), nullable=False, server_default='INTERNAL'),
        sa.Column('source_id', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('start_date < end_date', name='ck_blocks_date_order'),
    )
    op.create_index('ix_blocks_listing_range', 'availability_blocks', ['listing_id', 'start_date', 'end_date'])
    op.create_index('ix_blocks_owner', 'availability_blocks', ['listing_id', 'source', 'source_id'])

    op.create_table(
        'price_overrides',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('listing_id', sa.Uuid(), sa.ForeignKey('listings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('override_date', sa.Date(), nullable=False),
        sa.Column('nightly_price', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(50), nullable=True),
        sa.UniqueConstraint('listing_id', 'override_date', name='uq_price_override_listing_date'),
        sa.CheckConstraint('nightly_price >= 0', name='ck_price_override_non_negative'),
    )
    op.create_index('ix_price_overrides_listing_id', 'price_overrides', ['listing_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('listing_id', sa.Uuid(), sa.ForeignKey('listings.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('guest_id', sa.String(128), nullable=False),
        sa.Column('host_id', sa.String(128), nullable=False),
        sa.Column('check_in', sa.Date(), nullable=False),
        sa.Column('check_out', sa.Date(), nullable=False),
        sa.Column('guests', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', _enum('bookingstatus'), nullable=False, server_default='PENDING'),
        sa.Column('subtotal', sa.Integer(), nullable=False),
        sa.Column('cleaning_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('service_fee', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('taxes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('cancellation_policy', _enum('cancellationpolicy'), nullable=False, server_default='MODERATE'),
        sa.Column('payment_intent_id', sa.String(255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('payout_status', _enum('payoutstatus'), nullable=False, server_default='PENDING'),
        sa.Column('refund_amount', sa.Integer(), nullable=True),
        sa.Column('refund_id', sa.String(255), nullable=True),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('canceled_by', sa.String(128), nullable=True),
        sa.Column('special_requests', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
        sa.CheckConstraint('check_in < check_out', name='ck_bookings_date_order'),
        sa.CheckConstraint('guests >= 1', name='ck_bookings_guests'),
    )
    op.create_index('ix_bookings_listing_id', 'bookings', ['listing_id'])
    op.create_index('ix_bookings_guest_id', 'bookings', ['guest_id'])
    op.create_index('ix_bookings_host_id', 'bookings', ['host_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_payment_intent_id', 'bookings', ['payment_intent_id'])

    op.create_table(
        'calendars',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('listing_id', sa.Uuid(), sa.ForeignKey('listings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('source', _enum('calendarsource'), nullable=False),
        sa.Column('ical_url', sa.Text(), nullable=True),
        sa.Column('ical_export_token', sa.String(128), nullable=True, unique=True),
        sa.Column('sync_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_sync_at', sa.DateTime(), nullable=True),
        sa.Column('last_sync_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_calendars_listing_id', 'calendars', ['listing_id'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('user_id', sa.String(128), nullable=False),
        sa.Column('type', _enum('notificationtype'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('calendars')
    op.drop_table('bookings')
    op.drop_table('price_overrides')
    op.drop_table('availability_blocks')
    op.drop_table('listings')
    for name in reversed(list(ENUM_TYPES)):
        op.execute(f"DROP TYPE IF EXISTS {name}")
