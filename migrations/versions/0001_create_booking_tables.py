"""create bookings and booking_passengers

Revision ID: 0001
Revises:
Create Date: 2025-01-06 09:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

booking_status = postgresql.ENUM("pending", "confirmed", "cancelled", "completed", name="booking_status")
payment_status = postgresql.ENUM("unpaid", "paid", "refunded", name="payment_status")
boarding_status = postgresql.ENUM("not_boarded", "boarded", "no_show", name="boarding_status")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "bookings",
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_reference", sa.String(20), nullable=False, unique=True),
        sa.Column("trip_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("contact_email", sa.String(255), nullable=False),
        sa.Column("contact_phone", sa.String(32), nullable=False),
        sa.Column("status", booking_status, nullable=False),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("payment_method", sa.String(50), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("departure_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("service_fee", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("refund_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("modification_fees", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("ticket_url", sa.Text(), nullable=True),
        sa.Column("qr_code_url", sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("subtotal >= 0", name="ck_bookings_subtotal_non_negative"),
        sa.CheckConstraint("total_price >= 0", name="ck_bookings_total_price_non_negative"),
    )
    op.create_index("ix_bookings_trip_id", "bookings", ["trip_id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_expiry_scan", "bookings", ["status", "payment_status", "locked_until"])

    op.create_table(
        "booking_passengers",
        sa.Column("ticket_id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "booking_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bookings.booking_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seat_code", sa.String(10), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("document_id", sa.String(50), nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("boarding_status", boarding_status, nullable=False),
        sa.Column("boarded_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_booking_passengers_booking_id", "booking_passengers", ["booking_id"])


def downgrade() -> None:
    op.drop_index("ix_booking_passengers_booking_id", table_name="booking_passengers")
    op.drop_table("booking_passengers")
    op.drop_index("ix_bookings_expiry_scan", table_name="bookings")
    op.drop_index("ix_bookings_status", table_name="bookings")
    op.drop_index("ix_bookings_user_id", table_name="bookings")
    op.drop_index("ix_bookings_trip_id", table_name="bookings")
    op.drop_table("bookings")
    for enum_type in (boarding_status, payment_status, booking_status):
        enum_type.drop(op.get_bind(), checkfirst=True)
