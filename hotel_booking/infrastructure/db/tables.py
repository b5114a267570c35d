from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)

metadata = MetaData()

bookings = Table(
    "bookings",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("hotel_id", String(255), nullable=False),
    Column("hotel_name", String(255)),
    Column("destination_id", String(255)),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("nights", Integer, nullable=False),
    Column("adults", Integer, nullable=False, default=1),
    Column("children", Integer, nullable=False, default=0),
    Column("room_types", JSON),
    Column("total_price", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("salutation", String(10)),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("email", String(255), nullable=False),
    Column("phone", String(20)),
    Column("message_to_hotel", Text),
    Column("user_id", String(255)),
    Column("status", String(32), nullable=False),
    Column("payment_reference", String(255)),
    Column("retry_token", JSON),
    Column("revision", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Column("redacted_at", DateTime),
    Index("ix_bookings_email", "email"),
    Index("ix_bookings_status_created_at", "status", "created_at"),
)

payment_sessions = Table(
    "payment_sessions",
    metadata,
    Column("session_id", String(255), primary_key=True),
    Column("booking_id", String(36), ForeignKey("bookings.id"), nullable=False),
    Column("attempt", Integer, nullable=False, default=1),
    Column("redirect_url", Text),
    Column("status", String(32), nullable=False),
    Column("payment_status", String(32), nullable=False),
    Column("external_payment_id", String(255)),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
    Index("ix_payment_sessions_booking_id", "booking_id"),
)

idempotency_keys = Table(
    "idempotency_keys",
    metadata,
    Column("scope", String(50), primary_key=True),
    Column("idem_key", String(255), primary_key=True),
    Column("request_hash", String(64), nullable=False),
    Column("booking_id", String(36), nullable=False),
    Column("created_at", DateTime, nullable=False),
)
