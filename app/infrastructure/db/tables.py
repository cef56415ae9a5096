from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

participants = Table(
    "participants",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False, default=""),
    Column("email", String(255)),
    Column("role", String(16), nullable=False),
    Column("is_banned", Boolean, nullable=False, default=False),
    Column("languages", JSON, nullable=False, default=list),
    Column("stripe_account_id", String(64), unique=True),
    Column("stripe_charges_enabled", Boolean, nullable=False, default=False),
    Column("stripe_payouts_enabled", Boolean, nullable=False, default=False),
    Column("stripe_details_submitted", Boolean, nullable=False, default=False),
)

experiences = Table(
    "experiences",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("host_id", Integer, ForeignKey("participants.id"), nullable=False),
    Column("title", String(255), nullable=False),
    Column("price", Integer, nullable=False, default=0),
    Column("currency", String(3), nullable=False),
    Column("activity_type", String(16), nullable=False),
    Column("max_participants", Integer, nullable=False),
    Column("remaining_spots", Integer, nullable=False),
    Column("sold_out", Boolean, nullable=False, default=False),
    Column("status", String(16), nullable=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("starts_at", DateTime(timezone=True)),
    Column("ends_at", DateTime(timezone=True)),
    Column("duration_minutes", Integer),
    Column("created_at", DateTime(timezone=True)),
)

bookings = Table(
    "bookings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("experience_id", Integer, ForeignKey("experiences.id"), nullable=False),
    Column("explorer_id", Integer, ForeignKey("participants.id"), nullable=False),
    Column("host_id", Integer, ForeignKey("participants.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("amount", Integer, nullable=False, default=0),
    Column("deposit_amount", Integer, nullable=False, default=0),
    Column("currency", String(3), nullable=False),
    Column("is_deposit", Boolean, nullable=False, default=False),
    Column("status", String(32), nullable=False),
    Column("attendance_status", String(16), nullable=False),
    Column("attendance_confirmed", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
    Column("paid_at", DateTime(timezone=True)),
    Column("completed_at", DateTime(timezone=True)),
    Column("cancelled_at", DateTime(timezone=True)),
    Column("refunded_at", DateTime(timezone=True)),
    Column("payout_eligible_at", DateTime(timezone=True)),
    Column("cancelled_by", String(16)),
    Column("cancel_reason", String(255)),
    Column("disputed_at", DateTime(timezone=True)),
    Column("dispute_resolved_at", DateTime(timezone=True)),
    Column("dispute_reason", String(32)),
    Column("dispute_comment", String(300)),
    Column("status_before_dispute", String(32)),
    Column("refund_attempts", Integer, nullable=False, default=0),
    Column("last_refund_attempt_at", DateTime(timezone=True)),
    Column("chat_archive_at", DateTime(timezone=True)),
    Column("chat_archived_at", DateTime(timezone=True)),
    Column("attendance_reminder_sent_at", DateTime(timezone=True)),
    Column("attendance_email_sent", Boolean, nullable=False, default=False),
    Column("refund_success_email_sent", Boolean, nullable=False, default=False),
    Column("lock_version", Integer, nullable=False, default=0),
    Index("ix_bookings_status", "status"),
    Index("ix_bookings_experience_id", "experience_id"),
    Index("ix_bookings_host_id", "host_id"),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("booking_id", Integer, ForeignKey("bookings.id"), nullable=False, unique=True),
    Column("stripe_session_id", String(255), index=True),
    Column("stripe_payment_intent_id", String(64), index=True),
    Column("stripe_charge_id", String(64), index=True),
    Column("amount", Integer, nullable=False),
    Column("currency", String(3), nullable=False),
    Column("is_deposit", Boolean, nullable=False, default=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

webhook_events = Table(
    "webhook_events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_id", String(255), nullable=False, unique=True),
    Column("event_type", String(64), nullable=False),
    Column("received_at", DateTime(timezone=True), nullable=False),
)

dispute_reports = Table(
    "dispute_reports",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("booking_id", Integer, ForeignKey("bookings.id"), nullable=False, index=True),
    Column("experience_id", Integer, nullable=False),
    Column("host_id", Integer, nullable=False),
    Column("reporter_id", Integer, nullable=False),
    Column("reason", String(32), nullable=False),
    Column("comment", String(300)),
    Column("status", String(16), nullable=False),
    Column("deadline_at", DateTime(timezone=True)),
    Column("handled_at", DateTime(timezone=True)),
    Column("handled_by", String(64)),
    Column("action_taken", String(32)),
    Column("created_at", DateTime(timezone=True)),
)

booking_messages = Table(
    "booking_messages",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("booking_id", Integer, ForeignKey("bookings.id"), nullable=False, index=True),
    Column("sender_id", Integer, nullable=False),
    Column("text", Text, nullable=False),
    Column("created_at", DateTime(timezone=True)),
)
