"""SQLAlchemy ORM models."""

from datetime import datetime, timezone
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class NotificationModel(Base):
    """Scheduled notification model."""

    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'claimed', 'sent', 'read', 'failed')",
            name="ck_notifications_status",
        ),
        Index("ix_notifications_status_scheduled_for", "status", "scheduled_for"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    task_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="both")
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    claim_token: Mapped[UUID | None] = mapped_column(Uuid, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class DeliveryConfigModel(Base):
    """Per-user delivery preferences."""

    __tablename__ = "delivery_configs"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    preferred_channel: Mapped[str] = mapped_column(
        String(20),
        CheckConstraint("preferred_channel IN ('email', 'push', 'both')"),
        nullable=False,
        default="both",
    )
    quiet_hours_start: Mapped[int | None] = mapped_column(Integer)
    quiet_hours_end: Mapped[int | None] = mapped_column(Integer)
    desktop_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    mobile_available: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    channels: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class UserActivityPatternModel(Base):
    """Per-user activity pattern."""

    __tablename__ = "user_activity_patterns"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    active_hours: Mapped[list[int]] = mapped_column(JSONType, default=list, nullable=False)
    preferred_devices: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    time_zone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)
    quiet_hours_start: Mapped[int | None] = mapped_column(Integer)
    quiet_hours_end: Mapped[int | None] = mapped_column(Integer)
    device_usage: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class NotificationMetricsModel(Base):
    """Per-user aggregate read metrics."""

    __tablename__ = "notification_metrics"

    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    read_rate: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    response_time_ms: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    email_effectiveness: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    push_effectiveness: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )


class DeliveryStatsModel(Base):
    """Per-user, per-channel delivery statistics."""

    __tablename__ = "delivery_stats"
    __table_args__ = (UniqueConstraint("user_id", "channel"),)

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    delivery_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    response_rate: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    engagement_score: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    failure_count: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    avg_response_time_ms: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )
