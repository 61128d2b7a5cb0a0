"""
SQLAlchemy ORM models
"""
from datetime import datetime
from sqlalchemy import (
    BigInteger, Boolean, DateTime, Integer, SmallInteger, String, Text, TIMESTAMP,
    UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from tradeclock.infrastructure.db.session import Base


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    # user / admin / superadmin
    role: Mapped[str] = mapped_column(String(20), nullable=False, server_default="user")

    created_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )


class ReminderModel(Base):
    """
    One normalized reminder record per (user, event key).

    doc_id is the base64url form of event_key (keys may contain '/').
    """
    __tablename__ = "reminders"
    __table_args__ = (
        UniqueConstraint("user_id", "doc_id", name="uq_reminders_user_doc"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    doc_id: Mapped[str] = mapped_column(String(512), nullable=False)
    event_key: Mapped[str] = mapped_column(Text, nullable=False)
    series_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    series_id: Mapped[str | None] = mapped_column(String(128), nullable=True, index=True)
    event_source: Mapped[str] = mapped_column(String(64), nullable=False, server_default="unknown")
    scope: Mapped[str] = mapped_column(String(10), nullable=False, server_default="event")
    event_epoch_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    impact: Mapped[str] = mapped_column(String(32), nullable=False, server_default="unknown")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False)
    reminders: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    channels: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    meta: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class NotificationTriggerModel(Base):
    """Ledger of fired triggers (occurrence x lead time x channel), used for dedup."""
    __tablename__ = "notification_triggers"
    __table_args__ = (
        UniqueConstraint("user_id", "trigger_id", name="uq_notification_triggers_user_trigger"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    trigger_id: Mapped[str] = mapped_column(String(512), nullable=False)
    event_key: Mapped[str | None] = mapped_column(Text, nullable=True)
    channel: Mapped[str] = mapped_column(String(16), nullable=False)
    occurrence_epoch_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    minutes_before: Mapped[int | None] = mapped_column(Integer, nullable=True)
    sent_at_ms: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    payload: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class NotificationStatsModel(Base):
    """Per-user daily push counter (day_key = local YYYY-MM-DD)."""
    __tablename__ = "notification_stats"

    user_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    day_key: Mapped[str] = mapped_column(String(10), primary_key=True)
    count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class UserNotificationSettings(Base):
    """Per-user quiet hours override; NULL hours fall back to the app settings."""
    __tablename__ = "user_notification_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    timezone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    quiet_start_hour: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    quiet_end_hour: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)


class PushSubscription(Base):
    """Web Push subscription for a user device."""
    __tablename__ = "push_subscriptions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
