"""Accountability database models — SQLAlchemy 2.0 declarative style."""

from datetime import datetime

from sqlalchemy import DateTime, Index, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class Reminder(Base):
    __tablename__ = "reminders"
    __table_args__ = (
        Index("ix_reminders_user_date", "user_id", "date_iso"),
    )

    # sha256 hex of user_id-date_iso-text
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String, index=True)
    date_iso: Mapped[str] = mapped_column(String(10))
    text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    source_message_id: Mapped[str | None] = mapped_column(String)
    source_session_id: Mapped[str | None] = mapped_column(String)
    notification_task_id: Mapped[str | None] = mapped_column(String)


class UserDevice(Base):
    __tablename__ = "user_devices"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    push_token: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
