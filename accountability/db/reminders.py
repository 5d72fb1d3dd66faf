"""Reminder persistence — idempotent create keyed by a content fingerprint."""

import asyncio
import hashlib
import logging
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accountability.db.models import Reminder

logger = logging.getLogger("accountability.db.reminders")


def fingerprint(user_id: str, date_iso: str, text: str) -> str:
    """Deterministic reminder id: sha256 over user_id-date_iso-text."""
    return hashlib.sha256(f"{user_id}-{date_iso}-{text}".encode("utf-8")).hexdigest()


def new_reminder(
    user_id: str,
    date_iso: str,
    text: str,
    source_message_id: str | None = None,
    source_session_id: str | None = None,
) -> Reminder:
    """Build an unsaved Reminder whose id is the commitment fingerprint."""
    return Reminder(
        id=fingerprint(user_id, date_iso, text),
        user_id=user_id,
        date_iso=date_iso,
        text=text,
        created_at=datetime.now(timezone.utc),
        source_message_id=source_message_id,
        source_session_id=source_session_id,
    )


class ReminderRepository:
    """Reminder store. The database's conditional insert is the only guard against duplicates."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], timeout: float = 10.0):
        self._session_factory = session_factory
        self.timeout = timeout

    async def exists(self, user_id: str, date_iso: str, text: str) -> bool:
        return await self.get(fingerprint(user_id, date_iso, text)) is not None

    async def get(self, reminder_id: str) -> Reminder | None:
        async def _get() -> Reminder | None:
            async with self._session_factory() as session:
                return await session.get(Reminder, reminder_id)

        return await asyncio.wait_for(_get(), timeout=self.timeout)

    async def upsert(self, reminder: Reminder) -> tuple[Reminder, bool]:
        """Create the reminder if its id is new. Returns (stored, was_newly_created).

        An existing row is left untouched, created_at included.
        """
        return await asyncio.wait_for(self._upsert(reminder), timeout=self.timeout)

    async def _upsert(self, reminder: Reminder) -> tuple[Reminder, bool]:
        values = {
            "id": reminder.id,
            "user_id": reminder.user_id,
            "date_iso": reminder.date_iso,
            "text": reminder.text,
            "created_at": reminder.created_at or datetime.now(timezone.utc),
            "source_message_id": reminder.source_message_id,
            "source_session_id": reminder.source_session_id,
            "notification_task_id": reminder.notification_task_id,
        }
        async with self._session_factory() as session:
            insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
            stmt = (
                insert(Reminder)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["id"])
                .returning(Reminder.id)
            )
            result = await session.execute(stmt)
            created = result.scalar_one_or_none() is not None
            await session.commit()

            stored = await session.get(Reminder, reminder.id)

        if created:
            logger.info(f"Created reminder {reminder.id} for user {reminder.user_id} on {reminder.date_iso}")
        else:
            logger.info(f"Reminder {reminder.id} already exists for user {reminder.user_id}")
        return stored, created

    async def attach_task(self, reminder_id: str, task_id: str) -> None:
        """Record the notification task scheduled for a reminder."""
        async def _attach() -> None:
            async with self._session_factory() as session:
                await session.execute(
                    update(Reminder)
                    .where(Reminder.id == reminder_id)
                    .values(notification_task_id=task_id)
                )
                await session.commit()

        await asyncio.wait_for(_attach(), timeout=self.timeout)

    async def list_for_user(self, user_id: str) -> list[Reminder]:
        async def _list() -> list[Reminder]:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(Reminder)
                    .where(Reminder.user_id == user_id)
                    .order_by(Reminder.date_iso, Reminder.created_at)
                )
                return list(result.scalars().all())

        return await asyncio.wait_for(_list(), timeout=self.timeout)
