"""Notification scheduling — turns a new reminder into a delayed delivery task."""

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone

from accountability.db.models import Reminder
from accountability.tasks.queue import QueuedTask, TaskQueue

logger = logging.getLogger("accountability.tasks.scheduler")

_DATE_ISO = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidReminderDate(ValueError):
    """The reminder's date_iso is not a YYYY-MM-DD calendar date. Not retryable."""


class SchedulingError(Exception):
    """The task queue did not accept the task."""


def fire_instant(date_iso: str) -> datetime:
    """00:00:00 UTC on the given calendar date."""
    if not isinstance(date_iso, str) or not _DATE_ISO.match(date_iso):
        raise InvalidReminderDate(f"Invalid date format: {date_iso!r}")
    try:
        day = date.fromisoformat(date_iso)
    except ValueError as e:
        raise InvalidReminderDate(f"Invalid date format: {date_iso!r}") from e
    return datetime(day.year, day.month, day.day, tzinfo=timezone.utc)


def task_id_for(reminder_id: str) -> str:
    return f"reminder-{reminder_id}"


@dataclass(frozen=True)
class NotificationTask:
    reminder_id: str
    user_id: str
    payload_text: str
    scheduled_at: datetime
    delivery_url: str

    def payload(self) -> bytes:
        return json.dumps({"userId": self.user_id, "reminderText": self.payload_text}).encode("utf-8")


class NotificationScheduler:
    def __init__(self, queue: TaskQueue, delivery_url: str, timeout: float = 10.0):
        self.queue = queue
        self.delivery_url = delivery_url
        self.timeout = timeout

    def build_task(self, reminder: Reminder) -> NotificationTask:
        return NotificationTask(
            reminder_id=reminder.id,
            user_id=reminder.user_id,
            payload_text=reminder.text,
            scheduled_at=fire_instant(reminder.date_iso),
            delivery_url=self.delivery_url,
        )

    async def schedule(self, reminder: Reminder) -> str:
        """Enqueue the delivery task for a reminder and return the task id.

        Raises InvalidReminderDate before touching the queue, and
        SchedulingError when the queue fails or times out.
        """
        task = self.build_task(reminder)
        queued = QueuedTask(
            task_id=task_id_for(task.reminder_id),
            fire_at=task.scheduled_at,
            http_target=task.delivery_url,
            payload=task.payload(),
        )
        try:
            task_id = await asyncio.wait_for(self.queue.enqueue(queued), timeout=self.timeout)
        except Exception as e:
            raise SchedulingError(f"Failed to enqueue notification for reminder {reminder.id}: {e!r}") from e

        logger.info(f"Scheduled notification for user {reminder.user_id} at {task.scheduled_at.isoformat()}")
        return task_id
