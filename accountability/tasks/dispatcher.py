"""APScheduler job that fires due reminder tasks at their HTTP targets."""

import logging
from datetime import datetime, timezone

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from accountability.api.auth import create_task_token
from accountability.tasks.queue import QueuedTask, RedisTaskQueue

logger = logging.getLogger("accountability.tasks.dispatcher")

MAX_BACKOFF_SECONDS = 3600
# Client errors that are worth another attempt
RETRYABLE_CLIENT_STATUSES = (408, 429)


def backoff_seconds(attempts: int) -> int:
    return min(60 * 2 ** attempts, MAX_BACKOFF_SECONDS)


class TaskDispatcher:
    def __init__(
        self,
        queue: RedisTaskQueue,
        http: httpx.AsyncClient,
        signing_secret: str,
        batch_size: int = 20,
    ):
        self.queue = queue
        self.http = http
        self.signing_secret = signing_secret
        self.batch_size = batch_size

    async def run_once(self, now: datetime | None = None) -> dict:
        """Deliver every task due at `now`. Returns delivery counts."""
        now = now or datetime.now(timezone.utc)
        stats = {"delivered": 0, "retried": 0, "dead": 0}
        for task in await self.queue.claim_due(now, limit=self.batch_size):
            outcome = await self._deliver(task, now)
            stats[outcome] += 1
        if any(stats.values()):
            logger.info(f"Dispatch run: {stats}")
        return stats

    async def _deliver(self, task: QueuedTask, now: datetime) -> str:
        headers = {
            "Content-Type": "application/json",
            "X-Task-Token": create_task_token(self.signing_secret, task.task_id),
            "X-Task-Attempt": str(task.attempts + 1),
        }
        try:
            response = await self.http.post(task.http_target, content=task.payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"Task {task.task_id} delivery failed: {e!r}")
            return await self._retry(task, now)

        if response.is_success:
            await self.queue.complete(task.task_id)
            logger.info(f"Task {task.task_id} delivered ({response.status_code})")
            return "delivered"

        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_CLIENT_STATUSES:
            await self.queue.dead_letter(task, f"HTTP {response.status_code}: {response.text[:200]}")
            return "dead"

        logger.warning(f"Task {task.task_id} got HTTP {response.status_code}, will retry")
        return await self._retry(task, now)

    async def _retry(self, task: QueuedTask, now: datetime) -> str:
        retried = await self.queue.retry(task, backoff_seconds(task.attempts), now=now)
        return "retried" if retried else "dead"


async def dispatch_job(dispatcher: TaskDispatcher) -> None:
    """Run one dispatch pass. Called by APScheduler."""
    try:
        await dispatcher.run_once()
    except Exception as e:
        logger.error(f"Scheduled dispatch failed: {e}")


def start_dispatcher(dispatcher: TaskDispatcher, interval_seconds: int = 30) -> AsyncIOScheduler:
    """Start the periodic dispatch job and return its scheduler."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        dispatch_job,
        "interval",
        seconds=interval_seconds,
        args=[dispatcher],
        id="reminder_dispatch",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Dispatch scheduler started ({interval_seconds}s interval)")
    return scheduler


def stop_dispatcher(scheduler: AsyncIOScheduler) -> None:
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Dispatch scheduler stopped")
