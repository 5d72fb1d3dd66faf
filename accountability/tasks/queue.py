"""Durable delayed-task queue on Redis.

Task bodies live under ``{name}:task:{id}``; the sorted set ``{name}:due``
orders task ids by fire time (epoch seconds). Claiming a task leases it by
pushing its score forward, so a task whose dispatcher dies mid-delivery
becomes due again: delivery is at-least-once.
"""

import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

import redis.asyncio as aioredis

logger = logging.getLogger("accountability.tasks.queue")

# Atomically pick due ids and lease them until ARGV[2]
CLAIM_SCRIPT = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, ARGV[3])
for _, task_id in ipairs(due) do
    redis.call('ZADD', KEYS[1], ARGV[2], task_id)
end
return due
"""


@dataclass
class QueuedTask:
    task_id: str
    fire_at: datetime
    http_target: str
    payload: bytes
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps({
            "task_id": self.task_id,
            "fire_at": self.fire_at.isoformat(),
            "http_target": self.http_target,
            "payload": base64.b64encode(self.payload).decode("ascii"),
            "attempts": self.attempts,
        })

    @classmethod
    def from_json(cls, raw: str | bytes) -> "QueuedTask":
        data = json.loads(raw)
        return cls(
            task_id=data["task_id"],
            fire_at=datetime.fromisoformat(data["fire_at"]),
            http_target=data["http_target"],
            payload=base64.b64decode(data["payload"]),
            attempts=int(data.get("attempts", 0)),
        )


class TaskQueue(Protocol):
    async def enqueue(self, task: QueuedTask) -> str:
        ...


def _decode(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisTaskQueue:
    def __init__(
        self,
        redis: aioredis.Redis,
        name: str = "reminder-queue",
        lease_seconds: int = 300,
        max_attempts: int = 5,
    ):
        self._redis = redis
        self.name = name
        self.lease_seconds = lease_seconds
        self.max_attempts = max_attempts
        self._claim = redis.register_script(CLAIM_SCRIPT)

    @property
    def due_key(self) -> str:
        return f"{self.name}:due"

    @property
    def dead_key(self) -> str:
        return f"{self.name}:dead"

    def task_key(self, task_id: str) -> str:
        return f"{self.name}:task:{task_id}"

    async def enqueue(self, task: QueuedTask) -> str:
        """Add a task to fire at task.fire_at. Re-enqueueing an existing id is a no-op."""
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self.task_key(task.task_id), task.to_json(), nx=True)
            pipe.zadd(self.due_key, {task.task_id: task.fire_at.timestamp()}, nx=True)
            stored = (await pipe.execute())[0]

        if stored:
            logger.info(f"Enqueued task {task.task_id} for {task.fire_at.isoformat()}")
        else:
            logger.info(f"Task {task.task_id} already queued")
        return task.task_id

    async def claim_due(self, now: datetime | None = None, limit: int = 20) -> list[QueuedTask]:
        """Lease up to limit due tasks for lease_seconds and return them."""
        now_ts = (now or datetime.now(timezone.utc)).timestamp()
        task_ids = [
            _decode(t)
            for t in await self._claim(
                keys=[self.due_key],
                args=[now_ts, now_ts + self.lease_seconds, limit],
            )
        ]
        if not task_ids:
            return []

        bodies = await self._redis.mget([self.task_key(t) for t in task_ids])
        tasks: list[QueuedTask] = []
        for task_id, body in zip(task_ids, bodies):
            if body is None:
                # Index entry without a body, nothing left to deliver
                logger.warning(f"Dropping orphaned task id {task_id}")
                await self._redis.zrem(self.due_key, task_id)
                continue
            tasks.append(QueuedTask.from_json(body))
        return tasks

    async def complete(self, task_id: str) -> None:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.due_key, task_id)
            pipe.delete(self.task_key(task_id))
            await pipe.execute()

    async def retry(self, task: QueuedTask, delay_seconds: float, now: datetime | None = None) -> bool:
        """Reschedule a failed delivery. Returns False when the task was dead-lettered instead."""
        task.attempts += 1
        if task.attempts >= self.max_attempts:
            await self.dead_letter(task, f"gave up after {task.attempts} attempts")
            return False

        next_ts = (now or datetime.now(timezone.utc)).timestamp() + delay_seconds
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self.task_key(task.task_id), task.to_json(), xx=True)
            pipe.zadd(self.due_key, {task.task_id: next_ts})
            await pipe.execute()
        logger.info(f"Task {task.task_id} retry {task.attempts}/{self.max_attempts} in {delay_seconds:.0f}s")
        return True

    async def dead_letter(self, task: QueuedTask, reason: str) -> None:
        entry = json.dumps({"task": json.loads(task.to_json()), "reason": reason})
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self.due_key, task.task_id)
            pipe.delete(self.task_key(task.task_id))
            pipe.rpush(self.dead_key, entry)
            await pipe.execute()
        logger.error(f"Task {task.task_id} dead-lettered: {reason}")

    async def pending_count(self) -> int:
        return await self._redis.zcard(self.due_key)
