"""Shared fixtures for accountability tests.

Design decisions:
- Repository and pipeline tests run against an in-memory SQLite database
  (aiosqlite). Each test gets a fresh schema, so no teardown of rows is needed.
- The task queue is replaced by RecordingQueue, which keeps enqueued tasks in
  a list and can be told to fail, so scheduling tests never touch Redis.
- Tests that analyze text pass REFERENCE_DATE explicitly; the example
  commitment dates are only "future" relative to it.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from accountability.db.models import Base
from accountability.db.reminders import ReminderRepository
from accountability.db.session import create_engine, create_session_factory
from accountability.tasks.queue import QueuedTask

REFERENCE_DATE = date(2025, 7, 1)


class RecordingQueue:
    """In-memory stand-in for RedisTaskQueue.enqueue."""

    def __init__(self, fail: Exception | None = None):
        self.tasks: list[QueuedTask] = []
        self.fail = fail

    async def enqueue(self, task: QueuedTask) -> str:
        if self.fail is not None:
            raise self.fail
        self.tasks.append(task)
        return task.task_id


@pytest.fixture
def reference_date() -> date:
    return REFERENCE_DATE


@pytest.fixture
def queue_factory():
    return RecordingQueue


@pytest_asyncio.fixture
async def engine():
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def repository(session_factory) -> ReminderRepository:
    return ReminderRepository(session_factory)


@pytest.fixture
def mock_redis():
    """Redis client mock with a transactional pipeline and a registered claim script.

    Returns (redis, pipe, claim_script).
    """
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[True, 1])
    pipe.__aenter__ = AsyncMock(return_value=pipe)
    pipe.__aexit__ = AsyncMock(return_value=False)

    claim_script = AsyncMock(return_value=[])

    redis = MagicMock()
    redis.pipeline = MagicMock(return_value=pipe)
    redis.register_script = MagicMock(return_value=claim_script)
    redis.mget = AsyncMock(return_value=[])
    redis.zrem = AsyncMock(return_value=1)
    redis.zcard = AsyncMock(return_value=0)
    redis.ping = AsyncMock(return_value=True)
    return redis, pipe, claim_script
