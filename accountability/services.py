"""Process-wide service construction. Built once at startup and passed down explicitly."""

import logging
from dataclasses import dataclass

import httpx
import redis.asyncio as aioredis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from accountability.config import Settings
from accountability.db.reminders import ReminderRepository
from accountability.db.session import create_engine, create_session_factory
from accountability.delivery.push import PushSender
from accountability.engine.commitments import CommitmentAnalyzer, build_analyzer
from accountability.engine.llm import LLMClient
from accountability.engine.pipeline import PipelineOrchestrator
from accountability.tasks.dispatcher import TaskDispatcher
from accountability.tasks.queue import RedisTaskQueue
from accountability.tasks.scheduler import NotificationScheduler

logger = logging.getLogger("accountability.services")


@dataclass
class Services:
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    redis: aioredis.Redis
    http: httpx.AsyncClient
    llm: LLMClient | None
    analyzer: CommitmentAnalyzer
    repository: ReminderRepository
    queue: RedisTaskQueue
    scheduler: NotificationScheduler
    orchestrator: PipelineOrchestrator
    dispatcher: TaskDispatcher
    push_sender: PushSender

    async def close(self) -> None:
        if self.llm is not None:
            await self.llm.aclose()
        await self.http.aclose()
        await self.redis.aclose()
        await self.engine.dispose()


def build_services(settings: Settings) -> Services:
    engine = create_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(engine)
    redis = aioredis.from_url(settings.REDIS_URL)
    http = httpx.AsyncClient(timeout=30.0)

    llm = LLMClient.from_settings(settings) if settings.ai_enabled else None
    analyzer = build_analyzer(llm, settings.ai_enabled, timeout=settings.LLM_TIMEOUT_SECONDS)
    if llm is None:
        logger.info("LLM strategy disabled — using pattern matching only")

    repository = ReminderRepository(session_factory, timeout=settings.DB_TIMEOUT_SECONDS)
    queue = RedisTaskQueue(
        redis,
        name=settings.TASK_QUEUE_NAME,
        lease_seconds=settings.TASK_LEASE_SECONDS,
        max_attempts=settings.TASK_MAX_ATTEMPTS,
    )
    scheduler = NotificationScheduler(queue, settings.DELIVERY_URL, timeout=settings.QUEUE_TIMEOUT_SECONDS)
    orchestrator = PipelineOrchestrator(
        analyzer,
        repository,
        scheduler,
        skip_scheduling=settings.SKIP_SCHEDULING,
    )
    return Services(
        engine=engine,
        session_factory=session_factory,
        redis=redis,
        http=http,
        llm=llm,
        analyzer=analyzer,
        repository=repository,
        queue=queue,
        scheduler=scheduler,
        orchestrator=orchestrator,
        dispatcher=TaskDispatcher(queue, http, settings.TASK_SIGNING_SECRET),
        push_sender=PushSender(settings.PUSH_GATEWAY_URL, settings.PUSH_GATEWAY_TOKEN, http),
    )
