"""Local CLI commands — run pipeline pieces in-process, without the API."""

import asyncio
from datetime import date, datetime

import click
import httpx
import redis.asyncio as aioredis

from accountability.cli.formatters import format_result, json_option
from accountability.config import settings
from accountability.db.devices import register_device
from accountability.db.session import create_engine, create_session_factory
from accountability.engine.commitments import build_analyzer
from accountability.engine.llm import LLMClient
from accountability.tasks.dispatcher import TaskDispatcher
from accountability.tasks.queue import RedisTaskQueue


async def _analyze(text: str, reference_date: date | None, fallback_only: bool) -> dict:
    use_ai = settings.ai_enabled and not fallback_only
    llm = LLMClient.from_settings(settings) if use_ai else None
    try:
        analysis = await build_analyzer(llm, use_ai, timeout=settings.LLM_TIMEOUT_SECONDS).analyze(text, reference_date)
    finally:
        if llm is not None:
            await llm.aclose()

    result = {"has_commitment": analysis.has_commitment, "strategy": analysis.strategy}
    if analysis.commitment:
        result.update({
            "date_iso": analysis.commitment.date_iso,
            "text": analysis.commitment.text,
            "confidence": analysis.commitment.confidence,
        })
    return result


@click.command("analyze")
@click.argument("text")
@click.option("--today", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Reference date (YYYY-MM-DD); defaults to today in UTC.")
@click.option("--fallback-only", is_flag=True, help="Skip the LLM strategy.")
@json_option
def analyze_cmd(text: str, today: datetime | None, fallback_only: bool, as_json: bool) -> None:
    """Check a message for a future-dated commitment."""
    result = asyncio.run(_analyze(text, today.date() if today else None, fallback_only))

    if as_json:
        format_result(result, as_json=True)
        return

    if not result["has_commitment"]:
        click.echo("No commitment found.")
        return
    click.echo(f"Date:       {result['date_iso']}")
    click.echo(f"Commitment: {result['text']}")
    click.echo(f"Confidence: {result['confidence']:.2f} ({result['strategy']})")


async def _dispatch(limit: int) -> dict:
    redis = aioredis.from_url(settings.REDIS_URL)
    queue = RedisTaskQueue(
        redis,
        name=settings.TASK_QUEUE_NAME,
        lease_seconds=settings.TASK_LEASE_SECONDS,
        max_attempts=settings.TASK_MAX_ATTEMPTS,
    )
    try:
        async with httpx.AsyncClient(timeout=30.0) as http:
            dispatcher = TaskDispatcher(queue, http, settings.TASK_SIGNING_SECRET, batch_size=limit)
            stats = await dispatcher.run_once()
        stats["pending"] = await queue.pending_count()
        return stats
    finally:
        await redis.aclose()


@click.command("dispatch")
@click.option("--limit", default=20, show_default=True, help="Maximum tasks to deliver.")
@json_option
def dispatch_cmd(limit: int, as_json: bool) -> None:
    """Deliver due reminder tasks once."""
    stats = asyncio.run(_dispatch(limit))

    if as_json:
        format_result(stats, as_json=True)
        return

    click.echo(f"Delivered: {stats['delivered']}")
    click.echo(f"Retried:   {stats['retried']}")
    click.echo(f"Dead:      {stats['dead']}")
    click.echo(f"Pending:   {stats['pending']}")


async def _register(user_id: str, push_token: str) -> None:
    engine = create_engine(settings.DATABASE_URL)
    try:
        await register_device(create_session_factory(engine), user_id, push_token)
    finally:
        await engine.dispose()


@click.command("register-device")
@click.argument("user_id")
@click.argument("push_token")
def register_device_cmd(user_id: str, push_token: str) -> None:
    """Store the push token notifications for a user are sent to."""
    asyncio.run(_register(user_id, push_token))
    click.echo(f"Registered device for {user_id}")
