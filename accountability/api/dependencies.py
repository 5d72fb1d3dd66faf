"""FastAPI dependencies for shared services and caller authentication."""

import hmac

import jwt
from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accountability.api.auth import decode_task_token
from accountability.config import settings
from accountability.db.reminders import ReminderRepository
from accountability.delivery.push import PushSender
from accountability.engine.pipeline import PipelineOrchestrator


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


def get_repository(request: Request) -> ReminderRepository:
    return request.app.state.repository


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    return request.app.state.session_factory


def get_push_sender(request: Request) -> PushSender:
    return request.app.state.push_sender


async def verify_api_key(x_api_key: str | None = Header(default=None)) -> None:
    """Check the shared X-API-Key secret. An empty EVENT_API_KEY disables the check."""
    expected = settings.EVENT_API_KEY
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


async def verify_task_token(x_task_token: str | None = Header(default=None)) -> str:
    """Authenticate a call from the task dispatcher. Returns the task id."""
    if not x_task_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing task token",
        )
    try:
        payload = decode_task_token(settings.TASK_SIGNING_SECRET, x_task_token)
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired task token",
        )
    return payload.get("sub", "")
