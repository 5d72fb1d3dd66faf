"""Per-user delivery addresses (push tokens)."""

from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accountability.db.models import UserDevice


async def get_push_token(session_factory: async_sessionmaker[AsyncSession], user_id: str) -> str | None:
    async with session_factory() as session:
        device = await session.get(UserDevice, user_id)
        if not device or not device.push_token:
            return None
        return device.push_token


async def register_device(session_factory: async_sessionmaker[AsyncSession], user_id: str, push_token: str) -> None:
    """Create or replace the push token for a user."""
    async with session_factory() as session:
        device = await session.get(UserDevice, user_id)
        if device:
            device.push_token = push_token
            device.updated_at = datetime.now(timezone.utc)
        else:
            session.add(UserDevice(user_id=user_id, push_token=push_token))
        await session.commit()
