"""Reminder endpoints — delivery callback for the task queue, and per-user listing."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accountability.api.dependencies import (
    get_push_sender,
    get_repository,
    get_session_factory,
    verify_api_key,
    verify_task_token,
)
from accountability.api.schemas import DeliveryRequest, DeliveryResponse, ReminderListResponse, ReminderOut
from accountability.db.devices import get_push_token
from accountability.db.reminders import ReminderRepository
from accountability.delivery.push import PushError, PushSender

logger = logging.getLogger("accountability.api.reminders")

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


@router.post("/deliver", response_model=DeliveryResponse)
async def deliver_reminder(
    body: DeliveryRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    push_sender: PushSender = Depends(get_push_sender),
    task_id: str = Depends(verify_task_token),
) -> dict:
    """Send the push notification for a fired reminder task."""
    if not body.userId or not body.reminderText:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")

    push_token = await get_push_token(session_factory, body.userId)
    if not push_token:
        logger.warning(f"No push token found for user {body.userId}")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User or push token not found")

    try:
        message_id = await push_sender.send_reminder(push_token, body.userId, body.reminderText)
    except PushError as e:
        logger.error(f"Error sending notification for task {task_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send notification",
        )

    return {"success": True, "messageId": message_id}


@router.get("/{user_id}", response_model=ReminderListResponse)
async def list_reminders(
    user_id: str,
    repository: ReminderRepository = Depends(get_repository),
    _auth: None = Depends(verify_api_key),
) -> dict:
    reminders = await repository.list_for_user(user_id)
    return {
        "total": len(reminders),
        "items": [ReminderOut.model_validate(r) for r in reminders],
    }
