"""Pydantic v2 request/response models."""

from datetime import datetime

from pydantic import BaseModel, Field


# --- Inbound message events ---

class MessageData(BaseModel):
    content: str = ""
    userId: str = ""
    type: str = ""
    timestamp: datetime | None = None


class MessageEvent(BaseModel):
    """A message-created event for sessions/{sessionId}/messages/{messageId}."""
    sessionId: str
    messageId: str
    data: MessageData | None = None


class PipelineOutcomeOut(BaseModel):
    state: str
    history: list[str] = Field(default_factory=list)
    reminder_id: str | None = None
    task_id: str | None = None
    date_iso: str | None = None
    error: str | None = None


# --- Delivery ---

class DeliveryRequest(BaseModel):
    userId: str | None = None
    reminderText: str | None = None


class DeliveryResponse(BaseModel):
    success: bool
    messageId: str


# --- Reminders ---

class ReminderOut(BaseModel):
    id: str
    user_id: str
    date_iso: str
    text: str
    created_at: datetime | None
    source_message_id: str | None
    source_session_id: str | None
    notification_task_id: str | None

    model_config = {"from_attributes": True}


class ReminderListResponse(BaseModel):
    total: int
    items: list[ReminderOut]
