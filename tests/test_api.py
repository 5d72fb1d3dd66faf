"""API tests — events, delivery and listing endpoints over ASGI transport.

The lifespan does not run under ASGITransport; each test wires app.state
with an SQLite repository, a RecordingQueue and a mocked push sender.
Commitment dates are far in the future because the endpoint analyzes
against today's date.
"""

import json
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from accountability.api.auth import create_task_token
from accountability.config import settings
from accountability.db.devices import register_device
from accountability.delivery.push import PushError
from accountability.engine.commitments import CommitmentAnalyzer
from accountability.engine.pipeline import PipelineOrchestrator
from accountability.main import app
from accountability.tasks.scheduler import NotificationScheduler

pytestmark = pytest.mark.asyncio

DELIVERY_URL = "http://test/api/reminders/deliver"


@pytest.fixture
def queue(queue_factory):
    return queue_factory()


@pytest.fixture
def push_sender():
    sender = MagicMock()
    sender.send_reminder = AsyncMock(return_value="projects/test/messages/1")
    return sender


@pytest_asyncio.fixture
async def client(engine, session_factory, repository, queue, push_sender, mock_redis):
    app.state.engine = engine
    app.state.redis = mock_redis[0]
    app.state.session_factory = session_factory
    app.state.repository = repository
    app.state.orchestrator = PipelineOrchestrator(
        CommitmentAnalyzer(), repository, NotificationScheduler(queue, DELIVERY_URL),
    )
    app.state.push_sender = push_sender

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


def _event(content: str, message_id: str = "m1", role: str = "user", user_id: str = "u1") -> dict:
    return {
        "sessionId": "s1",
        "messageId": message_id,
        "data": {"content": content, "userId": user_id, "type": role},
    }


def _task_headers(task_id: str = "reminder-abc") -> dict:
    return {"X-Task-Token": create_task_token(settings.TASK_SIGNING_SECRET, task_id)}


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

class TestHealthEndpoint:
    async def test_all_services_up(self, client: AsyncClient):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "db": True, "redis": True}

    async def test_redis_down_is_degraded(self, client: AsyncClient, mock_redis):
        mock_redis[0].ping.side_effect = ConnectionError("redis down")
        data = (await client.get("/api/health")).json()
        assert data["status"] == "degraded"
        assert data["redis"] is False
        assert data["db"] is True


# ---------------------------------------------------------------------------
# Message events
# ---------------------------------------------------------------------------

class TestMessageEvents:
    async def test_commitment_schedules_notification(self, client: AsyncClient, queue):
        response = await client.post("/api/events/messages", json=_event("I will go to the gym on 2999-08-15"))
        assert response.status_code == 200
        data = response.json()
        assert data["state"] == "NOTIFICATION_SCHEDULED"
        assert data["date_iso"] == "2999-08-15"
        assert data["task_id"].startswith("reminder-")
        assert len(queue.tasks) == 1

    async def test_duplicate_event_answers_200(self, client: AsyncClient, queue):
        await client.post("/api/events/messages", json=_event("I will go to the gym on 2999-08-15", "m1"))
        response = await client.post("/api/events/messages", json=_event("I will go to the gym on 2999-08-15", "m2"))
        assert response.status_code == 200
        assert response.json()["state"] == "REMINDER_EXISTING"
        assert len(queue.tasks) == 1

    async def test_agent_message_is_filtered(self, client: AsyncClient, queue):
        response = await client.post(
            "/api/events/messages", json=_event("I will go to the gym on 2999-08-15", role="agent"),
        )
        assert response.status_code == 200
        assert response.json()["state"] == "FILTERED_OUT"
        assert queue.tasks == []

    async def test_event_without_data_is_filtered(self, client: AsyncClient):
        response = await client.post("/api/events/messages", json={"sessionId": "s1", "messageId": "m1"})
        assert response.status_code == 200
        assert response.json()["state"] == "FILTERED_OUT"

    async def test_no_commitment(self, client: AsyncClient):
        response = await client.post("/api/events/messages", json=_event("I had a good day today"))
        assert response.json()["state"] == "NO_COMMITMENT"

    async def test_processing_error_answers_500(self, client: AsyncClient):
        failing = MagicMock()
        failing.process = AsyncMock(side_effect=RuntimeError("db down"))
        app.state.orchestrator = failing

        response = await client.post("/api/events/messages", json=_event("I will go on 2999-08-15"))
        assert response.status_code == 500

    async def test_missing_session_id_is_rejected(self, client: AsyncClient):
        response = await client.post("/api/events/messages", json={"messageId": "m1", "data": {}})
        assert response.status_code == 422

    async def test_api_key_enforced_when_configured(self, client: AsyncClient):
        with patch("accountability.api.dependencies.settings") as mock_settings:
            mock_settings.EVENT_API_KEY = "secret"
            denied = await client.post("/api/events/messages", json=_event("hello"))
            allowed = await client.post(
                "/api/events/messages", json=_event("hello"), headers={"X-API-Key": "secret"},
            )
        assert denied.status_code == 401
        assert allowed.status_code == 200


# ---------------------------------------------------------------------------
# Delivery callback
# ---------------------------------------------------------------------------

class TestDelivery:
    async def test_missing_task_token(self, client: AsyncClient):
        response = await client.post("/api/reminders/deliver", json={"userId": "u1", "reminderText": "gym"})
        assert response.status_code == 401

    async def test_invalid_task_token(self, client: AsyncClient):
        response = await client.post(
            "/api/reminders/deliver",
            json={"userId": "u1", "reminderText": "gym"},
            headers={"X-Task-Token": "not.a.jwt"},
        )
        assert response.status_code == 401

    async def test_expired_task_token(self, client: AsyncClient):
        token = create_task_token(settings.TASK_SIGNING_SECRET, "t", expires_delta=timedelta(seconds=-10))
        response = await client.post(
            "/api/reminders/deliver",
            json={"userId": "u1", "reminderText": "gym"},
            headers={"X-Task-Token": token},
        )
        assert response.status_code == 401

    async def test_token_signed_with_other_secret(self, client: AsyncClient):
        response = await client.post(
            "/api/reminders/deliver",
            json={"userId": "u1", "reminderText": "gym"},
            headers={"X-Task-Token": create_task_token("some-other-secret", "t")},
        )
        assert response.status_code == 401

    async def test_token_for_other_audience(self, client: AsyncClient):
        token = jwt.encode({"sub": "t", "aud": "someone-else"}, settings.TASK_SIGNING_SECRET, algorithm="HS256")
        response = await client.post(
            "/api/reminders/deliver",
            json={"userId": "u1", "reminderText": "gym"},
            headers={"X-Task-Token": token},
        )
        assert response.status_code == 401

    async def test_unexpected_token_error_is_not_reported_as_401(self, client: AsyncClient):
        with patch("accountability.api.dependencies.decode_task_token", side_effect=RuntimeError("boom")):
            with pytest.raises(RuntimeError):
                await client.post(
                    "/api/reminders/deliver",
                    json={"userId": "u1", "reminderText": "gym"},
                    headers=_task_headers(),
                )

    async def test_missing_fields(self, client: AsyncClient):
        response = await client.post("/api/reminders/deliver", json={"userId": "u1"}, headers=_task_headers())
        assert response.status_code == 400

    async def test_no_push_token(self, client: AsyncClient, push_sender):
        response = await client.post(
            "/api/reminders/deliver", json={"userId": "u1", "reminderText": "gym"}, headers=_task_headers(),
        )
        assert response.status_code == 404
        push_sender.send_reminder.assert_not_called()

    async def test_sends_push(self, client: AsyncClient, session_factory, push_sender):
        await register_device(session_factory, "u1", "device-token")
        response = await client.post(
            "/api/reminders/deliver",
            content=json.dumps({"userId": "u1", "reminderText": "go to the gym"}),
            headers={**_task_headers(), "Content-Type": "application/json"},
        )
        assert response.status_code == 200
        assert response.json() == {"success": True, "messageId": "projects/test/messages/1"}
        push_sender.send_reminder.assert_awaited_once_with("device-token", "u1", "go to the gym")

    async def test_push_failure_answers_500(self, client: AsyncClient, session_factory, push_sender):
        await register_device(session_factory, "u1", "device-token")
        push_sender.send_reminder.side_effect = PushError("gateway down")
        response = await client.post(
            "/api/reminders/deliver", json={"userId": "u1", "reminderText": "gym"}, headers=_task_headers(),
        )
        assert response.status_code == 500


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

class TestListReminders:
    async def test_lists_created_reminders(self, client: AsyncClient):
        await client.post("/api/events/messages", json=_event("I will go to the gym on 2999-08-15"))
        response = await client.get("/api/reminders/u1")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        item = data["items"][0]
        assert item["date_iso"] == "2999-08-15"
        assert item["source_message_id"] == "m1"
        assert item["notification_task_id"].startswith("reminder-")

    async def test_unknown_user(self, client: AsyncClient):
        assert (await client.get("/api/reminders/nobody")).json() == {"total": 0, "items": []}
