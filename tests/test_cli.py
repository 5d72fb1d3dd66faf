"""Tests for the accountability CLI.

Local commands run in-process with the LLM strategy disabled; API commands
are mocked at the api_client level so no running server is needed.
"""

import json
from unittest.mock import AsyncMock, patch

from click.testing import CliRunner

from accountability.cli.main import cli

_REMINDERS = {
    "total": 1,
    "items": [
        {
            "id": "a" * 64,
            "user_id": "u1",
            "date_iso": "2999-08-15",
            "text": "go to the gym",
            "created_at": "2999-07-01T09:00:00",
            "source_message_id": "m1",
            "source_session_id": "s1",
            "notification_task_id": "reminder-" + "a" * 64,
        }
    ],
}

_OUTCOME = {
    "state": "NOTIFICATION_SCHEDULED",
    "history": ["RECEIVED", "ANALYZED", "COMMITMENT_FOUND", "REMINDER_CREATED", "NOTIFICATION_SCHEDULED"],
    "reminder_id": "a" * 64,
    "task_id": "reminder-" + "a" * 64,
    "date_iso": "2999-08-15",
    "error": None,
}


class TestAnalyzeCommand:
    def test_finds_commitment(self) -> None:
        result = CliRunner().invoke(
            cli, ["analyze", "I will go to the gym on 2025-08-15", "--fallback-only", "--today", "2025-07-01"],
        )
        assert result.exit_code == 0, result.output
        assert "Date:       2025-08-15" in result.output
        assert "(fallback)" in result.output

    def test_no_commitment(self) -> None:
        result = CliRunner().invoke(cli, ["analyze", "Is 2025-08-15 a holiday?", "--fallback-only", "--today", "2025-07-01"])
        assert result.exit_code == 0
        assert "No commitment found." in result.output

    def test_json_envelope(self) -> None:
        result = CliRunner().invoke(
            cli, ["analyze", "I will go to the gym on 2025-08-15", "--fallback-only", "--today", "2025-07-01", "--json"],
        )
        data = json.loads(result.output)
        assert data["ok"] is True
        assert data["data"]["has_commitment"] is True
        assert data["data"]["date_iso"] == "2025-08-15"
        assert data["data"]["confidence"] == 0.95

    def test_bad_reference_date(self) -> None:
        result = CliRunner().invoke(cli, ["analyze", "x", "--today", "07/01/2025"])
        assert result.exit_code != 0


class TestApiCommands:
    def test_reminders_table(self) -> None:
        with patch("accountability.cli.reminders.api_get", return_value=_REMINDERS) as mock_get:
            result = CliRunner().invoke(cli, ["reminders", "u1"])
        assert result.exit_code == 0
        assert "2999-08-15" in result.output
        assert "go to the gym" in result.output
        mock_get.assert_called_once_with("/api/reminders/u1", "http://127.0.0.1:8000")

    def test_reminders_json(self) -> None:
        with patch("accountability.cli.reminders.api_get", return_value=_REMINDERS):
            result = CliRunner().invoke(cli, ["reminders", "u1", "--json"])
        assert json.loads(result.output) == {"ok": True, "data": _REMINDERS}

    def test_send_event(self) -> None:
        with patch("accountability.cli.reminders.api_post", return_value=_OUTCOME) as mock_post:
            result = CliRunner().invoke(
                cli, ["send-event", "u1", "I will go to the gym on 2999-08-15", "--message-id", "m1"],
            )
        assert result.exit_code == 0
        assert "State:    NOTIFICATION_SCHEDULED" in result.output
        event = mock_post.call_args.kwargs["json"]
        assert event == {
            "sessionId": "cli-session",
            "messageId": "m1",
            "data": {"content": "I will go to the gym on 2999-08-15", "userId": "u1", "type": "user"},
        }


class TestLocalCommands:
    def test_dispatch(self) -> None:
        stats = {"delivered": 2, "retried": 1, "dead": 0, "pending": 3}
        with patch("accountability.cli.worker._dispatch", new=AsyncMock(return_value=stats)):
            result = CliRunner().invoke(cli, ["dispatch", "--limit", "5"])
        assert result.exit_code == 0
        assert "Delivered: 2" in result.output
        assert "Pending:   3" in result.output

    def test_register_device(self) -> None:
        with patch("accountability.cli.worker._register", new=AsyncMock()) as mock_register:
            result = CliRunner().invoke(cli, ["register-device", "u1", "device-token"])
        assert result.exit_code == 0
        mock_register.assert_awaited_once_with("u1", "device-token")

    def test_help_lists_commands(self) -> None:
        result = CliRunner().invoke(cli, ["--help"])
        for command in ["analyze", "dispatch", "health", "register-device", "reminders", "send-event"]:
            assert command in result.output
