"""Reminder CLI commands — talk to a running API."""

import uuid

import click

from accountability.cli.api_client import api_get, api_post
from accountability.cli.formatters import format_result, format_table, json_option


@click.command("reminders")
@click.argument("user_id")
@click.option("--url", default="http://127.0.0.1:8000", help="API base URL")
@json_option
def reminders_cmd(user_id: str, url: str, as_json: bool) -> None:
    """List stored reminders for a user."""
    data = api_get(f"/api/reminders/{user_id}", url)

    if as_json:
        format_result(data, as_json=True)
        return

    rows = [
        [r["date_iso"], r["text"][:60], r["notification_task_id"] or "-", r["id"][:12]]
        for r in data["items"]
    ]
    format_table(["Date", "Commitment", "Task", "ID"], rows)


@click.command("send-event")
@click.argument("user_id")
@click.argument("content")
@click.option("--session", "session_id", default="cli-session", help="Chat session id")
@click.option("--message-id", default=None, help="Message id (random if omitted)")
@click.option("--role", type=click.Choice(["user", "agent"]), default="user")
@click.option("--url", default="http://127.0.0.1:8000", help="API base URL")
@json_option
def send_event_cmd(
    user_id: str,
    content: str,
    session_id: str,
    message_id: str | None,
    role: str,
    url: str,
    as_json: bool,
) -> None:
    """Post a message-created event, as the chat backend would."""
    event = {
        "sessionId": session_id,
        "messageId": message_id or uuid.uuid4().hex,
        "data": {"content": content, "userId": user_id, "type": role},
    }
    data = api_post("/api/events/messages", url, json=event)

    if as_json:
        format_result(data, as_json=True)
        return

    click.echo(f"State:    {data['state']}")
    if data.get("reminder_id"):
        click.echo(f"Reminder: {data['reminder_id']}")
    if data.get("task_id"):
        click.echo(f"Task:     {data['task_id']}")
    if data.get("error"):
        click.echo(f"Error:    {data['error']}")
