"""Push delivery through an HTTP push gateway."""

import logging

import httpx

logger = logging.getLogger("accountability.delivery.push")

NOTIFICATION_TITLE = "Therapy Commitment Reminder"


class PushError(Exception):
    """The push gateway rejected or never received the message."""


class PushSender:
    def __init__(self, gateway_url: str, token: str, http: httpx.AsyncClient):
        self.gateway_url = gateway_url
        self._token = token
        self.http = http

    async def send_reminder(self, push_token: str, user_id: str, reminder_text: str) -> str:
        """Send a commitment reminder to one device. Returns the gateway's message id."""
        message = {
            "token": push_token,
            "notification": {
                "title": NOTIFICATION_TITLE,
                "body": reminder_text,
            },
            "data": {
                "type": "commitment_reminder",
                "userId": user_id,
            },
        }
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
        try:
            response = await self.http.post(self.gateway_url, json={"message": message}, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise PushError(f"Push to user {user_id} failed: {e!r}") from e

        try:
            message_id = str(response.json().get("name", ""))
        except ValueError:
            message_id = ""
        logger.info(f"Sent reminder notification to user {user_id}: {message_id or 'no id'}")
        return message_id
