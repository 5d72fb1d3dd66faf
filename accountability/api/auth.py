"""Signed task tokens — the dispatcher proves to the delivery endpoint that a call came from the queue."""

from datetime import datetime, timedelta, timezone

import jwt

ALGORITHM = "HS256"
TASK_TOKEN_EXPIRE_MINUTES = 5
TASK_TOKEN_AUDIENCE = "reminder-delivery"


def create_task_token(secret: str, task_id: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=TASK_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": task_id, "aud": TASK_TOKEN_AUDIENCE, "exp": expire}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def decode_task_token(secret: str, token: str) -> dict:
    return jwt.decode(token, secret, algorithms=[ALGORITHM], audience=TASK_TOKEN_AUDIENCE)
