"""LLM client for an OpenAI-compatible chat completions gateway, with tool calling."""

import asyncio
import json
import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

logger = logging.getLogger("accountability.engine.llm")

COMPLETIONS_PATH = "/v1/chat/completions"
RETRYABLE_STATUSES = (429, 502, 503, 529)
MIN_ATTEMPT_TIMEOUT = 1.0


class LLMResponseError(Exception):
    """The gateway answered, but not with a usable chat completion."""


def attempt_timeout(budget: float, retries: int) -> float:
    """Per-request timeout so that every attempt plus its backoff fits inside budget."""
    backoff = sum(2 ** attempt for attempt in range(retries))
    return max((budget - backoff) / (1 + retries), MIN_ATTEMPT_TIMEOUT)


@dataclass
class ToolInvocation:
    name: str
    arguments: dict
    output: dict | None = None


@dataclass
class ToolCompletion:
    text: str
    tool_invocations: list[ToolInvocation] = field(default_factory=list)


class LLMClient:
    """Async chat-completions client. Construct once per process and inject."""

    def __init__(
        self,
        gateway_url: str,
        token: str,
        model: str,
        user_id: str = "accountability-agent",
        timeout: float = 120.0,
        retries: int = 2,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.model = model
        self.user_id = user_id
        self.retries = retries
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=gateway_url.rsplit(COMPLETIONS_PATH, 1)[0],
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, transport: httpx.AsyncBaseTransport | None = None) -> "LLMClient":
        """Client whose retries all fit inside LLM_TIMEOUT_SECONDS, the analyzer's bound."""
        return cls(
            gateway_url=settings.LLM_GATEWAY_URL,
            token=settings.LLM_GATEWAY_TOKEN,
            model=settings.LLM_MODEL,
            user_id=settings.LLM_USER_ID,
            timeout=attempt_timeout(settings.LLM_TIMEOUT_SECONDS, settings.LLM_RETRIES),
            retries=settings.LLM_RETRIES,
            transport=transport,
        )

    def available(self) -> bool:
        """Check if the gateway is configured."""
        return bool(self._token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, payload: dict, timeout: float | None = None) -> dict:
        """POST one completion request, retrying transient errors with backoff."""
        request_id = uuid.uuid4().hex[:12]
        last_exc: Exception | None = None
        for attempt in range(1 + self.retries):
            t0 = time.monotonic()
            try:
                kwargs = {"json": payload}
                if timeout is not None:
                    kwargs["timeout"] = timeout
                response = await self._client.post(COMPLETIONS_PATH, **kwargs)
                latency_ms = int((time.monotonic() - t0) * 1000)
                response.raise_for_status()
                logger.debug(
                    "llm ok  req=%s model=%s status=%d latency=%dms",
                    request_id, self.model, response.status_code, latency_ms,
                )
                try:
                    return response.json()
                except ValueError as e:
                    raise LLMResponseError(f"Non-JSON body from gateway: {response.text[:200]}") from e
            except httpx.TimeoutException as e:
                latency_ms = int((time.monotonic() - t0) * 1000)
                last_exc = e
                logger.warning(
                    "llm timeout  req=%s attempt=%d/%d latency=%dms",
                    request_id, attempt + 1, 1 + self.retries, latency_ms,
                )
                if attempt < self.retries:
                    await asyncio.sleep(2 ** attempt)
            except httpx.HTTPStatusError as e:
                latency_ms = int((time.monotonic() - t0) * 1000)
                if e.response.status_code in RETRYABLE_STATUSES:
                    last_exc = e
                    logger.warning(
                        "llm %d  req=%s attempt=%d/%d latency=%dms",
                        e.response.status_code, request_id, attempt + 1, 1 + self.retries, latency_ms,
                    )
                    if attempt < self.retries:
                        await asyncio.sleep(2 ** attempt)
                else:
                    logger.error(
                        "llm error  req=%s status=%d latency=%dms",
                        request_id, e.response.status_code, latency_ms,
                    )
                    raise

        raise last_exc  # type: ignore[misc]

    def _payload(self, messages: list[dict], max_tokens: int, temperature: float) -> dict:
        return {
            "model": self.model,
            "user": self.user_id,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
            "messages": messages,
        }

    @staticmethod
    def _first_message(data: dict) -> dict:
        try:
            message = data["choices"][0]["message"]
        except (KeyError, IndexError, TypeError) as e:
            raise LLMResponseError(f"Malformed completion: {str(data)[:200]}") from e
        if not isinstance(message, dict):
            raise LLMResponseError(f"Malformed completion message: {message!r}")
        return message

    async def complete(
        self,
        system: str,
        user_message: str,
        max_tokens: int = 1000,
        temperature: float = 0.1,
    ) -> str:
        """Plain chat completion, returns the assistant text."""
        data = await self._post(self._payload(
            [
                {"role": "system", "content": system},
                {"role": "user", "content": user_message},
            ],
            max_tokens,
            temperature,
        ))
        return self._first_message(data).get("content") or ""

    async def complete_with_tools(
        self,
        system: str,
        user_message: str,
        tools: list[dict],
        handlers: dict[str, Callable[[dict], dict]],
        max_tokens: int = 300,
        temperature: float = 0.1,
        max_rounds: int = 2,
    ) -> ToolCompletion:
        """Run a tool-calling conversation until the model answers in text.

        Tool calls the model requests are executed locally through handlers
        and their JSON outputs sent back. After max_rounds tool rounds the
        last assistant text is returned as-is.
        """
        messages: list[dict] = [
            {"role": "system", "content": system},
            {"role": "user", "content": user_message},
        ]
        invocations: list[ToolInvocation] = []

        for round_no in range(max_rounds + 1):
            payload = self._payload(messages, max_tokens, temperature)
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
            message = self._first_message(await self._post(payload))

            tool_calls = message.get("tool_calls") or []
            if not tool_calls or round_no == max_rounds:
                return ToolCompletion(text=message.get("content") or "", tool_invocations=invocations)

            messages.append({
                "role": "assistant",
                "content": message.get("content"),
                "tool_calls": tool_calls,
            })
            for call in tool_calls:
                invocation = self._run_tool(call, handlers)
                invocations.append(invocation)
                messages.append({
                    "role": "tool",
                    "tool_call_id": call.get("id", ""),
                    "content": json.dumps(invocation.output),
                })

        return ToolCompletion(text="", tool_invocations=invocations)

    @staticmethod
    def _run_tool(call: dict, handlers: dict[str, Callable[[dict], dict]]) -> ToolInvocation:
        try:
            name = call["function"]["name"]
            arguments = json.loads(call["function"].get("arguments") or "{}")
        except (KeyError, TypeError, json.JSONDecodeError) as e:
            raise LLMResponseError(f"Malformed tool call: {call!r}") from e

        handler = handlers.get(name)
        if handler is None:
            logger.warning(f"Model requested unknown tool {name!r}")
            return ToolInvocation(name=name, arguments=arguments, output={"error": f"unknown tool {name}"})

        output = handler(arguments)
        logger.info(f"Tool {name} called with {arguments} -> {output}")
        return ToolInvocation(name=name, arguments=arguments, output=output)
