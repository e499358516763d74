"""Chat transport: the seam between the assistant session and a model API.

:class:`ChatTransport` is the protocol the session depends on.
:class:`OpenAITransport` implements it against OpenAI-compatible endpoints
with exponential retries on transient failures.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Protocol, Sequence

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from ..chat.conversation import AssistantMemory, Memory, SystemMemory, ToolResultMemory, UserMemory
from .tools.types import ToolCall, ToolSpec

__all__ = [
    "ChatRequest",
    "ChatResponse",
    "ChatTransport",
    "OpenAITransport",
    "ResponseKind",
    "TransportSettings",
    "memory_to_message",
]

LOGGER = logging.getLogger(__name__)

_RETRYABLE_STATUS = frozenset({408, 409, 429, 500, 502, 503, 504})


class ResponseKind(str, Enum):
    TEXT = "text"
    TOOL_CALLS = "tool_calls"


@dataclass(slots=True, frozen=True)
class ChatRequest:
    """Snapshot of memories plus the tool catalog offered to the model."""

    messages: tuple[Memory, ...]
    tools: tuple[ToolSpec, ...] = ()
    temperature: float | None = None


@dataclass(slots=True, frozen=True)
class ChatResponse:
    """Model reply, tagged as plain text or as a batch of tool calls."""

    kind: ResponseKind
    text: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    finish_reason: str | None = None

    @classmethod
    def from_text(cls, text: str) -> ChatResponse:
        return cls(ResponseKind.TEXT, text=text)

    @classmethod
    def from_tool_calls(cls, calls: Sequence[ToolCall], text: str = "") -> ChatResponse:
        return cls(ResponseKind.TOOL_CALLS, text=text, tool_calls=tuple(calls))


class ChatTransport(Protocol):
    async def send(self, request: ChatRequest) -> ChatResponse:
        """Send ``request`` and return the model's reply."""
        ...


@dataclass(slots=True)
class TransportSettings:
    """Subset of settings required to configure the OpenAI transport."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float | None = 0.2
    default_headers: Mapping[str, str] = field(default_factory=dict)
    debug_logging: bool = False


# -----------------------------------------------------------------------------
# Message conversion
# -----------------------------------------------------------------------------


def memory_to_message(memory: Memory) -> Dict[str, Any]:
    """Convert one memory into an OpenAI chat message."""

    if isinstance(memory, SystemMemory):
        return {"role": "system", "content": memory.content}
    if isinstance(memory, UserMemory):
        return {"role": "user", "content": memory.content}
    if isinstance(memory, AssistantMemory):
        message: Dict[str, Any] = {"role": "assistant", "content": memory.content or None}
        if memory.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": _arguments_text(call.arguments)},
                }
                for call in memory.tool_calls
            ]
        return message
    if isinstance(memory, ToolResultMemory):
        return {"role": "tool", "tool_call_id": memory.call_id, "content": memory.content}
    raise TypeError(f"Unsupported memory type: {type(memory).__name__}")


def _arguments_text(arguments: Any) -> str:
    if arguments is None:
        return "{}"
    if isinstance(arguments, str):
        return arguments or "{}"
    return json.dumps(arguments, ensure_ascii=False)


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (APIConnectionError, APITimeoutError, RateLimitError, httpx.TimeoutException)):
        return True
    if isinstance(exc, APIStatusError):
        return exc.status_code in _RETRYABLE_STATUS
    return False


# -----------------------------------------------------------------------------
# OpenAI transport
# -----------------------------------------------------------------------------


class OpenAITransport:
    """Chat transport backed by ``AsyncOpenAI`` chat completions."""

    def __init__(self, settings: TransportSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> TransportSettings:
        return self._settings

    async def send(self, request: ChatRequest) -> ChatResponse:
        payload = self._build_payload(request)
        LOGGER.debug(
            "Sending chat completion via %s with %d message(s) and %d tool(s)",
            self._settings.model,
            len(payload["messages"]),
            len(payload.get("tools", ())),
        )
        if self._settings.debug_logging:
            self._log_payload(payload)

        completion: Any = None
        async for attempt in self._retrying():
            with attempt:
                completion = await self._client.chat.completions.create(**payload)
        return self._parse_completion(completion)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""
        await self._client.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_client(self, settings: TransportSettings) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) or None,
            max_retries=0,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(_is_transient),
        )

    def _build_payload(self, request: ChatRequest) -> Dict[str, Any]:
        messages: List[Dict[str, Any]] = [memory_to_message(memory) for memory in request.messages]
        if not messages:
            raise ValueError("At least one message is required to start a chat")
        payload: Dict[str, Any] = {"model": self._settings.model, "messages": messages}
        if request.tools:
            payload["tools"] = [spec.to_openai_tool() for spec in request.tools]
        temperature = request.temperature if request.temperature is not None else self._settings.temperature
        if temperature is not None:
            payload["temperature"] = temperature
        return payload

    def _parse_completion(self, completion: Any) -> ChatResponse:
        choices = getattr(completion, "choices", None) or []
        if not choices:
            LOGGER.warning("Chat completion returned no choices")
            return ChatResponse.from_text("")
        choice = choices[0]
        message = choice.message
        text = message.content or ""
        finish_reason = getattr(choice, "finish_reason", None)

        raw_calls = getattr(message, "tool_calls", None) or []
        calls = [
            ToolCall(
                name=call.function.name,
                arguments=call.function.arguments or "{}",
                call_id=call.id or "",
            )
            for call in raw_calls
            if getattr(call, "function", None) is not None
        ]
        if calls:
            LOGGER.debug("Model requested %d tool call(s)", len(calls))
            return ChatResponse(ResponseKind.TOOL_CALLS, text=text, tool_calls=tuple(calls), finish_reason=finish_reason)
        return ChatResponse(ResponseKind.TEXT, text=text, finish_reason=finish_reason)

    def _log_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Chat payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Chat payload:\n%s", serialized)
