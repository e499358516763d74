"""JSON persistence format for conversations.

Layout::

    {
      "name": "...",
      "systemMessage": "...",
      "messages": [
        {"displayMessage": "..." | null,
         "memoryMessage": {"type": "SYSTEM" | "USER" | "AI" | "TOOL_EXECUTION_RESULT",
                           "content": "..."}}
      ]
    }

Assistant memories may carry ``toolCalls`` and tool results ``callId`` /
``toolName``; readers that do not know these keys can ignore them. Files
written with the older ``TOOL_RESULT`` spelling load as tool results.
"""

from __future__ import annotations

import json
from typing import Any, Mapping, assert_never

from ..ai.tools.types import ToolCall
from .conversation import (
    AssistantMemory,
    Conversation,
    Memory,
    SystemMemory,
    ToolResultMemory,
    Turn,
    UserMemory,
)

__all__ = [
    "ConversationFormatError",
    "conversation_from_dict",
    "conversation_to_dict",
    "dumps",
    "loads",
    "memory_from_dict",
    "memory_to_dict",
]

SYSTEM = "SYSTEM"
USER = "USER"
AI = "AI"
TOOL_EXECUTION_RESULT = "TOOL_EXECUTION_RESULT"
_LEGACY_TOOL_RESULT = "TOOL_RESULT"


class ConversationFormatError(ValueError):
    """Raised when a stored conversation does not match the expected layout."""


def memory_to_dict(memory: Memory) -> dict[str, Any]:
    if isinstance(memory, SystemMemory):
        return {"type": SYSTEM, "content": memory.content}
    if isinstance(memory, UserMemory):
        return {"type": USER, "content": memory.content}
    if isinstance(memory, AssistantMemory):
        data: dict[str, Any] = {"type": AI, "content": memory.content}
        if memory.tool_calls:
            data["toolCalls"] = [
                {"id": call.call_id, "name": call.name, "arguments": call.arguments}
                for call in memory.tool_calls
            ]
        return data
    if isinstance(memory, ToolResultMemory):
        data = {"type": TOOL_EXECUTION_RESULT, "content": memory.content}
        if memory.call_id:
            data["callId"] = memory.call_id
        if memory.tool_name:
            data["toolName"] = memory.tool_name
        return data
    assert_never(memory)


def memory_from_dict(data: Any) -> Memory:
    """Decode a ``memoryMessage`` object.

    Raises:
        ConversationFormatError: The object is malformed or its type is unknown.
    """

    if not isinstance(data, Mapping):
        raise ConversationFormatError("memoryMessage must be an object")
    kind = data.get("type")
    content = data.get("content")
    if content is None:
        content = ""
    if not isinstance(content, str):
        raise ConversationFormatError(f"memoryMessage content must be a string, got {type(content).__name__}")

    if kind == SYSTEM:
        return SystemMemory(content)
    if kind == USER:
        return UserMemory(content)
    if kind == AI:
        raw_calls = data.get("toolCalls") or []
        if not isinstance(raw_calls, list):
            raise ConversationFormatError(f"toolCalls must be a list, got {type(raw_calls).__name__}")
        return AssistantMemory(content, tuple(_tool_call_from_dict(entry) for entry in raw_calls))
    if kind in (TOOL_EXECUTION_RESULT, _LEGACY_TOOL_RESULT):
        return ToolResultMemory(
            content,
            call_id=str(data.get("callId") or ""),
            tool_name=str(data.get("toolName") or ""),
        )
    raise ConversationFormatError(f"Unknown message type: {kind!r}")


def _tool_call_from_dict(entry: Any) -> ToolCall:
    if not isinstance(entry, Mapping) or not entry.get("name"):
        raise ConversationFormatError("toolCalls entries need a name")
    return ToolCall(
        name=str(entry["name"]),
        arguments=entry.get("arguments", "{}"),
        call_id=str(entry.get("id") or ""),
    )


def conversation_to_dict(conversation: Conversation) -> dict[str, Any]:
    return {
        "name": conversation.name,
        "systemMessage": conversation.system_prompt,
        "messages": [
            {"displayMessage": turn.display, "memoryMessage": memory_to_dict(turn.memory)}
            for turn in conversation.turns()
        ],
    }


def conversation_from_dict(data: Any) -> Conversation:
    """Rebuild a :class:`Conversation` from its stored form.

    A leading ``SYSTEM`` message becomes the system turn; files without one
    use ``systemMessage``. A ``SYSTEM`` message anywhere else is rejected.

    Raises:
        ConversationFormatError: The payload is malformed.
    """

    if not isinstance(data, Mapping):
        raise ConversationFormatError("Conversation payload must be an object")
    name = data.get("name")
    if not isinstance(name, str) or not name:
        raise ConversationFormatError("Conversation name is missing")
    messages = data.get("messages") or []
    if not isinstance(messages, list):
        raise ConversationFormatError("messages must be a list")

    system_message = data.get("systemMessage") or ""
    turns: list[Turn] = []
    for index, entry in enumerate(messages):
        if not isinstance(entry, Mapping):
            raise ConversationFormatError(f"Message {index} must be an object")
        memory = memory_from_dict(entry.get("memoryMessage"))
        display = entry.get("displayMessage")
        if display is not None and not isinstance(display, str):
            raise ConversationFormatError(f"Message {index} displayMessage must be a string")
        if isinstance(memory, SystemMemory):
            if index != 0:
                raise ConversationFormatError(f"Unexpected system message at position {index}")
            system_message = memory.content
            continue
        turns.append(Turn(display, memory))
    return Conversation(name, str(system_message), turns)


def dumps(conversation: Conversation, *, indent: int | None = 2) -> str:
    return json.dumps(conversation_to_dict(conversation), indent=indent, ensure_ascii=False)


def loads(text: str) -> Conversation:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConversationFormatError(f"Invalid conversation JSON: {exc.msg}") from exc
    return conversation_from_dict(data)
