"""Tests for conversations, the prompt builder and serialization."""

from __future__ import annotations

import json

import pytest

from scopeassist.ai.tools import ToolCall, ToolRegistry
from scopeassist.chat import (
    AssistantMemory,
    ContextItem,
    Conversation,
    ConversationBuilder,
    ConversationClosedError,
    ConversationFormatError,
    SystemMemory,
    ToolResultMemory,
    Turn,
    UserMemory,
)
from scopeassist.chat.serialization import conversation_from_dict, conversation_to_dict, dumps, loads


def test_system_turn_is_always_first_and_hidden() -> None:
    conversation = Conversation("demo", "be helpful")

    (turn,) = conversation.turns()
    assert turn.display is None
    assert turn.memory == SystemMemory("be helpful")
    assert conversation.system_prompt == "be helpful"


def test_system_turn_cannot_be_passed_in_history() -> None:
    with pytest.raises(ValueError):
        Conversation("demo", "sys", [Turn(None, SystemMemory("again"))])


def test_appends_keep_order_and_visibility() -> None:
    conversation = Conversation("demo", "sys")

    conversation.append_user("hello")
    conversation.append_user("hidden", display=None)
    conversation.append_assistant("", display=None, tool_calls=[ToolCall("echo", '{"text": "x"}', "c1")])
    conversation.append_tool_result("c1", "x", tool_name="echo")
    conversation.append_assistant("done")

    memories = conversation.memories()
    assert [type(memory) for memory in memories] == [
        SystemMemory,
        UserMemory,
        UserMemory,
        AssistantMemory,
        ToolResultMemory,
        AssistantMemory,
    ]
    assert [turn.display for turn in conversation.visible_turns()] == ["hello", "done"]
    assert memories[4].call_id == "c1"


def test_snapshot_appends_context_block_without_touching_history() -> None:
    conversation = Conversation("demo", "sys")
    conversation.append_user("what is in my script?")
    item = ContextItem("Note", "todo", "body")

    snapshot = conversation.snapshot_for_request([item])

    assert len(snapshot) == 3
    assert snapshot[-1] == UserMemory("## Current Context\n" + item.render())
    assert len(conversation) == 2


def test_snapshot_without_context_is_the_history() -> None:
    conversation = Conversation("demo", "sys")
    conversation.append_user("hi")

    assert conversation.snapshot_for_request() == conversation.memories()


def test_closed_conversation_rejects_appends() -> None:
    conversation = Conversation("demo", "sys")
    conversation.close()

    with pytest.raises(ConversationClosedError):
        conversation.append_user("late")


def test_builder_lists_provider_usage(echo_provider) -> None:
    registry = ToolRegistry()
    registry.register(echo_provider)

    prompt = ConversationBuilder("Base prompt.").with_catalog(registry.catalog()).build_system_prompt()

    assert prompt.startswith("Base prompt.")
    assert "## Available Tools" in prompt
    assert "- **Echo Tools**: Echo text back and do arithmetic." in prompt
    registry.shutdown()


def test_builder_without_tools_omits_tool_sections() -> None:
    conversation = ConversationBuilder("Base.").build("empty")

    assert "## Available Tools" not in conversation.system_prompt
    assert "## Context Items" in conversation.system_prompt


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def _sample() -> Conversation:
    conversation = Conversation("Blob count", "sys prompt")
    conversation.append_user("count blobs")
    conversation.append_assistant("", display=None, tool_calls=[ToolCall("searchCommands", '{"commandName": "blobs"}', "c1")])
    conversation.append_tool_result("c1", "[]", tool_name="searchCommands")
    conversation.append_assistant("None found.")
    return conversation


def test_serialized_layout() -> None:
    data = conversation_to_dict(_sample())

    assert data["name"] == "Blob count"
    assert data["systemMessage"] == "sys prompt"
    types = [message["memoryMessage"]["type"] for message in data["messages"]]
    assert types == ["SYSTEM", "USER", "AI", "TOOL_EXECUTION_RESULT", "AI"]
    assert data["messages"][0]["displayMessage"] is None
    assert data["messages"][3]["memoryMessage"]["callId"] == "c1"


def test_loads_restores_turns() -> None:
    original = _sample()

    restored = loads(dumps(original))

    assert restored.name == original.name
    assert restored.turns() == original.turns()


def test_legacy_tool_result_type_is_accepted() -> None:
    payload = {
        "name": "old",
        "systemMessage": "sys",
        "messages": [
            {"displayMessage": "hi", "memoryMessage": {"type": "USER", "content": "hi"}},
            {"displayMessage": None, "memoryMessage": {"type": "TOOL_RESULT", "content": "ok"}},
        ],
    }

    conversation = conversation_from_dict(payload)

    assert conversation.system_prompt == "sys"
    assert isinstance(conversation.memories()[-1], ToolResultMemory)


@pytest.mark.parametrize(
    "payload",
    [
        {"name": "x", "messages": [{"displayMessage": None, "memoryMessage": {"type": "BOGUS", "content": ""}}]},
        {"name": "x", "messages": [
            {"displayMessage": "a", "memoryMessage": {"type": "USER", "content": "a"}},
            {"displayMessage": None, "memoryMessage": {"type": "SYSTEM", "content": "late"}},
        ]},
        {"messages": []},
        ["not", "an", "object"],
    ],
)
def test_malformed_payloads_raise(payload) -> None:
    with pytest.raises(ConversationFormatError):
        conversation_from_dict(payload)


def test_loads_rejects_invalid_json() -> None:
    with pytest.raises(ConversationFormatError):
        loads("{not json")


def test_dumps_is_pretty_printed() -> None:
    text = dumps(Conversation("x", "sys"))

    assert "\n  " in text
    assert json.loads(text)["messages"][0]["memoryMessage"] == {"type": "SYSTEM", "content": "sys"}


@pytest.mark.parametrize("tool_calls", [1, "c1", {"name": "echo"}])
def test_non_list_tool_calls_are_rejected(tool_calls) -> None:
    payload = {
        "name": "demo",
        "messages": [
            {"displayMessage": None, "memoryMessage": {"type": "AI", "content": "", "toolCalls": tool_calls}},
        ],
    }

    with pytest.raises(ConversationFormatError, match="toolCalls must be a list"):
        loads(json.dumps(payload))
