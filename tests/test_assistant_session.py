"""Tests for the assistant session turn loop."""

from __future__ import annotations

import asyncio
import json

import pytest

from scopeassist.ai.assistant import AssistantSession, RequestCancelledError, RequestInFlightError
from scopeassist.ai.tools import ToolCall, ToolRegistry
from scopeassist.ai.transport import ChatResponse
from scopeassist.chat import (
    AssistantMemory,
    ContextAggregator,
    ContextItem,
    Conversation,
    ToolResultMemory,
    UserMemory,
)

from tests.helpers import ScriptedTransport


def _session(registry: ToolRegistry, responses, **kwargs) -> tuple[AssistantSession, ScriptedTransport]:
    transport = ScriptedTransport(responses)
    session = AssistantSession(Conversation("demo", "sys"), ContextAggregator(), registry, transport, **kwargs)
    return session, transport


@pytest.mark.asyncio
async def test_plain_text_reply(registry: ToolRegistry) -> None:
    session, transport = _session(registry, [ChatResponse.from_text("Hello!")])

    reply = await session.ask("hi")

    assert reply.text == "Hello!"
    assert reply.iterations == 1
    assert [turn.display for turn in session.conversation.visible_turns()] == ["hi", "Hello!"]
    (request,) = transport.requests
    assert [spec.name for spec in request.tools] == ["echo", "add", "explode", "nothing", "block"]


@pytest.mark.asyncio
async def test_context_is_sent_but_not_stored(registry: ToolRegistry) -> None:
    session, transport = _session(registry, [ChatResponse.from_text("ok")])
    session.aggregator.add(ContextItem("Note", "todo", "body"))

    await session.ask("look at my note")

    request_messages = transport.requests[0].messages
    assert request_messages[-1].content.startswith("## Current Context\n")
    assert all("## Current Context" not in getattr(memory, "content", "") for memory in session.conversation.memories())


@pytest.mark.asyncio
async def test_tool_results_are_appended_in_call_order(registry: ToolRegistry) -> None:
    calls = [
        ToolCall("echo", '{"text": "first"}', "c1"),
        ToolCall("add", '{"a": 1, "b": 2}', "c2"),
        ToolCall("teleport", "{}", "c3"),
    ]
    session, transport = _session(
        registry,
        [ChatResponse.from_tool_calls(calls), ChatResponse.from_text("All done")],
    )

    reply = await session.ask("go")

    assert reply.text == "All done"
    assert [result.call_id for result in reply.tool_results] == ["c1", "c2", "c3"]
    memories = session.conversation.memories()
    assert isinstance(memories[2], AssistantMemory) and memories[2].tool_calls == tuple(calls)
    results = [memory for memory in memories if isinstance(memory, ToolResultMemory)]
    assert [memory.call_id for memory in results] == ["c1", "c2", "c3"]
    assert results[0].content == "first"
    assert json.loads(results[1].content) == {"sum": 3}
    assert json.loads(results[2].content)["error"] == "unknown_tool"
    second_request = transport.requests[1].messages
    assert isinstance(second_request[-1], ToolResultMemory)


@pytest.mark.asyncio
async def test_tool_loop_is_bounded(registry: ToolRegistry) -> None:
    looping = [ChatResponse.from_tool_calls([ToolCall("echo", '{"text": "again"}', f"c{index}")]) for index in range(3)]
    session, transport = _session(registry, looping, max_tool_iterations=3)

    reply = await session.ask("loop forever")

    assert reply.exhausted
    assert len(transport.requests) == 3
    assert session.conversation.memories()[-1] == AssistantMemory(reply.text)


@pytest.mark.asyncio
async def test_second_request_while_busy_is_rejected(registry: ToolRegistry) -> None:
    session, transport = _session(registry, [ChatResponse.from_text("slow reply")])
    transport.gate = asyncio.Event()

    first = asyncio.ensure_future(session.ask("one"))
    await asyncio.sleep(0)
    assert session.busy

    with pytest.raises(RequestInFlightError):
        await session.ask("two")

    transport.gate.set()
    reply = await first
    assert reply.text == "slow reply"
    assert not session.busy
    user_turns = [memory for memory in session.conversation.memories() if isinstance(memory, UserMemory)]
    assert [memory.content for memory in user_turns] == ["one"]


@pytest.mark.asyncio
async def test_cancel_stops_outstanding_request(registry: ToolRegistry) -> None:
    session, transport = _session(registry, [ChatResponse.from_text("never")])
    transport.gate = asyncio.Event()

    pending = asyncio.ensure_future(session.ask("one"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert session.cancel()
    with pytest.raises(RequestCancelledError):
        await pending
    assert not session.busy
    assert not session.cancel()


@pytest.mark.asyncio
async def test_cancel_signals_running_tools(registry: ToolRegistry, echo_provider) -> None:
    session, _ = _session(
        registry,
        [ChatResponse.from_tool_calls([ToolCall("block", "{}", "c1")])],
    )

    pending = asyncio.ensure_future(session.ask("block please"))
    for _ in range(50):
        await asyncio.sleep(0.01)
        if registry.dispatcher.in_flight:
            break

    session.cancel()
    with pytest.raises(RequestCancelledError):
        await pending
    assert echo_provider.cancelled.wait(2.0)


@pytest.mark.asyncio
async def test_cancelled_tool_calls_are_answered_before_next_turn(registry: ToolRegistry) -> None:
    calls = [ToolCall("block", "{}", "c1"), ToolCall("echo", '{"text": "later"}', "c2")]
    session, transport = _session(
        registry,
        [ChatResponse.from_tool_calls(calls), ChatResponse.from_text("fresh start")],
    )

    pending = asyncio.ensure_future(session.ask("block please"))
    for _ in range(50):
        await asyncio.sleep(0.01)
        if registry.dispatcher.in_flight:
            break
    session.cancel()
    with pytest.raises(RequestCancelledError):
        await pending

    reply = await session.ask("next")

    assert reply.text == "fresh start"
    sent = transport.requests[-1].messages
    requested = {call.call_id for memory in sent if isinstance(memory, AssistantMemory) for call in memory.tool_calls}
    answered = [memory for memory in sent if isinstance(memory, ToolResultMemory)]
    assert requested == {"c1", "c2"}
    assert [memory.call_id for memory in answered] == ["c1", "c2"]
    assert all(json.loads(memory.content)["error"] == "operation_cancelled" for memory in answered)
    assert isinstance(sent[-1], UserMemory) and sent[-1].content == "next"
    assert sent.index(answered[-1]) < len(sent) - 1
