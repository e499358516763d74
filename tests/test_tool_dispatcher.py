"""Tests for ToolDispatcher and DispatchResult."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import pytest

from scopeassist.ai.tools import (
    DispatchResult,
    ErrorCode,
    InvalidParameterError,
    ToolCall,
    ToolRegistry,
)

from tests.helpers import EchoProvider


# =============================================================================
# DispatchResult
# =============================================================================


class TestDispatchResult:
    def test_payload_for_string_result(self) -> None:
        result = DispatchResult(success=True, result="hello", tool_name="echo", call_id="c1")

        assert result.to_payload() == "hello"

    def test_payload_for_structured_result(self) -> None:
        result = DispatchResult(success=True, result={"sum": 3})

        assert json.loads(result.to_payload()) == {"sum": 3}

    def test_payload_for_empty_result(self) -> None:
        assert DispatchResult(success=True, result=None).to_payload() == "(no output)"

    def test_payload_for_error(self) -> None:
        error = InvalidParameterError(message="bad", parameter="a")
        result = DispatchResult(success=False, result=None, error=error)

        payload = json.loads(result.to_payload())
        assert payload["error"] == ErrorCode.INVALID_PARAMETER
        assert payload["parameter"] == "a"
        assert result.error_code == ErrorCode.INVALID_PARAMETER
        assert result.to_dict()["error"]["message"] == "bad"


# =============================================================================
# Dispatch
# =============================================================================


class TestDispatch:
    @pytest.mark.asyncio
    async def test_successful_call_echoes_call_id(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("echo", '{"text": "hi"}', call_id="call-7")

        assert result.success
        assert result.result == "hi"
        assert result.call_id == "call-7"
        assert result.tool_name == "echo"
        assert result.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_arguments_are_coerced(self, registry: ToolRegistry, echo_provider: EchoProvider) -> None:
        result = await registry.dispatch("add", {"a": "2", "b": 3.0})

        assert result.result == {"sum": 5}
        assert echo_provider.calls[-1] == ("add", {"a": 2, "b": 3})

    @pytest.mark.asyncio
    async def test_optional_default_is_applied(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("add", {"a": 4})

        assert result.result == {"sum": 5}

    @pytest.mark.asyncio
    async def test_unknown_tool(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("teleport", {}, call_id="c2")

        assert not result.success
        assert result.error_code == ErrorCode.UNKNOWN_TOOL
        assert result.call_id == "c2"
        assert json.loads(result.to_payload())["tool"] == "teleport"

    @pytest.mark.asyncio
    async def test_bad_argument_is_identified(self, registry: ToolRegistry, echo_provider: EchoProvider) -> None:
        result = await registry.dispatch("add", {"a": "three"})

        assert result.error_code == ErrorCode.INVALID_PARAMETER
        assert result.error.parameter == "a"
        assert echo_provider.calls == []

    @pytest.mark.asyncio
    async def test_missing_argument(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("echo", {})

        assert result.error_code == ErrorCode.MISSING_PARAMETER
        assert result.error.parameter == "text"

    @pytest.mark.asyncio
    async def test_malformed_json_arguments(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("echo", "{text: hi")

        assert result.error_code == ErrorCode.INVALID_PARAMETER

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_sanitized_error(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("explode", None)

        assert result.error_code == ErrorCode.EXECUTION_FAILED
        assert result.error.message == "host exploded with a traceback-ish message"
        assert result.error.details == {"type": "RuntimeError"}

    @pytest.mark.asyncio
    async def test_none_result_payload(self, registry: ToolRegistry) -> None:
        result = await registry.dispatch("nothing", "")

        assert result.success
        assert result.to_payload() == "(no output)"

    @pytest.mark.asyncio
    async def test_timeout_cancels_host_action(self, echo_provider: EchoProvider) -> None:
        registry = ToolRegistry(timeout=0.1)
        registry.register(echo_provider)
        try:
            result = await registry.dispatch("block", {}, call_id="slow")

            assert result.error_code == ErrorCode.TIMEOUT
            assert result.call_id == "slow"
            assert json.loads(result.to_payload())["timeout_seconds"] == 0.1
            assert echo_provider.cancelled.wait(2.0)
        finally:
            registry.shutdown()

    @pytest.mark.asyncio
    async def test_dispatch_after_shutdown(self, registry: ToolRegistry) -> None:
        registry.shutdown()

        result = await registry.dispatch("echo", {"text": "late"})

        assert result.error_code == ErrorCode.OPERATION_CANCELLED


class TestBatchAndListener:
    @pytest.mark.asyncio
    async def test_batch_preserves_order(self, registry: ToolRegistry) -> None:
        results = await registry.dispatcher.dispatch_batch(
            [
                ToolCall("echo", '{"text": "a"}', "1"),
                ("teleport", {}, "2"),
                ("echo", {"text": "c"}),
            ]
        )

        assert [result.call_id for result in results] == ["1", "2", ""]
        assert [result.success for result in results] == [True, False, True]

    @pytest.mark.asyncio
    async def test_batch_can_stop_on_error(self, registry: ToolRegistry) -> None:
        results = await registry.dispatcher.dispatch_batch(
            [("teleport", {}), ("echo", {"text": "never"})],
            stop_on_error=True,
        )

        assert len(results) == 1

    @pytest.mark.asyncio
    async def test_listener_sees_start_error_and_complete(self, registry: ToolRegistry) -> None:
        listener = MagicMock()
        registry.dispatcher.set_listener(listener)

        await registry.dispatch("echo", {"text": "ok"})
        await registry.dispatch("teleport", {})

        assert listener.on_tool_start.call_count == 2
        assert listener.on_tool_complete.call_count == 2
        listener.on_tool_error.assert_called_once()

    @pytest.mark.asyncio
    async def test_failing_listener_is_contained(self, registry: ToolRegistry) -> None:
        listener = MagicMock()
        listener.on_tool_start.side_effect = RuntimeError("listener broke")
        registry.dispatcher.set_listener(listener)

        result = await registry.dispatch("echo", {"text": "ok"})

        assert result.success
