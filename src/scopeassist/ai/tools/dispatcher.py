"""Tool Dispatcher.

Routes model tool calls to registered executors. Every path through
:meth:`ToolDispatcher.dispatch` produces a :class:`DispatchResult`; dispatch
failures are converted into structured error payloads the model can read.

Executors run in a worker pool so host actions never block the event loop.
Each call gets its own :class:`CancellationToken`, which is set when the
bounded wait expires or the dispatcher shuts down.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol, Sequence

from .coercion import coerce_arguments
from .errors import (
    ErrorCode,
    ToolError,
    ToolExecutionFailedError,
    ToolTimeoutError,
    UnknownToolError,
)
from .types import ActionDescriptor, ActionExecutor, CancellationToken, ToolCall

__all__ = [
    "DEFAULT_TOOL_TIMEOUT",
    "DispatchListener",
    "DispatchResult",
    "ToolDispatcher",
    "ToolLookup",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT = 30.0
_EMPTY_RESULT = "(no output)"

ToolLookup = Callable[[str], tuple[ActionDescriptor, ActionExecutor] | None]


# -----------------------------------------------------------------------------
# Dispatch Result
# -----------------------------------------------------------------------------


@dataclass(slots=True)
class DispatchResult:
    """Result of a tool dispatch operation.

    Attributes:
        success: Whether the tool executed successfully.
        result: The tool's return value.
        error: Error if execution failed.
        tool_name: Name of the tool the model asked for.
        call_id: Opaque call identifier supplied by the transport.
        execution_time_ms: Execution time in milliseconds.
    """

    success: bool
    result: Any
    error: ToolError | None = None
    tool_name: str = ""
    call_id: str = ""
    execution_time_ms: float = 0.0

    @property
    def error_code(self) -> str | None:
        return self.error.error_code if self.error else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "success": self.success,
            "tool_name": self.tool_name,
            "call_id": self.call_id,
            "execution_time_ms": self.execution_time_ms,
        }
        if self.success:
            data["result"] = self.result
        else:
            data["error"] = self.error.to_dict() if self.error else {"message": "Unknown error"}
        return data

    def to_payload(self) -> str:
        """Render the text handed back to the model as the tool result."""
        if not self.success:
            error = self.error.to_dict() if self.error else {"error": ErrorCode.INTERNAL_ERROR}
            return json.dumps(error, ensure_ascii=False)
        if self.result is None:
            return _EMPTY_RESULT
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False, default=str)


# -----------------------------------------------------------------------------
# Dispatch Listener
# -----------------------------------------------------------------------------


class DispatchListener(Protocol):
    """Callback protocol for dispatch events."""

    def on_tool_start(self, tool_name: str, arguments: Any) -> None:
        """Called when a tool starts execution."""
        ...

    def on_tool_complete(self, result: DispatchResult) -> None:
        """Called when a tool completes."""
        ...

    def on_tool_error(self, tool_name: str, error: ToolError) -> None:
        """Called when a tool fails."""
        ...


# -----------------------------------------------------------------------------
# Tool Dispatcher
# -----------------------------------------------------------------------------


class ToolDispatcher:
    """Dispatches tool calls to bound executors.

    Example:
        dispatcher = ToolDispatcher(registry.lookup, timeout=10.0)
        result = await dispatcher.dispatch("runCommand", {"menuPath": "File > Open..."})
        payload = result.to_payload()
    """

    def __init__(
        self,
        lookup: ToolLookup,
        *,
        timeout: float | None = DEFAULT_TOOL_TIMEOUT,
        max_workers: int = 4,
        listener: DispatchListener | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            lookup: Resolves an action name to its descriptor and executor.
            timeout: Bounded wait per call in seconds; ``None`` waits forever.
            max_workers: Size of the worker pool running host actions.
            listener: Dispatch event listener.
        """
        self._lookup = lookup
        self._timeout = timeout
        self._listener = listener
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scopeassist-tool")
        self._inflight: set[CancellationToken] = set()
        self._inflight_lock = threading.Lock()
        self._closed = False

    @property
    def timeout(self) -> float | None:
        return self._timeout

    @timeout.setter
    def timeout(self, value: float | None) -> None:
        self._timeout = value if value is None or value > 0 else None

    @property
    def in_flight(self) -> int:
        """Number of calls currently executing."""
        with self._inflight_lock:
            return len(self._inflight)

    def set_listener(self, listener: DispatchListener | None) -> None:
        """Set or replace the dispatch event listener."""
        self._listener = listener

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        tool_name: str,
        arguments: Any,
        *,
        call_id: str = "",
    ) -> DispatchResult:
        """Dispatch a tool call.

        Args:
            tool_name: Name of the action to execute.
            arguments: Raw arguments as sent by the model (mapping or JSON text).
            call_id: Opaque identifier echoed back on the result.

        Returns:
            DispatchResult with the execution outcome. Never raises for
            dispatch failures.
        """
        start_time = time.perf_counter()
        self._notify_start(tool_name, arguments)

        if self._closed:
            error = ToolError(
                error_code=ErrorCode.OPERATION_CANCELLED,
                message="Tool dispatcher has been shut down",
            )
            return self._finish_error(tool_name, call_id, error, start_time)

        entry = self._lookup(tool_name)
        if entry is None:
            LOGGER.warning("Model requested unknown tool %r (call_id=%s)", tool_name, call_id)
            return self._finish_error(tool_name, call_id, UnknownToolError(tool_name=tool_name), start_time)

        descriptor, executor = entry
        try:
            coerced = coerce_arguments(descriptor, arguments)
        except ToolError as error:
            LOGGER.debug("Rejected arguments for %s: %s", tool_name, error)
            return self._finish_error(tool_name, call_id, error, start_time)

        LOGGER.debug("Executing tool %s (call_id=%s)", tool_name, call_id)
        try:
            result = await self._run(descriptor, executor, coerced)
        except ToolError as error:
            LOGGER.warning("Tool %s failed: %s", tool_name, error)
            return self._finish_error(tool_name, call_id, error, start_time)
        except Exception as exc:
            LOGGER.exception("Tool %s raised unexpectedly", tool_name)
            error = ToolExecutionFailedError.from_exception(exc)
            return self._finish_error(tool_name, call_id, error, start_time)

        dispatch_result = DispatchResult(
            success=True,
            result=result,
            tool_name=tool_name,
            call_id=call_id,
            execution_time_ms=_elapsed_ms(start_time),
        )
        LOGGER.debug("Tool %s completed in %.1fms", tool_name, dispatch_result.execution_time_ms)
        self._notify_complete(dispatch_result)
        return dispatch_result

    async def dispatch_batch(
        self,
        calls: Sequence[ToolCall | tuple[str, Any] | tuple[str, Any, str]],
        *,
        stop_on_error: bool = False,
    ) -> list[DispatchResult]:
        """Dispatch several calls sequentially, preserving their order.

        Args:
            calls: ``ToolCall`` objects or ``(name, arguments[, call_id])`` tuples.
            stop_on_error: Stop the batch at the first failed call.
        """
        results: list[DispatchResult] = []
        for call in calls:
            if isinstance(call, ToolCall):
                name, arguments, call_id = call.name, call.arguments, call.call_id
            else:
                name, arguments = call[0], call[1]
                call_id = call[2] if len(call) > 2 else ""
            result = await self.dispatch(name, arguments, call_id=call_id)
            results.append(result)
            if stop_on_error and not result.success:
                break
        return results

    def cancel_all(self, reason: str = "cancelled") -> int:
        """Signal every in-flight call to stop; return how many were signalled."""
        with self._inflight_lock:
            tokens = tuple(self._inflight)
        for token in tokens:
            token.cancel(reason)
        if tokens:
            LOGGER.debug("Requested cancellation of %d in-flight tool call(s)", len(tokens))
        return len(tokens)

    def shutdown(self) -> None:
        """Cancel in-flight calls and stop the worker pool."""
        if self._closed:
            return
        self._closed = True
        self.cancel_all("shutdown")
        self._pool.shutdown(wait=False, cancel_futures=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(
        self,
        descriptor: ActionDescriptor,
        executor: ActionExecutor,
        arguments: Mapping[str, Any],
    ) -> Any:
        token = CancellationToken()
        with self._inflight_lock:
            self._inflight.add(token)
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(self._pool, executor, arguments, token)
        timeout = self._timeout
        try:
            if timeout is not None:
                return await asyncio.wait_for(future, timeout=timeout)
            return await future
        except asyncio.TimeoutError:
            token.cancel("timeout")
            LOGGER.warning("Tool %s timed out after %.1fs", descriptor.name, timeout)
            raise ToolTimeoutError(
                message=f"Tool '{descriptor.name}' did not finish within {timeout:g} seconds",
                timeout=timeout,
            ) from None
        except asyncio.CancelledError:
            token.cancel("cancelled")
            raise
        finally:
            with self._inflight_lock:
                self._inflight.discard(token)

    # ------------------------------------------------------------------
    # Result Building
    # ------------------------------------------------------------------

    def _finish_error(
        self,
        tool_name: str,
        call_id: str,
        error: ToolError,
        start_time: float,
    ) -> DispatchResult:
        result = DispatchResult(
            success=False,
            result=None,
            error=error,
            tool_name=tool_name,
            call_id=call_id,
            execution_time_ms=_elapsed_ms(start_time),
        )
        self._notify_error(tool_name, error)
        self._notify_complete(result)
        return result

    def _notify_start(self, tool_name: str, arguments: Any) -> None:
        if self._listener:
            try:
                self._listener.on_tool_start(tool_name, arguments)
            except Exception:
                LOGGER.debug("Listener on_tool_start failed", exc_info=True)

    def _notify_complete(self, result: DispatchResult) -> None:
        if self._listener:
            try:
                self._listener.on_tool_complete(result)
            except Exception:
                LOGGER.debug("Listener on_tool_complete failed", exc_info=True)

    def _notify_error(self, tool_name: str, error: ToolError) -> None:
        if self._listener:
            try:
                self._listener.on_tool_error(tool_name, error)
            except Exception:
                LOGGER.debug("Listener on_tool_error failed", exc_info=True)


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000
