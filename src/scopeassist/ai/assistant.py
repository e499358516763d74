"""Assistant session: runs one chat request at a time, including tool rounds.

A session ties together a :class:`~scopeassist.chat.conversation.Conversation`,
the context aggregator, the tool registry and a chat transport. Each call to
:meth:`AssistantSession.ask` appends the user's turn, sends a snapshot of the
conversation to the model and, while the model asks for tools, dispatches
them and sends the results back.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from ..chat.aggregator import ContextAggregator
from ..chat.conversation import Conversation
from .tools.dispatcher import DispatchResult
from .tools.errors import ErrorCode, ToolError
from .tools.registry import ToolRegistry
from .tools.types import ToolCall
from .transport import ChatRequest, ChatResponse, ChatTransport, ResponseKind

__all__ = [
    "AssistantReply",
    "AssistantSession",
    "DEFAULT_MAX_TOOL_ITERATIONS",
    "RequestCancelledError",
    "RequestInFlightError",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 8


class RequestInFlightError(RuntimeError):
    """Raised when a second request is started while one is outstanding."""


class RequestCancelledError(RuntimeError):
    """Raised by :meth:`AssistantSession.ask` when :meth:`AssistantSession.cancel` stopped it."""


@dataclass(slots=True)
class AssistantReply:
    """Outcome of one :meth:`AssistantSession.ask` call."""

    text: str
    tool_results: list[DispatchResult] = field(default_factory=list)
    iterations: int = 0
    exhausted: bool = False


ToolResultCallback = Callable[[DispatchResult], None]


class AssistantSession:
    """Drives a conversation against a model with tool support.

    Example:
        session = AssistantSession(conversation, aggregator, registry, OpenAITransport(settings))
        reply = await session.ask("Count the blobs in the open image")
    """

    def __init__(
        self,
        conversation: Conversation,
        aggregator: ContextAggregator,
        registry: ToolRegistry,
        transport: ChatTransport,
        *,
        max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS,
        tool_context: str | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> None:
        self._conversation = conversation
        self._aggregator = aggregator
        self._registry = registry
        self._transport = transport
        self._max_tool_iterations = max(1, int(max_tool_iterations))
        self._tool_context = tool_context
        self._on_tool_result = on_tool_result
        self._task: asyncio.Task[AssistantReply] | None = None
        self._cancel_requested = False

    @property
    def conversation(self) -> Conversation:
        return self._conversation

    @property
    def aggregator(self) -> ContextAggregator:
        return self._aggregator

    @property
    def busy(self) -> bool:
        return self._task is not None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def ask(self, text: str) -> AssistantReply:
        """Send ``text`` as the user's next turn and return the final reply.

        Raises:
            RequestInFlightError: Another request on this session is outstanding.
            RequestCancelledError: :meth:`cancel` was called before the reply arrived.
        """
        if self._task is not None:
            raise RequestInFlightError("A request is already in flight for this conversation")

        self._cancel_requested = False
        self._conversation.append_user(text)
        task = asyncio.ensure_future(self._run())
        self._task = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancel_requested and not _current_task_cancelling():
                raise RequestCancelledError("Request cancelled") from None
            raise
        finally:
            self._task = None

    def cancel(self) -> bool:
        """Stop the outstanding request, if any; return whether one was running.

        In-flight tool calls are asked to stop through their cancellation
        tokens. Host actions that ignore the token may keep running.
        """
        task = self._task
        if task is None or task.done():
            return False
        self._cancel_requested = True
        signalled = self._registry.dispatcher.cancel_all("request cancelled")
        task.cancel()
        LOGGER.info("Cancelled request for %s (%d tool call(s) signalled)", self._conversation.name, signalled)
        return True

    async def _run(self) -> AssistantReply:
        reply = AssistantReply(text="")
        for iteration in range(1, self._max_tool_iterations + 1):
            reply.iterations = iteration
            response = await self._send()
            if response.kind is not ResponseKind.TOOL_CALLS or not response.tool_calls:
                self._conversation.append_assistant(response.text)
                reply.text = response.text
                return reply

            self._conversation.append_assistant(
                response.text,
                display=response.text or None,
                tool_calls=response.tool_calls,
            )
            answered = 0
            try:
                for call in response.tool_calls:
                    result = await self._registry.dispatch(call.name, call.arguments, call_id=call.call_id)
                    self._conversation.append_tool_result(call.call_id, result.to_payload(), tool_name=call.name)
                    answered += 1
                    reply.tool_results.append(result)
                    if self._on_tool_result is not None:
                        self._on_tool_result(result)
            except asyncio.CancelledError:
                self._answer_cancelled(response.tool_calls[answered:])
                raise

        LOGGER.warning(
            "Stopped %s after %d tool round(s) without a final answer",
            self._conversation.name,
            self._max_tool_iterations,
        )
        reply.exhausted = True
        reply.text = (
            f"Stopped after {self._max_tool_iterations} rounds of tool calls without a final answer."
        )
        self._conversation.append_assistant(reply.text)
        return reply

    def _answer_cancelled(self, calls: Sequence[ToolCall]) -> None:
        # Every tool call in history needs a result before the next user turn.
        if not calls or self._conversation.closed:
            return
        payload = json.dumps(
            ToolError(
                error_code=ErrorCode.OPERATION_CANCELLED,
                message="Request cancelled before the tool finished",
            ).to_dict(),
            ensure_ascii=False,
        )
        for call in calls:
            self._conversation.append_tool_result(call.call_id, payload, tool_name=call.name)
        LOGGER.debug("Recorded %d cancelled tool call(s) for %s", len(calls), self._conversation.name)

    async def _send(self) -> ChatResponse:
        request = ChatRequest(
            messages=self._conversation.snapshot_for_request(self._aggregator.snapshot()),
            tools=self._registry.tool_specs(self._tool_context),
        )
        return await self._transport.send(request)


def _current_task_cancelling() -> bool:
    current = asyncio.current_task()
    return current is not None and current.cancelling() > 0
