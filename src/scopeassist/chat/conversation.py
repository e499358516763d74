"""Conversation history and request snapshots.

A :class:`Conversation` is an append-only list of :class:`Turn` objects.
Each turn pairs the text shown in the chat list (``display``, or ``None``
for hidden turns) with the memory sent to the model. Memories form a closed
union: :class:`SystemMemory`, :class:`UserMemory`, :class:`AssistantMemory`
and :class:`ToolResultMemory`.

The first turn is always the single system turn; it is created with the
conversation and never appended afterwards.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable, Sequence, TypeAlias

from ..ai.tools.registry import CatalogSection
from ..ai.tools.types import ToolCall
from .aggregator import render_context
from .context import ContextItem

__all__ = [
    "AssistantMemory",
    "Conversation",
    "ConversationBuilder",
    "ConversationClosedError",
    "DEFAULT_SYSTEM_PROMPT",
    "Memory",
    "SystemMemory",
    "TOOL_ENVIRONMENT_NOTE",
    "ToolResultMemory",
    "Turn",
    "UserMemory",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = (
    "You are an assistant embedded in a scientific image-analysis workbench. "
    "Help users build reproducible workflows, usually as scripts or macros, and point them "
    "to the commands that fit their needs. Be concise and patient, and expect to iterate "
    "when something does not work."
)

CONTEXT_NOTE = (
    "Context items (scripts, images, application state) may appear as JSON or text blocks "
    "at the end of user messages."
)

TOOL_ENVIRONMENT_NOTE = (
    "Tools are only available to you, not to the user. Call them with named arguments "
    "exactly as declared in their schema."
)

CONTEXT_BLOCK_HEADER = "## Current Context\n"


class ConversationClosedError(RuntimeError):
    """Raised when appending to a conversation that has been closed."""


# -----------------------------------------------------------------------------
# Memories
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class SystemMemory:
    content: str


@dataclass(slots=True, frozen=True)
class UserMemory:
    content: str


@dataclass(slots=True, frozen=True)
class AssistantMemory:
    """Model reply; ``tool_calls`` lists the actions it requested, if any."""

    content: str
    tool_calls: tuple[ToolCall, ...] = ()


@dataclass(slots=True, frozen=True)
class ToolResultMemory:
    """Result of one tool call, paired with the call through ``call_id``."""

    content: str
    call_id: str = ""
    tool_name: str = ""


Memory: TypeAlias = SystemMemory | UserMemory | AssistantMemory | ToolResultMemory


@dataclass(slots=True, frozen=True)
class Turn:
    """One entry of the history: UI text (or ``None``) plus model memory."""

    display: str | None
    memory: Memory

    @property
    def visible(self) -> bool:
        return self.display is not None


# Marker meaning "show the same text the model sees".
_MIRROR: Any = object()


# -----------------------------------------------------------------------------
# Conversation
# -----------------------------------------------------------------------------


class Conversation:
    """Append-only chat history with a fixed system turn."""

    def __init__(self, name: str, system_message: str, turns: Iterable[Turn] = ()) -> None:
        self._name = name
        self._lock = threading.Lock()
        self._closed = False
        history = [Turn(None, SystemMemory(system_message))]
        for turn in turns:
            if isinstance(turn.memory, SystemMemory):
                raise ValueError("Only the first turn of a conversation may be a system turn")
            history.append(turn)
        self._turns: tuple[Turn, ...] = tuple(history)

    @property
    def name(self) -> str:
        return self._name

    @property
    def system_prompt(self) -> str:
        return self._turns[0].memory.content

    @property
    def closed(self) -> bool:
        return self._closed

    def turns(self) -> tuple[Turn, ...]:
        """Return every turn, system turn first."""
        return self._turns

    def visible_turns(self) -> tuple[Turn, ...]:
        return tuple(turn for turn in self._turns if turn.visible)

    def memories(self) -> tuple[Memory, ...]:
        return tuple(turn.memory for turn in self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    # ------------------------------------------------------------------
    # Appends
    # ------------------------------------------------------------------

    def append_user(self, text: str, display: str | None = _MIRROR) -> Turn:
        """Append a user turn; pass ``display=None`` to hide it from the UI."""
        return self._append(UserMemory(text), text if display is _MIRROR else display)

    def append_assistant(
        self,
        text: str,
        display: str | None = _MIRROR,
        tool_calls: Sequence[ToolCall] = (),
    ) -> Turn:
        return self._append(
            AssistantMemory(text or "", tuple(tool_calls)),
            text if display is _MIRROR else display,
        )

    def append_tool_result(
        self,
        call_id: str,
        text: str,
        display: str | None = None,
        *,
        tool_name: str = "",
    ) -> Turn:
        """Append a tool result turn. Tool results are hidden unless ``display`` is given."""
        return self._append(ToolResultMemory(text, call_id=call_id, tool_name=tool_name), display)

    def _append(self, memory: Memory, display: str | None) -> Turn:
        turn = Turn(display, memory)
        with self._lock:
            if self._closed:
                raise ConversationClosedError(f"Conversation '{self._name}' is closed")
            self._turns = self._turns + (turn,)
        return turn

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def snapshot_for_request(self, context_items: Iterable[ContextItem] = ()) -> tuple[Memory, ...]:
        """Return the memories to send to the model.

        The system memory comes first, followed by every turn's memory in
        order. When ``context_items`` is non-empty their rendering is added as
        a final user memory. History is not modified.
        """

        memories = self.memories()
        items = tuple(context_items)
        if not items:
            return memories
        return memories + (UserMemory(CONTEXT_BLOCK_HEADER + render_context(items)),)

    def close(self) -> None:
        with self._lock:
            self._closed = True

    def __repr__(self) -> str:
        return f"Conversation(name={self._name!r}, turns={len(self._turns)})"


# -----------------------------------------------------------------------------
# Builder
# -----------------------------------------------------------------------------


class ConversationBuilder:
    """Compose the system prompt for new conversations.

    The prompt is the base prompt, the context note, the tool-environment
    note and an ``## Available Tools`` section listing each provider's
    display name and usage. It is computed once per :meth:`build` call.

    Example:
        builder = ConversationBuilder().with_catalog(registry.catalog(ToolContext.SCRIPT))
        conversation = builder.build("Blob counting")
    """

    def __init__(self, base_prompt: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self._base_prompt = base_prompt
        self._tool_note = TOOL_ENVIRONMENT_NOTE
        self._sections: list[CatalogSection] = []

    def with_base_prompt(self, prompt: str) -> ConversationBuilder:
        self._base_prompt = prompt
        return self

    def with_tool_environment_note(self, note: str) -> ConversationBuilder:
        self._tool_note = note
        return self

    def with_catalog(self, sections: Iterable[CatalogSection]) -> ConversationBuilder:
        self._sections.extend(sections)
        return self

    def build_system_prompt(self) -> str:
        parts: list[str] = []
        if self._base_prompt:
            parts.append(self._base_prompt.strip())
        parts.append("## Context Items\n\n" + CONTEXT_NOTE)
        if self._sections:
            if self._tool_note:
                parts.append("## Tool Usage\n\n" + self._tool_note.strip())
            lines = ["## Available Tools", ""]
            for section in self._sections:
                usage = section.usage.strip() if section.usage else ""
                lines.append(f"- **{section.provider}**: {usage}".rstrip())
            parts.append("\n".join(lines))
        return "\n\n".join(parts) + "\n"

    def build(self, name: str) -> Conversation:
        prompt = self.build_system_prompt()
        LOGGER.debug("Built conversation %r with %d tool provider(s)", name, len(self._sections))
        return Conversation(name, prompt)
