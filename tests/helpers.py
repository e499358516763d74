"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files:

    from tests.helpers import EchoProvider, ScriptedTransport
"""

from __future__ import annotations

import threading
from typing import Any, Sequence

from scopeassist.ai.providers import ScriptTab
from scopeassist.ai.tools import (
    ActionSpec,
    CancellationToken,
    CapabilityProvider,
    ParameterSchema,
    ParameterType,
    ToolContext,
)
from scopeassist.ai.transport import ChatRequest, ChatResponse


class EchoProvider(CapabilityProvider):
    """Small provider exercising every dispatch path."""

    display_name = "Echo Tools"
    usage = "Echo text back and do arithmetic."

    def __init__(self) -> None:
        super().__init__()
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.release = threading.Event()
        self.cancelled = threading.Event()

    def actions(self) -> Sequence[ActionSpec]:
        return (
            ActionSpec(
                name="echo",
                description="Echo text",
                parameters=(ParameterSchema("text"),),
                handler=self.echo,
            ),
            ActionSpec(
                name="add",
                description="Add two integers",
                parameters=(
                    ParameterSchema("a", type=ParameterType.INTEGER),
                    ParameterSchema("b", type=ParameterType.INTEGER, required=False, default=1),
                ),
                handler=self.add,
            ),
            ActionSpec(
                name="explode",
                description="Always fails",
                handler=self.explode,
            ),
            ActionSpec(
                name="nothing",
                description="Returns no value",
                handler=lambda: None,
            ),
            ActionSpec(
                name="block",
                description="Waits until released or cancelled",
                handler=self.block,
                cancellable=True,
            ),
        )

    def echo(self, text: str) -> str:
        self.calls.append(("echo", {"text": text}))
        return text

    def add(self, a: int, b: int) -> dict[str, int]:
        self.calls.append(("add", {"a": a, "b": b}))
        return {"sum": a + b}

    def explode(self) -> str:
        raise RuntimeError("host exploded\nwith a traceback-ish message")

    def block(self, cancel_token: CancellationToken) -> str:
        while not self.release.is_set():
            if cancel_token.wait(0.01):
                self.cancelled.set()
                return "stopped"
        return "released"


class MacroProvider(CapabilityProvider):
    display_name = "Macro Tools"
    usage = "Macro only."
    tool_context = ToolContext.MACRO

    def actions(self) -> Sequence[ActionSpec]:
        return (ActionSpec(name="recordMacro", description="Start the recorder", handler=lambda: "recording"),)


class ScriptedTransport:
    """Chat transport returning canned responses and recording every request."""

    def __init__(self, responses: Sequence[ChatResponse]) -> None:
        self._responses = list(responses)
        self.requests: list[ChatRequest] = []
        self.gate: Any = None

    async def send(self, request: ChatRequest) -> ChatResponse:
        self.requests.append(request)
        if self.gate is not None:
            await self.gate.wait()
        if not self._responses:
            raise AssertionError("ScriptedTransport ran out of responses")
        return self._responses.pop(0)


class FakeSearch:
    """Search operation that reports ``results`` from a background thread."""

    def __init__(self, results, on_results, delay: float = 0.0) -> None:
        self.terminated = threading.Event()
        self._timer = threading.Timer(delay, lambda: on_results(results)) if results is not None else None
        if self._timer is not None:
            self._timer.start()

    def terminate(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self.terminated.set()


class FakeCommandHost:
    """In-memory command index standing in for the workbench."""

    def __init__(self, commands=(), search_results=None, search_delay: float = 0.0) -> None:
        self.commands = {command.menu_path: command for command in commands}
        self.search_results = search_results
        self.search_delay = search_delay
        self.executed: list[Any] = []
        self.searches: list[FakeSearch] = []

    def find_command(self, menu_path: str):
        return self.commands.get(menu_path)

    def run_command(self, command) -> None:
        self.executed.append(command)

    def search_commands(self, query: str, on_results):
        search = FakeSearch(self.search_results, on_results, self.search_delay)
        self.searches.append(search)
        return search


class FakeScriptHost:
    """Script editor windows modelled as lists of tab names and texts."""

    def __init__(self, *, open_delay_polls: int = 0) -> None:
        self.editors: list[list[dict[str, str]]] = []
        self.open_requests = 0
        self._open_delay_polls = open_delay_polls

    def is_editor_open(self) -> bool:
        return bool(self.editors)

    def open_editor(self) -> None:
        self.open_requests += 1
        if self._open_delay_polls == 0:
            self.editors.append([{"name": "Untitled.groovy", "text": ""}])

    def default_tab(self):
        if not self.editors and self.open_requests and self._open_delay_polls > 0:
            self._open_delay_polls -= 1
            if self._open_delay_polls == 0:
                self.editors.append([{"name": "Untitled.groovy", "text": ""}])
            return None
        if not self.editors:
            return None
        editor_index = len(self.editors) - 1
        return ScriptTab(editor_index, 0, self.editors[editor_index][0]["name"])

    def create_tab(self):
        editor_index = len(self.editors) - 1
        tabs = self.editors[editor_index]
        tabs.append({"name": f"Untitled{len(tabs)}.groovy", "text": ""})
        return ScriptTab(editor_index, len(tabs) - 1, tabs[-1]["name"])

    def has_tab(self, address) -> bool:
        return 0 <= address.editor_index < len(self.editors) and 0 <= address.tab_index < len(
            self.editors[address.editor_index]
        )

    def set_text(self, address, text: str) -> None:
        self.editors[address.editor_index][address.tab_index]["text"] = text

    def set_file_name(self, address, file_name: str) -> None:
        self.editors[address.editor_index][address.tab_index]["name"] = file_name
