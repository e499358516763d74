"""Command discovery and execution tools.

The provider talks to the workbench through :class:`CommandHost`, a narrow
protocol the embedding application implements over its command index.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol, Sequence

from ..tools.base import CapabilityProvider
from ..tools.errors import MissingParameterError, ToolExecutionFailedError
from ..tools.types import ActionSpec, CancellationToken, ParameterSchema, ToolContext

__all__ = [
    "CommandHost",
    "CommandInfo",
    "CommandInteractionProvider",
    "SearchOperation",
    "normalize_menu_path",
]

LOGGER = logging.getLogger(__name__)

MAX_RESULTS = 10
DEFAULT_SEARCH_WAIT = 2.0
_POLL_INTERVAL = 0.05

_RETIRED_UPDATER = "Help > Update ImageJ..."
_UPDATER = "Help > Update..."
_OPEN_SAMPLES = "Open Samples"


@dataclass(slots=True, frozen=True)
class CommandInfo:
    """A command known to the host."""

    name: str
    menu_path: str = ""
    shortcut: str = ""

    @property
    def leaf(self) -> str:
        parts = [part for part in self.menu_path.split(" > ") if part]
        return parts[-1] if parts else self.name

    def to_dict(self) -> dict[str, str]:
        data = {"name": self.name}
        if self.menu_path:
            data["menuPath"] = self.menu_path
        if self.shortcut:
            data["shortcut"] = self.shortcut
        return data


class SearchOperation(Protocol):
    def terminate(self) -> None:
        """Stop producing results."""
        ...


class CommandHost(Protocol):
    """Host side of the command tools."""

    def find_command(self, menu_path: str) -> CommandInfo | None:
        """Return the command registered at ``menu_path`` (``"A > B > C"`` form)."""
        ...

    def run_command(self, command: CommandInfo) -> None:
        """Run ``command`` interactively, as if picked from the menu."""
        ...

    def search_commands(
        self,
        query: str,
        on_results: Callable[[Sequence[CommandInfo]], None],
    ) -> SearchOperation:
        """Start an asynchronous command search reporting batches to ``on_results``."""
        ...


def normalize_menu_path(menu_path: str) -> str:
    """Return ``menu_path`` in canonical ``"File > Open Samples > Blobs"`` form."""
    return " > ".join(part.strip() for part in menu_path.split(">") if part.strip())


class CommandInteractionProvider(CapabilityProvider):
    """Tools to search for and launch interactive workbench commands."""

    display_name = "Command Interaction Tools"
    tool_context = ToolContext.MACRO
    usage = (
        "Commands are reusable functions whose availability depends on the installation "
        "(for example installed plugins). These tools support command discovery and use.\n"
        "Always call searchCommands to confirm a command exists before suggesting it to the user.\n"
        "To run a command: 1) searchCommands, then 2) runCommand with the desired menuPath.\n"
        "update fixes problems caused by an outdated installation and manages update sites.\n"
        "configureMemory can help with OutOfMemoryErrors or slow processing.\n"
        "configureOptions can help when images fail to open.\n"
        "configureSearch helps when expected search results are missing."
    )

    def __init__(self, host: CommandHost, *, search_wait: float = DEFAULT_SEARCH_WAIT) -> None:
        super().__init__()
        self._host = host
        self._search_wait = search_wait

    def actions(self) -> Sequence[ActionSpec]:
        return (
            ActionSpec(
                name="searchCommands",
                description=(
                    "Search for available commands. Returns info for the top matches, most relevant first."
                ),
                parameters=(
                    ParameterSchema(
                        "commandName",
                        description="Command to search for, name only (e.g. 'Blur', 'Threshold', 'Open')",
                    ),
                ),
                handler=self.search_commands,
                cancellable=True,
            ),
            ActionSpec(
                name="runCommand",
                description=(
                    'Run a command that requires user input (its name contains "...") '
                    'or that lives in the "Open Samples" menu'
                ),
                parameters=(
                    ParameterSchema(
                        "menuPath",
                        description='Menu path, e.g. "File > Open Samples > Blobs"',
                    ),
                ),
                handler=self.run_command,
            ),
            ActionSpec(
                name="configureSearch",
                description='Configure the search bar. Runs "Edit > Options > Search Bar..."',
                handler=lambda: self.run_command("Edit > Options > Search Bar..."),
            ),
            ActionSpec(
                name="configureMemory",
                description='Configure available memory and threads. Runs "Edit > Options > Memory & Threads..."',
                handler=lambda: self.run_command("Edit > Options > Memory & Threads..."),
            ),
            ActionSpec(
                name="configureOptions",
                description='Configure image opening options. Runs "Edit > Options > ImageJ2..."',
                handler=lambda: self.run_command("Edit > Options > ImageJ2..."),
            ),
            ActionSpec(
                name="update",
                description=f'Check for updates and manage installed plugins. Runs "{_UPDATER}"',
                handler=lambda: self.run_command(_UPDATER),
            ),
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def run_command(self, menuPath: str) -> str:
        menu_path = normalize_menu_path(menuPath or "")
        if not menu_path:
            raise MissingParameterError(message="Menu path cannot be empty", parameter="menuPath")
        if menu_path == _RETIRED_UPDATER:
            raise ToolExecutionFailedError(
                message=f'All updates must be done with "{_UPDATER}"',
                suggestion="Call the update tool instead",
            )

        command = self._host.find_command(menu_path)
        if command is None:
            raise ToolExecutionFailedError(
                message=f"Command not found at path: {menu_path}",
                suggestion="Use searchCommands to find the exact menu path",
            )
        if not _is_permitted(menu_path):
            raise ToolExecutionFailedError(
                message="This command is not allowed for assistant use",
                suggestion="Instruct the user to run it",
            )

        LOGGER.info("Running command %s", menu_path)
        self._host.run_command(command)
        return f"Command executed: {command.name}"

    def search_commands(self, commandName: str, cancel_token: CancellationToken | None = None) -> str:
        query = (commandName or "").strip()
        if not query:
            raise MissingParameterError(message="Command name cannot be empty", parameter="commandName")

        results: list[CommandInfo] = []
        lock = threading.Lock()
        arrived = threading.Event()

        def _collect(batch: Sequence[CommandInfo]) -> None:
            with lock:
                for info in batch:
                    if len(results) >= MAX_RESULTS:
                        break
                    results.append(info)
            arrived.set()

        operation = self._host.search_commands(query, _collect)
        try:
            deadline = time.monotonic() + self._search_wait
            while not arrived.wait(_POLL_INTERVAL):
                if cancel_token is not None and cancel_token.cancelled:
                    LOGGER.debug("Command search for %r cancelled", query)
                    break
                if time.monotonic() >= deadline:
                    break
        finally:
            operation.terminate()

        with lock:
            found = list(results)
        if not found:
            return f"No commands found matching: {query}"
        return json.dumps([info.to_dict() for info in found], indent=2, ensure_ascii=False)


def _is_permitted(menu_path: str) -> bool:
    """Only interactive commands and sample images may be started by the assistant."""
    parts = menu_path.split(" > ")
    leaf = parts[-1]
    if "..." in leaf:
        return True
    return _OPEN_SAMPLES in parts[:-1]
