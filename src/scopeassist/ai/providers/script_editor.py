"""Script editor tools: open editors, create tabs and write script text."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

from ...chat.context import ScriptAddress
from ...core.script_text import strip_line_numbers
from ..tools.base import CapabilityProvider
from ..tools.errors import InvalidParameterError, ToolExecutionFailedError
from ..tools.types import ActionSpec, CancellationToken, ParameterSchema

__all__ = ["SCRIPT_GUIDE", "ScriptEditorProvider", "ScriptHost", "ScriptTab"]

LOGGER = logging.getLogger(__name__)

DEFAULT_OPEN_WAIT = 5.0
_POLL_INTERVAL = 0.05

SCRIPT_GUIDE = """\
Writing scripts for the workbench

Scripts are plain text in one of the supported languages, chosen by the file
extension (.groovy, .py, .js, .ijm, .bsh, .clj, .R, .rb, .scala).

Inputs and outputs are declared with parameter lines at the top of the
script. Each line starts with #@ followed by a type and a name:

    #@ Dataset image
    #@ int (label="Radius", min=1, max=50) radius
    #@output Dataset result

Services are declared the same way and are injected before the script runs:

    #@ OpService ops
    #@ UIService ui
    #@ LogService log

Declared inputs that the workbench cannot fill automatically are asked for in
a generated dialog when the script runs. Outputs are displayed after the
script finishes.

Guidelines:
- Prefer Groovy or Python (Jython) unless the user asks for another language.
- Use the ops service for image processing rather than low-level pixel loops.
- Keep one task per script and give parameters human-readable labels.
- Use the log service instead of printing when reporting progress.
- Give the script a file name with the right extension via setScriptFilename
  so the editor picks the correct language.
"""


@dataclass(slots=True, frozen=True)
class ScriptTab:
    """A tab in one of the host's script editors."""

    editor_index: int
    tab_index: int
    name: str

    @property
    def address(self) -> ScriptAddress:
        return ScriptAddress(self.editor_index, self.tab_index)

    def to_dict(self) -> dict[str, str]:
        return {"type": "Script", "name": self.name, "id": str(self.address)}


class ScriptHost(Protocol):
    """Host side of the script editor tools."""

    def is_editor_open(self) -> bool:
        ...

    def open_editor(self) -> None:
        """Ask the host to open a new editor window; may complete asynchronously."""
        ...

    def default_tab(self) -> ScriptTab | None:
        """Return the first tab of the most recent visible editor, if any."""
        ...

    def create_tab(self) -> ScriptTab:
        """Add a tab to the most recent visible editor."""
        ...

    def has_tab(self, address: ScriptAddress) -> bool:
        ...

    def set_text(self, address: ScriptAddress, text: str) -> None:
        """Replace the tab's text and bring it to the front."""
        ...

    def set_file_name(self, address: ScriptAddress, file_name: str) -> None:
        ...


class ScriptEditorProvider(CapabilityProvider):
    """Lets the assistant draft scripts directly in the host's editors."""

    display_name = "Script Editor Tools"
    usage = (
        "Use these tools to write scripts for the user. Scripts are addressed by ids of the form "
        "'editor:tab' (for example '0:1'), as returned by startEditor and createScript.\n"
        "Call scriptGuide before writing a script for the first time in a conversation.\n"
        "Give every new script a file name with the right extension so the editor selects the language."
    )

    def __init__(self, host: ScriptHost, *, open_wait: float = DEFAULT_OPEN_WAIT) -> None:
        super().__init__()
        self._host = host
        self._open_wait = open_wait

    def actions(self) -> Sequence[ActionSpec]:
        script_id = ParameterSchema("id", description="Script id in 'editor:tab' form, e.g. '0:1'")
        return (
            ActionSpec(
                name="isEditorOpen",
                description="Check whether a script editor window is currently open",
                handler=self.is_editor_open,
            ),
            ActionSpec(
                name="startEditor",
                description="Open a new script editor window. Returns the id of its first script",
                handler=self.start_editor,
                cancellable=True,
            ),
            ActionSpec(
                name="createScript",
                description="Create a new, empty script tab in the open editor. Returns its id",
                handler=self.create_script,
            ),
            ActionSpec(
                name="writeScript",
                description="Replace the full text of a script",
                parameters=(
                    script_id,
                    ParameterSchema("content", description="Complete script text", allow_empty=True),
                ),
                handler=self.write_script,
            ),
            ActionSpec(
                name="setScriptFilename",
                description="Rename a script. The extension selects the script language",
                parameters=(
                    script_id,
                    ParameterSchema("filename", description="New file name including extension"),
                ),
                handler=self.set_script_filename,
            ),
            ActionSpec(
                name="scriptGuide",
                description="Return guidance on writing scripts for this workbench",
                handler=lambda: SCRIPT_GUIDE,
            ),
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def is_editor_open(self) -> bool:
        return bool(self._host.is_editor_open())

    def start_editor(self, cancel_token: CancellationToken | None = None) -> str:
        if self._host.is_editor_open():
            raise ToolExecutionFailedError(
                message="A script editor is already open",
                suggestion="Use createScript to add a script to the open editor",
            )
        self._host.open_editor()

        deadline = time.monotonic() + self._open_wait
        tab = self._host.default_tab()
        while tab is None:
            if cancel_token is not None and cancel_token.wait(_POLL_INTERVAL):
                raise ToolExecutionFailedError(message="Opening the script editor was cancelled")
            if cancel_token is None:
                time.sleep(_POLL_INTERVAL)
            if time.monotonic() >= deadline:
                raise ToolExecutionFailedError(
                    message="The script editor did not open in time",
                    suggestion="Ask the user to open the script editor",
                )
            tab = self._host.default_tab()

        LOGGER.info("Opened script editor at %s", tab.address)
        return json.dumps(tab.to_dict())

    def create_script(self) -> str:
        if not self._host.is_editor_open():
            raise ToolExecutionFailedError(
                message="No script editor is open",
                suggestion="Call startEditor first",
            )
        tab = self._host.create_tab()
        return json.dumps(tab.to_dict())

    def write_script(self, id: str, content: str) -> str:
        address = self._resolve(id)
        self._host.set_text(address, strip_line_numbers(content))
        return f"Successfully updated script at {address}"

    def set_script_filename(self, id: str, filename: str) -> str:
        address = self._resolve(id)
        name = filename.strip()
        self._host.set_file_name(address, name)
        return f"Successfully renamed script at {address} to {name}"

    def _resolve(self, script_id: str) -> ScriptAddress:
        try:
            address = ScriptAddress.parse(script_id)
        except ValueError as exc:
            raise InvalidParameterError(message=str(exc), parameter="id") from None
        if not address.is_set or not self._host.has_tab(address):
            raise ToolExecutionFailedError(
                message=f"No script found at {script_id}",
                suggestion="Use createScript or startEditor to get a valid script id",
            )
        return address
