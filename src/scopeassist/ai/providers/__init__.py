"""Capability providers shipped with the assistant."""

from .commands import CommandHost, CommandInfo, CommandInteractionProvider, normalize_menu_path
from .script_editor import ScriptEditorProvider, ScriptHost, ScriptTab

__all__ = [
    "CommandHost",
    "CommandInfo",
    "CommandInteractionProvider",
    "ScriptEditorProvider",
    "ScriptHost",
    "ScriptTab",
    "normalize_menu_path",
]
