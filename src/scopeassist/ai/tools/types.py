"""Tool system types shared by providers, the registry and the dispatcher.

Providers describe their actions with :class:`ActionSpec` entries (an
explicit action table); the builder in :mod:`.base` turns each spec into an
immutable :class:`ActionDescriptor` plus a bound :data:`ActionExecutor`.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

__all__ = [
    "ActionDescriptor",
    "ActionExecutor",
    "ActionSpec",
    "CancellationToken",
    "ParameterSchema",
    "ParameterType",
    "ToolCall",
    "ToolContext",
    "ToolSpec",
]


class ToolContext:
    """Standard tool contexts used to filter the catalog per request."""

    ANY = "any"
    SCRIPT = "script"
    MACRO = "macro"


class ParameterType(str, Enum):
    """JSON Schema types an action parameter may declare."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


# -----------------------------------------------------------------------------
# Cancellation
# -----------------------------------------------------------------------------


class CancellationToken:
    """Cooperative stop signal handed to long-running host actions."""

    __slots__ = ("_event", "_reason")

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = reason
            self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; return the cancelled flag."""

        return self._event.wait(timeout)


# -----------------------------------------------------------------------------
# Schemas
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ParameterSchema:
    """Schema for a single action parameter.

    Attributes:
        name: Parameter name as the model must send it.
        type: Declared JSON type.
        description: Human-readable description.
        required: Whether the parameter must be supplied.
        default: Value substituted when an optional parameter is omitted.
        enum: Allowed values.
        minimum: Minimum value for numbers.
        maximum: Maximum value for numbers.
        allow_empty: Whether a required string may be blank.
    """

    name: str
    type: ParameterType = ParameterType.STRING
    description: str = ""
    required: bool = True
    default: Any = None
    enum: tuple[Any, ...] | None = None
    minimum: int | float | None = None
    maximum: int | float | None = None
    allow_empty: bool = False

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format."""
        schema: dict[str, Any] = {"type": self.type.value}
        if self.description:
            schema["description"] = self.description
        if self.default is not None:
            schema["default"] = self.default
        if self.enum:
            schema["enum"] = list(self.enum)
        if self.minimum is not None:
            schema["minimum"] = self.minimum
        if self.maximum is not None:
            schema["maximum"] = self.maximum
        if self.type is ParameterType.STRING and self.required and not self.allow_empty:
            schema["minLength"] = 1
        return schema


@dataclass(slots=True, frozen=True)
class ActionDescriptor:
    """Immutable description of one callable action.

    Descriptors are hashable so they can key the executor mapping built for
    each provider.
    """

    name: str
    description: str
    parameters: tuple[ParameterSchema, ...] = ()
    provider: str = ""

    def parameter(self, name: str) -> ParameterSchema | None:
        for param in self.parameters:
            if param.name == name:
                return param
        return None

    def to_json_schema(self) -> dict[str, Any]:
        """Convert to JSON Schema format for OpenAI function calling."""
        properties: dict[str, Any] = {}
        required: list[str] = []
        for param in self.parameters:
            properties[param.name] = param.to_json_schema()
            if param.required:
                required.append(param.name)
        schema: dict[str, Any] = {
            "type": "object",
            "properties": properties,
            "additionalProperties": False,
        }
        if required:
            schema["required"] = required
        return schema

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.to_json_schema(),
            },
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.to_json_schema(),
            "provider": self.provider,
        }


@dataclass(slots=True, frozen=True)
class ToolSpec:
    """Catalog entry handed to the chat transport.

    Attributes:
        name: Action name.
        parameters: JSON Schema for the action's arguments.
        description: Human-readable description.
    """

    name: str
    parameters: Mapping[str, Any]
    description: str = ""

    @classmethod
    def from_descriptor(cls, descriptor: ActionDescriptor) -> ToolSpec:
        return cls(
            name=descriptor.name,
            parameters=descriptor.to_json_schema(),
            description=descriptor.description,
        )

    def to_openai_tool(self) -> dict[str, Any]:
        """Convert to OpenAI tool definition format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": dict(self.parameters),
            },
        }


@dataclass(slots=True, frozen=True)
class ToolCall:
    """A single tool invocation requested by the model.

    ``arguments`` is kept as sent (usually a JSON object string) and is only
    decoded by the dispatcher.
    """

    name: str
    arguments: Any = "{}"
    call_id: str = ""


# Executors receive already-coerced arguments and the call's cancellation token.
ActionExecutor = Callable[[Mapping[str, Any], CancellationToken], Any]


@dataclass(slots=True, frozen=True)
class ActionSpec:
    """Entry in a provider's explicit action table.

    Example:
        ActionSpec(
            name="searchCommands",
            description="Search for available commands",
            parameters=(ParameterSchema("commandName"),),
            handler=self.search_commands,
            cancellable=True,
        )

    When ``cancellable`` is set the handler is invoked with an extra
    ``cancel_token`` keyword argument.
    """

    name: str
    description: str
    handler: Callable[..., Any]
    parameters: Sequence[ParameterSchema] = field(default_factory=tuple)
    cancellable: bool = False
