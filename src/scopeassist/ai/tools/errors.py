"""Standardized error types for assistant tools.

Two families live here:

* :class:`ToolError` and its subclasses describe *dispatch* failures. They are
  never allowed to escape the dispatcher; instead they are serialized with
  :meth:`ToolError.to_dict` and handed back to the model as content.
* :class:`ToolConfigurationError` and its subclasses describe broken
  providers (duplicate action names, malformed action tables). They are
  raised at registration time and are meant to fail loudly.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, ClassVar, Sequence

_MAX_MESSAGE_LENGTH = 300
_WHITESPACE_RE = re.compile(r"\s+")


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes used in tool responses."""

    UNKNOWN_TOOL = "unknown_tool"
    INVALID_PARAMETER = "invalid_parameter"
    MISSING_PARAMETER = "missing_parameter"
    EXECUTION_FAILED = "execution_failed"
    TIMEOUT = "timeout"
    OPERATION_CANCELLED = "operation_cancelled"
    INTERNAL_ERROR = "internal_error"


def sanitize_message(message: Any, *, limit: int = _MAX_MESSAGE_LENGTH) -> str:
    """Collapse ``message`` to a single bounded line suitable for the model."""

    text = _WHITESPACE_RE.sub(" ", str(message or "")).strip()
    if not text:
        return "unspecified error"
    if len(text) > limit:
        text = text[: max(0, limit - 3)].rstrip() + "..."
    return text


# -----------------------------------------------------------------------------
# Dispatch Errors
# -----------------------------------------------------------------------------

@dataclass
class ToolError(Exception):
    """Base exception class for all tool dispatch errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
        suggestion: Actionable guidance for recovery.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = ""

    severity: ClassVar[str] = "error"

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON tool responses."""
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        if self.suggestion:
            result["suggestion"] = self.suggestion
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class UnknownToolError(ToolError):
    """Error returned when the model asks for an action nobody registered."""

    error_code: str = field(default=ErrorCode.UNKNOWN_TOOL)
    message: str = field(default="Requested tool is not available")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Only call tools listed in the Available Tools section")

    tool_name: str = field(default="")

    def __post_init__(self) -> None:
        if self.tool_name and self.message == "Requested tool is not available":
            self.message = f"Tool '{self.tool_name}' is not available"
        super().__post_init__()

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["tool"] = self.tool_name
        return result


@dataclass
class InvalidParameterError(ToolError):
    """Error raised when an argument cannot be coerced to its declared type."""

    error_code: str = field(default=ErrorCode.INVALID_PARAMETER)
    message: str = field(default="Invalid argument")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Check the parameter types in the tool schema and retry")

    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter is not None:
            result["parameter"] = self.parameter
        return result


@dataclass
class MissingParameterError(ToolError):
    """Error raised when a required argument is absent or empty."""

    error_code: str = field(default=ErrorCode.MISSING_PARAMETER)
    message: str = field(default="Required argument is missing")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Provide a non-empty value for every required parameter")

    parameter: str | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.parameter is not None:
            result["parameter"] = self.parameter
        return result


@dataclass
class ToolTimeoutError(ToolError):
    """Error returned when a host action does not finish within its time box."""

    error_code: str = field(default=ErrorCode.TIMEOUT)
    message: str = field(default="Tool execution timed out")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="Retry with a narrower request or ask the user to run it")

    timeout: float | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.timeout is not None:
            result["timeout_seconds"] = self.timeout
        return result


@dataclass
class ToolExecutionFailedError(ToolError):
    """Error wrapping an exception raised inside a host action."""

    error_code: str = field(default=ErrorCode.EXECUTION_FAILED)
    message: str = field(default="Tool execution failed")
    details: dict[str, Any] = field(default_factory=dict)
    suggestion: str = field(default="")

    @classmethod
    def from_exception(cls, exc: BaseException) -> ToolExecutionFailedError:
        return cls(
            message=sanitize_message(exc),
            details={"type": type(exc).__name__},
        )


# -----------------------------------------------------------------------------
# Configuration Errors
# -----------------------------------------------------------------------------

class ToolConfigurationError(Exception):
    """Raised when a capability provider cannot be turned into tools."""


class ProviderRejectedError(ToolConfigurationError):
    """Raised when a provider's action table is malformed."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Provider '{provider}' rejected: {reason}")


class DuplicateToolError(ProviderRejectedError):
    """Raised when a provider introduces an action name that already exists."""

    def __init__(self, provider: str, names: Sequence[str]) -> None:
        self.names = tuple(names)
        joined = ", ".join(sorted(self.names))
        super().__init__(provider, f"duplicate tool name(s): {joined}")


__all__ = [
    "DuplicateToolError",
    "ErrorCode",
    "InvalidParameterError",
    "MissingParameterError",
    "ProviderRejectedError",
    "ToolConfigurationError",
    "ToolError",
    "ToolExecutionFailedError",
    "ToolTimeoutError",
    "UnknownToolError",
    "sanitize_message",
]
