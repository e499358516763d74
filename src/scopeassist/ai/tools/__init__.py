"""Tool invocation subsystem: providers, registry and dispatcher."""

from .base import CapabilityProvider, bind_executor
from .coercion import coerce_arguments, parse_raw_arguments
from .dispatcher import (
    DEFAULT_TOOL_TIMEOUT,
    DispatchListener,
    DispatchResult,
    ToolDispatcher,
)
from .errors import (
    DuplicateToolError,
    ErrorCode,
    InvalidParameterError,
    MissingParameterError,
    ProviderRejectedError,
    ToolConfigurationError,
    ToolError,
    ToolExecutionFailedError,
    ToolTimeoutError,
    UnknownToolError,
)
from .registry import CatalogSection, RegistryEntry, ToolRegistry
from .types import (
    ActionDescriptor,
    ActionExecutor,
    ActionSpec,
    CancellationToken,
    ParameterSchema,
    ParameterType,
    ToolCall,
    ToolContext,
    ToolSpec,
)

__all__ = [
    "ActionDescriptor",
    "ActionExecutor",
    "ActionSpec",
    "CancellationToken",
    "CapabilityProvider",
    "CatalogSection",
    "DEFAULT_TOOL_TIMEOUT",
    "DispatchListener",
    "DispatchResult",
    "DuplicateToolError",
    "ErrorCode",
    "InvalidParameterError",
    "MissingParameterError",
    "ParameterSchema",
    "ParameterType",
    "ProviderRejectedError",
    "RegistryEntry",
    "ToolCall",
    "ToolConfigurationError",
    "ToolContext",
    "ToolDispatcher",
    "ToolError",
    "ToolExecutionFailedError",
    "ToolRegistry",
    "ToolSpec",
    "ToolTimeoutError",
    "UnknownToolError",
    "bind_executor",
    "coerce_arguments",
    "parse_raw_arguments",
]
