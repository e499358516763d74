"""Capability providers and the descriptor builder.

A capability provider is a host-facing object that exposes a handful of
actions to the assistant. Each provider lists its actions in an explicit
table (:meth:`CapabilityProvider.actions`); :meth:`CapabilityProvider.build_tools`
turns that table into immutable descriptors bound to executors.

Example:
    class EchoProvider(CapabilityProvider):
        display_name = "Echo"
        usage = "Repeats text back."

        def actions(self):
            return (
                ActionSpec(
                    name="echo",
                    description="Echo text",
                    parameters=(ParameterSchema("text"),),
                    handler=lambda text: text,
                ),
            )
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from types import MappingProxyType
from typing import Any, Callable, Mapping, Sequence

from .errors import DuplicateToolError, ProviderRejectedError
from .types import (
    ActionDescriptor,
    ActionExecutor,
    ActionSpec,
    CancellationToken,
    ToolContext,
)

__all__ = ["CapabilityProvider", "bind_executor"]

LOGGER = logging.getLogger(__name__)


def bind_executor(spec: ActionSpec) -> ActionExecutor:
    """Return an executor that calls ``spec.handler`` with keyword arguments."""

    handler: Callable[..., Any] = spec.handler

    if spec.cancellable:

        def _execute(arguments: Mapping[str, Any], token: CancellationToken) -> Any:
            return handler(**dict(arguments), cancel_token=token)

    else:

        def _execute(arguments: Mapping[str, Any], token: CancellationToken) -> Any:
            return handler(**dict(arguments))

    _execute.__name__ = f"execute_{spec.name}"
    return _execute


class CapabilityProvider(ABC):
    """Base class for objects that contribute assistant actions.

    Subclasses set :attr:`display_name`, :attr:`usage` and optionally
    :attr:`tool_context`, and implement :meth:`actions`.
    """

    display_name: str = ""
    usage: str = ""
    tool_context: str = ToolContext.ANY

    def __init__(self) -> None:
        self._tools_lock = threading.Lock()
        self._tools: Mapping[ActionDescriptor, ActionExecutor] | None = None

    @property
    def name(self) -> str:
        return self.display_name or type(self).__name__

    @abstractmethod
    def actions(self) -> Sequence[ActionSpec]:
        """Return the provider's action table."""

    def build_tools(self) -> Mapping[ActionDescriptor, ActionExecutor]:
        """Return the descriptor to executor mapping, building it on first use.

        Raises:
            DuplicateToolError: Two actions in the table share a name.
            ProviderRejectedError: The action table cannot be read or an action is
                malformed (no name, non-callable handler, unhashable metadata).
        """

        cached = self._tools
        if cached is not None:
            return cached
        with self._tools_lock:
            if self._tools is None:
                self._tools = self._build()
                LOGGER.debug("Built %d tool(s) for provider %s", len(self._tools), self.name)
            return self._tools

    def descriptors(self) -> tuple[ActionDescriptor, ...]:
        return tuple(self.build_tools().keys())

    def _build(self) -> Mapping[ActionDescriptor, ActionExecutor]:
        try:
            specs = tuple(self.actions())
        except Exception as exc:
            raise ProviderRejectedError(self.name, f"action table could not be read: {exc}") from exc
        try:
            return self._describe(specs)
        except (TypeError, AttributeError) as exc:
            raise ProviderRejectedError(self.name, f"malformed action table: {exc}") from exc

    def _describe(self, specs: Sequence[ActionSpec]) -> Mapping[ActionDescriptor, ActionExecutor]:
        counts = Counter(spec.name for spec in specs)
        duplicates = [name for name, count in counts.items() if count > 1]
        if duplicates:
            raise DuplicateToolError(self.name, duplicates)

        built: dict[ActionDescriptor, ActionExecutor] = {}
        for spec in specs:
            if not spec.name or not spec.name.strip():
                raise ProviderRejectedError(self.name, "action without a name")
            if not callable(spec.handler):
                raise ProviderRejectedError(self.name, f"handler for '{spec.name}' is not callable")
            descriptor = ActionDescriptor(
                name=spec.name,
                description=spec.description,
                parameters=tuple(spec.parameters),
                provider=self.name,
            )
            # Descriptors key the mapping, so parameter defaults and enums must be hashable.
            built[descriptor] = bind_executor(spec)
        return MappingProxyType(built)
