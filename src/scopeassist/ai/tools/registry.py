"""Tool Registry.

The registry is the union of every registered provider's descriptor to
executor mapping. Reads return immutable snapshots; writers build a new
mapping and install it under a single lock, so observers on other threads
never see a half-registered provider.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from .base import CapabilityProvider
from .dispatcher import DEFAULT_TOOL_TIMEOUT, DispatchListener, DispatchResult, ToolDispatcher
from .errors import DuplicateToolError, ProviderRejectedError, ToolConfigurationError
from .types import ActionDescriptor, ActionExecutor, ToolContext, ToolSpec

__all__ = [
    "CatalogSection",
    "RegistryEntry",
    "ToolRegistry",
]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RegistryEntry:
    """A registered action and the executor bound to it."""

    descriptor: ActionDescriptor
    executor: ActionExecutor
    provider: str


@dataclass(slots=True, frozen=True)
class CatalogSection:
    """Catalog slice contributed by one provider, in registration order."""

    provider: str
    usage: str
    tool_context: str
    descriptors: tuple[ActionDescriptor, ...]

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(descriptor.name for descriptor in self.descriptors)


class ToolRegistry:
    """Registry for capability providers and their actions.

    Example:
        registry = ToolRegistry(timeout=10.0)
        registry.register_all([CommandInteractionProvider(host), ScriptEditorProvider(host)])
        sections = registry.catalog(tool_context=ToolContext.SCRIPT)
        result = await registry.dispatch("searchCommands", {"commandName": "blur"}, call_id="c1")
    """

    def __init__(
        self,
        *,
        timeout: float | None = DEFAULT_TOOL_TIMEOUT,
        max_workers: int = 4,
        listener: DispatchListener | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._entries: Mapping[str, RegistryEntry] = MappingProxyType({})
        self._providers: tuple[CapabilityProvider, ...] = ()
        self._dispatcher = ToolDispatcher(
            self.lookup,
            timeout=timeout,
            max_workers=max_workers,
            listener=listener,
        )

    @property
    def dispatcher(self) -> ToolDispatcher:
        return self._dispatcher

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, provider: CapabilityProvider) -> tuple[ActionDescriptor, ...]:
        """Register every action of ``provider``.

        Registration is all-or-nothing: nothing is installed when any of the
        provider's action names is already taken.

        Returns:
            The descriptors contributed by the provider.

        Raises:
            DuplicateToolError: The provider repeats a name, internally or
                against an already registered provider.
            ProviderRejectedError: The provider's action table is malformed
                or the provider is already registered.
        """
        tools = provider.build_tools()
        with self._lock:
            if any(existing is provider for existing in self._providers):
                raise ProviderRejectedError(provider.name, "provider is already registered")
            clashes = [descriptor.name for descriptor in tools if descriptor.name in self._entries]
            if clashes:
                raise DuplicateToolError(provider.name, clashes)

            entries = dict(self._entries)
            for descriptor, executor in tools.items():
                entries[descriptor.name] = RegistryEntry(descriptor, executor, provider.name)
            self._entries = MappingProxyType(entries)
            self._providers = self._providers + (provider,)

        LOGGER.debug(
            "Registered provider %s with tools: %s",
            provider.name,
            ", ".join(descriptor.name for descriptor in tools),
        )
        return tuple(tools)

    def register_all(self, providers: Iterable[CapabilityProvider]) -> list[CapabilityProvider]:
        """Register ``providers``, excluding those that fail to register.

        Returns:
            The providers that were registered.
        """
        registered: list[CapabilityProvider] = []
        for provider in providers:
            try:
                self.register(provider)
            except ToolConfigurationError as exc:
                LOGGER.error("Tool provider %s rejected: %s", provider.name, exc)
                continue
            registered.append(provider)
        return registered

    def clear(self) -> None:
        """Remove every provider and action."""
        with self._lock:
            self._entries = MappingProxyType({})
            self._providers = ()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, name: str) -> tuple[ActionDescriptor, ActionExecutor] | None:
        entry = self._entries.get(name)
        if entry is None:
            return None
        return entry.descriptor, entry.executor

    def providers(self) -> tuple[CapabilityProvider, ...]:
        return self._providers

    def catalog(self, tool_context: str | None = None) -> tuple[CatalogSection, ...]:
        """Return the catalog grouped by provider.

        Args:
            tool_context: When given, only providers declaring that context or
                ``ToolContext.ANY`` are included.
        """
        providers = self._providers
        sections: list[CatalogSection] = []
        for provider in providers:
            if not _matches_context(provider.tool_context, tool_context):
                continue
            sections.append(
                CatalogSection(
                    provider=provider.name,
                    usage=provider.usage,
                    tool_context=provider.tool_context,
                    descriptors=provider.descriptors(),
                )
            )
        return tuple(sections)

    def descriptors(self, tool_context: str | None = None) -> tuple[ActionDescriptor, ...]:
        return tuple(
            descriptor
            for section in self.catalog(tool_context)
            for descriptor in section.descriptors
        )

    def tool_specs(self, tool_context: str | None = None) -> tuple[ToolSpec, ...]:
        """Return ``(name, parameter schema, description)`` specs for the transport."""
        return tuple(ToolSpec.from_descriptor(descriptor) for descriptor in self.descriptors(tool_context))

    def to_openai_tools(self, tool_context: str | None = None) -> list[dict[str, Any]]:
        return [spec.to_openai_tool() for spec in self.tool_specs(tool_context)]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, name: str, arguments: Any, *, call_id: str = "") -> DispatchResult:
        """Delegate to the dispatcher; see :meth:`ToolDispatcher.dispatch`."""
        return await self._dispatcher.dispatch(name, arguments, call_id=call_id)

    def shutdown(self) -> None:
        self._dispatcher.shutdown()


def _matches_context(provider_context: str, requested: str | None) -> bool:
    if requested is None:
        return True
    return provider_context in (ToolContext.ANY, requested)
