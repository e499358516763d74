"""Bootstrap helpers wiring settings, credentials and logging into an assistant."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from openai import OpenAIError

from .ai.assistant import AssistantSession, ToolResultCallback
from .ai.tools.base import CapabilityProvider
from .ai.tools.registry import ToolRegistry
from .ai.transport import ChatTransport, OpenAITransport
from .chat.aggregator import ContextAggregator
from .chat.conversation import ConversationBuilder
from .chat.store import ConversationStore
from .services.settings import CredentialStore, Settings, SettingsStore
from .utils import logging as logging_utils

__all__ = [
    "AssistantDisabledError",
    "AssistantRuntime",
    "bootstrap",
    "build_registry",
    "build_transport",
    "configure_logging",
    "create_runtime",
    "load_settings",
]

_LOGGER = logging.getLogger(__name__)
_MAX_TOOL_ITERATIONS_CAP = 50


class AssistantDisabledError(RuntimeError):
    """Raised when a session is requested but no provider credentials exist."""


def configure_logging(
    debug: bool = False,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    force: bool = False,
) -> Path:
    """Configure application logging; ``debug`` lowers the level to DEBUG."""

    level = logging.DEBUG if debug else logging.INFO
    path = logging_utils.setup_logging(level, log_dir=log_dir, console=console, force=force)
    _LOGGER.debug("Logging configured (level=%s, file=%s)", logging.getLevelName(level), path)
    return path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def build_transport(settings: Settings, credentials: CredentialStore) -> ChatTransport | None:
    """Return a transport for ``settings.provider``, or ``None`` when it has no key.

    The credential store is consulted first; the key saved with the settings
    is the fallback.
    """

    api_key = credentials.get_secret(settings.provider) or settings.api_key
    if not api_key:
        _LOGGER.warning("No API key configured for provider %s; assistant disabled", settings.provider)
        return None
    logging_utils.register_secret(api_key)
    try:
        return OpenAITransport(settings.transport_settings(api_key))
    except OpenAIError as exc:
        _LOGGER.warning("Chat transport unavailable for %s: %s", settings.provider, exc)
        return None


def build_registry(settings: Settings, providers: Iterable[CapabilityProvider] = ()) -> ToolRegistry:
    timeout = settings.tool_timeout if settings.tool_timeout and settings.tool_timeout > 0 else None
    registry = ToolRegistry(timeout=timeout)
    registry.register_all(providers)
    return registry


def _resolve_max_tool_iterations(settings: Settings | None) -> int:
    """Clamp the configured iteration limit into a safe operating range."""

    raw_value = getattr(settings, "max_tool_iterations", 8) if settings else 8
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        value = 8
    return max(1, min(value, _MAX_TOOL_ITERATIONS_CAP))


@dataclass(slots=True)
class AssistantRuntime:
    """Everything a host needs to open assistant sessions."""

    settings: Settings
    registry: ToolRegistry
    store: ConversationStore
    transport: ChatTransport | None
    builder: ConversationBuilder = field(default_factory=ConversationBuilder)

    @property
    def enabled(self) -> bool:
        return self.transport is not None

    def new_session(
        self,
        name: str,
        *,
        aggregator: ContextAggregator | None = None,
        tool_context: str | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> AssistantSession:
        """Open a session on conversation ``name``, creating the conversation if needed.

        Raises:
            AssistantDisabledError: No credentials were found for the provider.
        """
        if self.transport is None:
            raise AssistantDisabledError(f"No API key configured for provider '{self.settings.provider}'")
        conversation = self.store.get(name)
        if conversation is None:
            conversation = self.builder.build(name)
            self.store.add(conversation)
        return AssistantSession(
            conversation,
            aggregator or ContextAggregator(),
            self.registry,
            self.transport,
            max_tool_iterations=_resolve_max_tool_iterations(self.settings),
            tool_context=tool_context,
            on_tool_result=on_tool_result,
        )

    async def aclose(self) -> None:
        """Persist changed conversations and release the worker pool and client."""
        self.store.save_changed()
        self.registry.shutdown()
        close = getattr(self.transport, "aclose", None)
        if close is not None:
            await close()


def create_runtime(
    settings: Settings,
    *,
    credentials: CredentialStore | None = None,
    providers: Iterable[CapabilityProvider] = (),
    transport: ChatTransport | None = None,
    load_conversations: bool = True,
) -> AssistantRuntime:
    """Build the registry, conversation store and transport described by ``settings``.

    ``transport`` overrides the OpenAI transport; otherwise one is built only
    when the credential store (or the settings) holds a key.
    """

    registry = build_registry(settings, providers)
    store = ConversationStore(settings.conversation_dir)
    if load_conversations:
        store.load_all()
    if transport is None:
        transport = build_transport(settings, credentials or CredentialStore())
    builder = ConversationBuilder().with_catalog(registry.catalog())
    _LOGGER.debug(
        "Assistant runtime ready (provider=%s, tools=%d, enabled=%s)",
        settings.provider,
        len(registry),
        transport is not None,
    )
    return AssistantRuntime(settings, registry, store, transport, builder)


def bootstrap(
    settings_path: Optional[Path] = None,
    *,
    overrides: Mapping[str, Any] | None = None,
    credentials: CredentialStore | None = None,
    providers: Iterable[CapabilityProvider] = (),
    log_dir: Path | str | None = None,
    console: bool = True,
) -> AssistantRuntime:
    """Load settings, configure logging from ``debug_logging`` and build the runtime."""

    settings = load_settings(settings_path, overrides=overrides)
    configure_logging(settings.debug_logging, log_dir=log_dir, console=console, force=True)
    return create_runtime(settings, credentials=credentials, providers=providers)
