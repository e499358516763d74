"""Conversation history, context items and persistence."""

from .aggregator import AddOutcome, ContextAggregator, render_context
from .context import (
    ContextItem,
    Dimension,
    ImageContextItem,
    MergeNotSupportedError,
    ScriptAddress,
    ScriptContextItem,
)
from .conversation import (
    AssistantMemory,
    Conversation,
    ConversationBuilder,
    ConversationClosedError,
    Memory,
    SystemMemory,
    ToolResultMemory,
    Turn,
    UserMemory,
)
from .serialization import ConversationFormatError
from .store import ConversationStore
from .suppliers import (
    AppStateContextSupplier,
    ContextSupplier,
    ContextSupplierService,
    ImageContextSupplier,
    ImageView,
    ScriptContextSupplier,
    ScriptView,
    SupplierContext,
)

__all__ = [
    "AddOutcome",
    "AppStateContextSupplier",
    "AssistantMemory",
    "ContextAggregator",
    "ContextItem",
    "ContextSupplier",
    "ContextSupplierService",
    "Conversation",
    "ConversationBuilder",
    "ConversationClosedError",
    "ConversationFormatError",
    "ConversationStore",
    "Dimension",
    "ImageContextItem",
    "ImageContextSupplier",
    "ImageView",
    "Memory",
    "MergeNotSupportedError",
    "ScriptAddress",
    "ScriptContextItem",
    "ScriptContextSupplier",
    "ScriptView",
    "SupplierContext",
    "SystemMemory",
    "ToolResultMemory",
    "Turn",
    "UserMemory",
    "render_context",
]
