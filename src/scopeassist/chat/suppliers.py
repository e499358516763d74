"""Context suppliers: turn host state into context items.

Suppliers never reach for global editor lists. The host builds a
:class:`SupplierContext` describing what is open right now and passes it to
each call.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from ..core.ranges import LineRange
from ..core.script_text import add_line_numbers
from .aggregator import AddOutcome, ContextAggregator
from .context import ContextItem, Dimension, ImageContextItem, ScriptAddress, ScriptContextItem

__all__ = [
    "AppStateContextSupplier",
    "ContextSupplier",
    "ContextSupplierService",
    "ImageContextSupplier",
    "ImageView",
    "ScriptContextSupplier",
    "ScriptView",
    "SupplierContext",
]

LOGGER = logging.getLogger(__name__)

_LEADING_ASTERISKS_RE = re.compile(r"^\*+")


# -----------------------------------------------------------------------------
# Host snapshot
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ScriptView:
    """One open script editor tab as seen by the host."""

    editor_index: int
    tab_index: int
    title: str
    text: str
    error_output: str = ""
    selection: LineRange | None = None
    visible: bool = True

    @property
    def address(self) -> ScriptAddress:
        return ScriptAddress(self.editor_index, self.tab_index)


@dataclass(slots=True, frozen=True)
class ImageView:
    """Metadata of one open image."""

    name: str
    dimensions: tuple[Dimension, ...] = ()
    pixel_type: str = ""


@dataclass(slots=True, frozen=True)
class SupplierContext:
    """Host state handed to suppliers on every call.

    Attributes:
        scripts: Open script tabs, oldest editor first.
        active_script: Address of the focused tab, if any.
        images: Open images.
        active_image: Name of the focused image, if any.
        app_state: Free-form application facts (version, platform...).
        open_editor: Host hook that opens a script editor and returns its
            active tab; used when no editor is visible.
    """

    scripts: tuple[ScriptView, ...] = ()
    active_script: ScriptAddress | None = None
    images: tuple[ImageView, ...] = ()
    active_image: str | None = None
    app_state: Mapping[str, Any] = field(default_factory=dict)
    open_editor: Callable[[], ScriptView | None] | None = None


# -----------------------------------------------------------------------------
# Suppliers
# -----------------------------------------------------------------------------


class ContextSupplier(ABC):
    """Produces context items of one kind."""

    display_name: str = ""

    @abstractmethod
    def list_available(self, ctx: SupplierContext) -> frozenset[ContextItem]:
        """Return every item the supplier could add. Must not have side effects."""

    @abstractmethod
    def create_active_context_item(self, ctx: SupplierContext) -> ContextItem | None:
        """Return the item for the focused object, or ``None``."""


class ScriptContextSupplier(ContextSupplier):
    """Supplies open scripts with numbered lines, selection and error output."""

    display_name = "Script"

    def list_available(self, ctx: SupplierContext) -> frozenset[ContextItem]:
        return frozenset(self._build_item(view) for view in ctx.scripts)

    def create_active_context_item(self, ctx: SupplierContext) -> ContextItem | None:
        view = self._active_view(ctx)
        if view is None and ctx.open_editor is not None:
            LOGGER.debug("No visible script editor; asking the host to open one")
            view = ctx.open_editor()
        if view is None:
            return None
        return self._build_item(view)

    def _active_view(self, ctx: SupplierContext) -> ScriptView | None:
        visible = [view for view in ctx.scripts if view.visible]
        if not visible:
            return None
        if ctx.active_script is not None:
            for view in visible:
                if view.address == ctx.active_script:
                    return view
        # Newest editor wins; its first tab is the fallback.
        newest = max(view.editor_index for view in visible)
        tabs = sorted((view for view in visible if view.editor_index == newest), key=lambda v: v.tab_index)
        return tabs[0]

    def _build_item(self, view: ScriptView) -> ScriptContextItem:
        return ScriptContextItem(
            _LEADING_ASTERISKS_RE.sub("", view.title),
            add_line_numbers(view.text),
            view.address,
            error_output=view.error_output.strip(),
            selected_ranges=(view.selection,) if view.selection is not None else (),
            source=self.display_name,
        )


class ImageContextSupplier(ContextSupplier):
    """Supplies image name, dimensions and pixel type."""

    display_name = "Image"

    def list_available(self, ctx: SupplierContext) -> frozenset[ContextItem]:
        return frozenset(self._build_item(view) for view in ctx.images if view.name)

    def create_active_context_item(self, ctx: SupplierContext) -> ContextItem | None:
        if not ctx.active_image:
            return None
        for view in ctx.images:
            if view.name == ctx.active_image:
                return self._build_item(view)
        return None

    def _build_item(self, view: ImageView) -> ImageContextItem:
        return ImageContextItem(view.name, view.dimensions, view.pixel_type, source=self.display_name)


class AppStateContextSupplier(ContextSupplier):
    """Supplies the host's application facts as a single JSON item."""

    display_name = "Environment"

    def list_available(self, ctx: SupplierContext) -> frozenset[ContextItem]:
        item = self.create_active_context_item(ctx)
        return frozenset((item,)) if item is not None else frozenset()

    def create_active_context_item(self, ctx: SupplierContext) -> ContextItem | None:
        if not ctx.app_state:
            return None
        content = json.dumps(dict(ctx.app_state), indent=2, sort_keys=True, default=str)
        return ContextItem("Environment", "Application", content, source=self.display_name)


# -----------------------------------------------------------------------------
# Service
# -----------------------------------------------------------------------------


class ContextSupplierService:
    """Fans calls out to every supplier, containing supplier failures."""

    def __init__(self, suppliers: Iterable[ContextSupplier] = ()) -> None:
        self._suppliers: dict[str, ContextSupplier] = {}
        for supplier in suppliers:
            self.register(supplier)

    @classmethod
    def with_defaults(cls) -> ContextSupplierService:
        return cls((ScriptContextSupplier(), ImageContextSupplier(), AppStateContextSupplier()))

    def register(self, supplier: ContextSupplier) -> None:
        name = supplier.display_name or type(supplier).__name__
        if name in self._suppliers:
            LOGGER.warning("Replacing context supplier %s", name)
        self._suppliers[name] = supplier

    def names(self) -> list[str]:
        return list(self._suppliers)

    def get(self, name: str) -> ContextSupplier | None:
        return self._suppliers.get(name)

    def list_available(self, ctx: SupplierContext) -> dict[str, frozenset[ContextItem]]:
        """Return available items per supplier; failing suppliers are skipped."""
        available: dict[str, frozenset[ContextItem]] = {}
        for name, supplier in self._suppliers.items():
            try:
                available[name] = supplier.list_available(ctx)
            except Exception:
                LOGGER.warning("Context supplier %s failed to list items", name, exc_info=True)
        return available

    def create_active(self, name: str, ctx: SupplierContext) -> ContextItem | None:
        supplier = self._suppliers.get(name)
        if supplier is None:
            LOGGER.debug("Unknown context supplier %s", name)
            return None
        try:
            return supplier.create_active_context_item(ctx)
        except Exception:
            LOGGER.warning("Context supplier %s failed to create an item", name, exc_info=True)
            return None

    def add_active(self, name: str, ctx: SupplierContext, aggregator: ContextAggregator) -> AddOutcome | None:
        """Create the active item of supplier ``name`` and fold it into ``aggregator``."""
        item = self.create_active(name, ctx)
        if item is None:
            return None
        return aggregator.add(item)
