"""Context items attached to outgoing assistant requests.

A context item is a discrete piece of application state (an open script, an
image's metadata) rendered into text for the model. Items compare equal when
their ``(type, label, content)`` triples match; bookkeeping such as the
creation time or supplier name never takes part in equality.

Items that describe the same underlying object report a shared
:attr:`ContextItem.merge_key` and can be folded together with
:meth:`ContextItem.merge_with`.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ..core.ranges import LineRange, merge_line_ranges

__all__ = [
    "ContextItem",
    "Dimension",
    "ImageContextItem",
    "MergeNotSupportedError",
    "ScriptAddress",
    "ScriptContextItem",
]


class MergeNotSupportedError(NotImplementedError):
    """Raised when ``merge_with`` is called on an item that cannot merge."""


class ContextItem:
    """Immutable piece of context with structural equality."""

    __slots__ = ("_type", "_label", "_content", "_source", "_created_at")

    def __init__(
        self,
        type: str,
        label: str,
        content: str,
        *,
        source: str = "",
        created_at: float | None = None,
    ) -> None:
        self._type = str(type)
        self._label = str(label)
        self._content = "" if content is None else str(content)
        self._source = source
        self._created_at = time.time() if created_at is None else created_at

    @property
    def type(self) -> str:
        return self._type

    @property
    def label(self) -> str:
        return self._label

    @property
    def content(self) -> str:
        return self._content

    @property
    def source(self) -> str:
        """Name of the supplier that produced the item, if any."""
        return self._source

    @property
    def created_at(self) -> float:
        return self._created_at

    @property
    def merge_key(self) -> str | None:
        """Identity shared by items describing the same object, or ``None``."""
        return None

    def merge_with(self, others: Sequence[ContextItem]) -> ContextItem:
        raise MergeNotSupportedError(f"Merging not supported for {type(self).__name__}")

    def render(self) -> str:
        """Return the block inserted into the outgoing request."""
        return f"\n--- {self._type}: {self._label} ---\n{self._content}\n"

    def identity(self) -> tuple[str, str, str]:
        return (self._type, self._label, self._content)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ContextItem):
            return NotImplemented
        return self.identity() == other.identity()

    def __hash__(self) -> int:
        return hash(self.identity())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self._type!r}, label={self._label!r})"


# -----------------------------------------------------------------------------
# Scripts
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ScriptAddress:
    """Location of a script as ``editor index : tab index``."""

    editor_index: int = -1
    tab_index: int = -1

    UNSET = -1

    @property
    def is_set(self) -> bool:
        return self.editor_index != self.UNSET and self.tab_index != self.UNSET

    def __str__(self) -> str:
        return f"{self.editor_index}:{self.tab_index}"

    @classmethod
    def parse(cls, value: str) -> ScriptAddress:
        """Parse the ``"0:1"`` notation used in tool arguments.

        Raises:
            ValueError: ``value`` is not two integers separated by a colon.
        """

        head, sep, tail = str(value).strip().partition(":")
        if not sep:
            raise ValueError(f"Script id must look like 'editor:tab', got {value!r}")
        try:
            return cls(int(head), int(tail))
        except ValueError:
            raise ValueError(f"Script id must look like 'editor:tab', got {value!r}") from None


class ScriptContextItem(ContextItem):
    """Excerpt of an open script, optionally with selected lines and errors.

    The rendered content is a small JSON object; the selection ranges and
    the error output are part of it, so two views of the same script that
    differ only in selection are distinct items sharing a merge key.
    """

    __slots__ = ("_name", "_body", "_address", "_error_output", "_selected_ranges")

    TYPE = "Script"

    def __init__(
        self,
        name: str,
        body: str,
        address: ScriptAddress | None = None,
        *,
        error_output: str = "",
        selected_ranges: Iterable[Any] = (),
        source: str = "",
        created_at: float | None = None,
    ) -> None:
        self._name = str(name)
        self._body = body or ""
        self._address = address or ScriptAddress()
        self._error_output = error_output or ""
        self._selected_ranges = tuple(LineRange.from_value(span) for span in selected_ranges)
        super().__init__(
            self.TYPE,
            self._name,
            self._canonical_content(),
            source=source,
            created_at=created_at,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def body(self) -> str:
        return self._body

    @property
    def address(self) -> ScriptAddress:
        return self._address

    @property
    def error_output(self) -> str:
        return self._error_output

    @property
    def selected_ranges(self) -> tuple[LineRange, ...]:
        return self._selected_ranges

    @property
    def selected_lines(self) -> list[str]:
        """Return the selection in ``"start-end"`` notation."""
        return [span.label for span in self._selected_ranges]

    @property
    def has_selection(self) -> bool:
        return bool(self._selected_ranges)

    @property
    def merge_key(self) -> str:
        return f"script:{self._address}"

    def merge_with(self, others: Sequence[ContextItem]) -> ScriptContextItem:
        """Combine this item with ``others`` that share its merge key.

        Selection ranges are unioned into the minimal sorted set of disjoint
        spans. The body and name of the most recent view win, as does the
        last non-empty error output. Items with another merge key are ignored.
        """

        key = self.merge_key
        views: list[ScriptContextItem] = [self]
        for item in others:
            if isinstance(item, ScriptContextItem) and item.merge_key == key:
                views.append(item)

        spans: list[LineRange] = []
        error_output = ""
        for view in views:
            spans.extend(view.selected_ranges)
            if view.error_output:
                error_output = view.error_output

        latest = views[-1]
        return ScriptContextItem(
            latest.name,
            latest.body,
            self._address,
            error_output=error_output,
            selected_ranges=merge_line_ranges(spans),
            source=latest.source or self.source,
        )

    def _canonical_content(self) -> str:
        payload: dict[str, Any] = {
            "type": self.TYPE,
            "name": self._name,
            "address": str(self._address),
        }
        if self._selected_ranges:
            payload["selectedLines"] = self.selected_lines
        payload["content"] = self._body
        if self._error_output:
            payload["errors"] = self._error_output
        return json.dumps(payload, indent=2, ensure_ascii=False)


# -----------------------------------------------------------------------------
# Images
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Dimension:
    """One axis of an image: its type (``X``, ``Channel``...) and length."""

    type: str
    length: int

    def __str__(self) -> str:
        return f"{self.length} ({self.type})"


class ImageContextItem(ContextItem):
    """Metadata of an open image."""

    __slots__ = ("_dimensions", "_pixel_type")

    TYPE = "Image"

    def __init__(
        self,
        name: str,
        dimensions: Iterable[Dimension] = (),
        pixel_type: str = "",
        *,
        source: str = "",
        created_at: float | None = None,
    ) -> None:
        self._dimensions = tuple(dimensions)
        self._pixel_type = pixel_type or ""
        lines = [f"Image: {name}"]
        if self._dimensions:
            lines.append("Dimensions: " + " × ".join(str(dim) for dim in self._dimensions))
        if self._pixel_type:
            lines.append(f"Pixel Type: {self._pixel_type}")
        super().__init__(self.TYPE, name, "\n".join(lines), source=source, created_at=created_at)

    @property
    def dimensions(self) -> tuple[Dimension, ...]:
        return self._dimensions

    @property
    def pixel_type(self) -> str:
        return self._pixel_type
