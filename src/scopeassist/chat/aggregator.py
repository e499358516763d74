"""Active context set for the next outgoing request.

:class:`ContextAggregator` folds items into the set: exact duplicates are
rejected, items sharing a merge key are combined, everything else is
appended. Reads return immutable tuples; writes install a new tuple under a
single lock.
"""

from __future__ import annotations

import enum
import logging
import threading
from typing import Callable, Iterable

from .context import ContextItem

__all__ = ["AddOutcome", "ContextAggregator", "ContextListener", "render_context"]

LOGGER = logging.getLogger(__name__)

ContextListener = Callable[[tuple[ContextItem, ...]], None]


class AddOutcome(enum.Enum):
    """Result of :meth:`ContextAggregator.add`."""

    ADDED = "added"
    MERGED = "merged"
    DUPLICATE = "duplicate"


def render_context(items: Iterable[ContextItem]) -> str:
    """Join rendered items into the block sent to the model."""
    return "".join(item.render() for item in items)


class ContextAggregator:
    """Maintains the deduplicated, merged set of active context items."""

    def __init__(self, items: Iterable[ContextItem] = ()) -> None:
        self._lock = threading.Lock()
        self._items: tuple[ContextItem, ...] = ()
        self._listeners: list[ContextListener] = []
        for item in items:
            self.add(item)

    def add(self, item: ContextItem) -> AddOutcome:
        with self._lock:
            current = self._items
            if item in current:
                outcome = AddOutcome.DUPLICATE
            else:
                key = item.merge_key
                index = _index_of_key(current, key) if key is not None else None
                if index is None:
                    self._items = current + (item,)
                    outcome = AddOutcome.ADDED
                else:
                    merged = current[index].merge_with([item])
                    self._items = current[:index] + (merged,) + current[index + 1 :]
                    outcome = AddOutcome.MERGED
            snapshot = self._items
        LOGGER.debug("Context %s %s: %s", item.type, outcome.value, item.label)
        if outcome is not AddOutcome.DUPLICATE:
            self._notify(snapshot)
        return outcome

    def remove(self, item: ContextItem) -> bool:
        """Remove the entry equal to ``item``; return whether one was removed."""
        with self._lock:
            current = self._items
            if item not in current:
                return False
            self._items = tuple(existing for existing in current if existing != item)
            snapshot = self._items
        self._notify(snapshot)
        return True

    def clear(self) -> None:
        with self._lock:
            if not self._items:
                return
            self._items = ()
        self._notify(())

    def snapshot(self) -> tuple[ContextItem, ...]:
        return self._items

    def render(self) -> str:
        return render_context(self._items)

    def add_listener(self, listener: ContextListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ContextListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __contains__(self, item: object) -> bool:
        return item in self._items

    def _notify(self, snapshot: tuple[ContextItem, ...]) -> None:
        for listener in tuple(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                LOGGER.debug("Context listener failed", exc_info=True)


def _index_of_key(items: tuple[ContextItem, ...], key: str) -> int | None:
    for index, existing in enumerate(items):
        if existing.merge_key == key:
            return index
    return None
