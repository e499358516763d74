"""Directory-backed conversation persistence."""

from __future__ import annotations

import logging
import os
import re
import threading
from pathlib import Path

from .conversation import Conversation
from .serialization import ConversationFormatError, dumps, loads

__all__ = ["ConversationStore", "default_conversation_dir", "sanitize_file_name"]

LOGGER = logging.getLogger(__name__)

_UNSAFE_CHARS_RE = re.compile(r"[^a-zA-Z0-9_-]")
_SUFFIX = ".json"


def default_conversation_dir() -> Path:
    return Path.home() / ".scopeassist" / "conversations"


def sanitize_file_name(name: str) -> str:
    """Replace every character outside ``[a-zA-Z0-9_-]`` with ``_``."""
    return _UNSAFE_CHARS_RE.sub("_", name)


class ConversationStore:
    """Keeps conversations in memory and mirrors them as JSON files.

    Conversations are listed in insertion order; :meth:`load_all` inserts
    them newest file first. :meth:`save_changed` only writes conversations
    whose turn count differs from what was last loaded or saved.
    """

    def __init__(self, directory: Path | str | None = None) -> None:
        self._directory = Path(directory).expanduser() if directory else default_conversation_dir()
        self._lock = threading.RLock()
        self._conversations: dict[str, Conversation] = {}
        self._saved_lengths: dict[str, int] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        return self._directory / (sanitize_file_name(name) + _SUFFIX)

    # ------------------------------------------------------------------
    # In-memory registry
    # ------------------------------------------------------------------

    def names(self) -> list[str]:
        with self._lock:
            return list(self._conversations)

    def get(self, name: str) -> Conversation | None:
        with self._lock:
            return self._conversations.get(name)

    def create(self, name: str, system_message: str) -> Conversation:
        conversation = Conversation(name, system_message)
        self.add(conversation)
        return conversation

    def add(self, conversation: Conversation) -> None:
        """Track ``conversation``, replacing any conversation with the same name."""
        with self._lock:
            self._conversations[conversation.name] = conversation

    def remove(self, name: str) -> bool:
        with self._lock:
            removed = self._conversations.pop(name, None)
            self._saved_lengths.pop(name, None)
        return removed is not None

    def delete(self, name: str) -> bool:
        """Forget ``name`` and remove its file; return whether it was tracked."""
        if not self.remove(name):
            return False
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("Unable to delete conversation file %s: %s", path, exc)
        return True

    # ------------------------------------------------------------------
    # Disk
    # ------------------------------------------------------------------

    def load_all(self) -> list[Conversation]:
        """Load every ``*.json`` file, most recently modified first.

        Files that cannot be read or parsed are logged and skipped.
        """

        if not self._directory.is_dir():
            return []
        files = sorted(
            self._directory.glob("*" + _SUFFIX),
            key=lambda path: path.stat().st_mtime,
            reverse=True,
        )
        loaded: list[Conversation] = []
        for path in files:
            try:
                conversation = loads(path.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, ConversationFormatError) as exc:
                LOGGER.warning("Failed to load conversation from %s: %s", path.name, exc)
                continue
            except Exception:
                LOGGER.exception("Unexpected error loading conversation from %s", path.name)
                continue
            with self._lock:
                self._conversations.setdefault(conversation.name, conversation)
                self._saved_lengths[conversation.name] = len(conversation)
            loaded.append(conversation)
        LOGGER.debug("Loaded %d conversation(s) from %s", len(loaded), self._directory)
        return loaded

    def save(self, conversation: Conversation) -> Path:
        path = self.path_for(conversation.name)
        body = dumps(conversation)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        os.replace(tmp_path, path)
        with self._lock:
            self._saved_lengths[conversation.name] = len(conversation)
        return path

    def save_changed(self) -> list[str]:
        """Write new or grown conversations; return the names written."""
        with self._lock:
            pending = [
                conversation
                for name, conversation in self._conversations.items()
                if self._saved_lengths.get(name, -1) != len(conversation)
            ]
        saved: list[str] = []
        for conversation in pending:
            try:
                self.save(conversation)
            except OSError as exc:
                LOGGER.warning("Failed to save conversation %s: %s", conversation.name, exc)
                continue
            saved.append(conversation.name)
        return saved
