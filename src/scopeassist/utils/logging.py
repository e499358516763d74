"""Logging setup for applications embedding the assistant.

:func:`setup_logging` installs a rotating log file under
``~/.scopeassist/logs`` (``SCOPEASSIST_LOG_DIR`` overrides it) and an
optional console handler. Both handlers share a :class:`SecretRedactionFilter`
so API keys never reach the log, whether they appear in request dumps, in
third-party debug output or in exception messages.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import re
import threading
from pathlib import Path

__all__ = ["SecretRedactionFilter", "get_log_path", "register_secret", "setup_logging"]

LOG_DIR_ENV = "SCOPEASSIST_LOG_DIR"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
REDACTED = "[redacted]"

_LOG_FILE_NAME = "scopeassist.log"
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_KEY_PATTERNS = (
    re.compile(r"\bsk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9._\-]{8,}"),
)
_MIN_SECRET_LENGTH = 6

_log_path: Path | None = None


class SecretRedactionFilter(logging.Filter):
    """Masks API keys in formatted log messages.

    Values passed to :meth:`add` are masked verbatim; strings that look like
    OpenAI keys or bearer tokens are masked even when unregistered.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: frozenset[str] = frozenset()
        self._lock = threading.Lock()

    def add(self, secret: str | None) -> None:
        value = (secret or "").strip()
        if len(value) < _MIN_SECRET_LENGTH:
            return
        with self._lock:
            self._secrets = self._secrets | {value}

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        text = _KEY_PATTERNS[0].sub(REDACTED, text)
        return _KEY_PATTERNS[1].sub(lambda match: match.group(1) + REDACTED, text)

    def filter(self, record: logging.LogRecord) -> bool:
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            return True
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        if record.exc_info and record.exc_info[1] is not None and not record.exc_text:
            record.exc_text = self.redact(logging.Formatter().formatException(record.exc_info))
        return True


_REDACTION_FILTER = SecretRedactionFilter()


def register_secret(secret: str | None) -> None:
    """Mask ``secret`` in every record handled by the scopeassist handlers."""

    _REDACTION_FILTER.add(secret)


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Route root logging to a rotating file and, optionally, the console.

    Returns the log file path. Repeated calls keep the first configuration
    unless ``force`` is set.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or Path.home() / ".scopeassist" / "logs").expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / _LOG_FILE_NAME

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    ]
    if console:
        handlers.append(logging.StreamHandler())
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(_REDACTION_FILTER)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    # Request dumps at DEBUG come from our own transport; keep library chatter at WARNING.
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _log_path = path
    return path


def get_log_path() -> Path | None:
    return _log_path
