"""
realmstats.services.log_buffer — In-Memory Log Tail
====================================================

A thread-safe ring buffer hooked into Python's ``logging``.  Ingestion
runs on worker threads, so admins read what happened to an upload through
``GET /api/admin/logs`` instead of shelling into the host.

Entries carry the formatted exception text when the record has one
(``logger.exception`` in the pipeline), which is what an admin needs to
see why an upload went FAILED.  Nothing is persisted; a restart clears it.
"""

from __future__ import annotations

import logging
import os
import threading
from collections import deque
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_CAPACITY = 2000
VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_buffer: LogBuffer | None = None
_lock = threading.Lock()


class LogEntry:
    """One captured log record."""
    __slots__ = ("timestamp", "level", "logger", "message", "error")

    def __init__(
        self,
        timestamp: str,
        level: str,
        logger: str,
        message: str,
        error: str | None = None,
    ):
        self.timestamp = timestamp
        self.level = level
        self.logger = logger
        self.message = message
        self.error = error

    def to_dict(self) -> dict[str, str | None]:
        data = {
            "timestamp": self.timestamp,
            "level": self.level,
            "logger": self.logger,
            "message": self.message,
        }
        if self.error:
            data["error"] = self.error
        return data


class LogBuffer:
    """Bounded, thread-safe store of :class:`LogEntry` objects."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_entries(
        self,
        tail: int = 200,
        level: str | None = None,
        logger_filter: str | None = None,
    ) -> list[dict]:
        """Most recent *tail* entries at or above *level*, oldest first."""
        min_level = getattr(logging, level.upper(), 0) if level else 0

        with self._lock:
            entries = list(self._entries)

        results = [
            entry.to_dict()
            for entry in entries
            if (not min_level or getattr(logging, entry.level, 0) >= min_level)
            and (not logger_filter or entry.logger.startswith(logger_filter))
        ]
        if tail and len(results) > tail:
            results = results[-tail:]
        return results

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class RingBufferHandler(logging.Handler):
    """Logging handler that appends records to a :class:`LogBuffer`."""

    def __init__(self, buffer: LogBuffer, level: int = logging.DEBUG) -> None:
        super().__init__(level)
        self._buffer = buffer

    def emit(self, record: logging.LogRecord) -> None:
        try:
            error = None
            if record.exc_info:
                error = logging.Formatter().formatException(record.exc_info)
            self._buffer.append(LogEntry(
                timestamp=datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
                level=record.levelname,
                logger=record.name,
                message=record.getMessage(),
                error=error,
            ))
        except Exception:
            self.handleError(record)


# ---------------------------------------------------------------------------
# Process-wide access
# ---------------------------------------------------------------------------
def get_buffer() -> LogBuffer:
    global _buffer
    if _buffer is None:
        with _lock:
            if _buffer is None:
                _buffer = LogBuffer()
    return _buffer


def _level_from_env() -> int:
    name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, name) if name in VALID_LEVELS else logging.INFO


def install_handler(level: int | None = None) -> RingBufferHandler:
    """Attach the buffer handler to the root logger (once).

    Uvicorn's loggers are forced to propagate so their records reach it.
    """
    level = _level_from_env() if level is None else level
    root = logging.getLogger()
    for existing in root.handlers:
        if isinstance(existing, RingBufferHandler):
            existing.setLevel(level)
            return existing

    handler = RingBufferHandler(get_buffer(), level=level)
    root.addHandler(handler)
    if root.level > level or root.level == logging.NOTSET:
        root.setLevel(level)

    for logger_name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        log = logging.getLogger(logger_name)
        log.propagate = True
        log.setLevel(logging.INFO)

    return handler


def get_logs(
    tail: int = 200,
    level: str | None = None,
    logger_filter: str | None = None,
) -> list[dict]:
    return get_buffer().get_entries(tail=tail, level=level, logger_filter=logger_filter)


def get_current_level() -> str:
    """Minimum level currently captured to the buffer."""
    root = logging.getLogger()
    for h in root.handlers:
        if isinstance(h, RingBufferHandler):
            return logging.getLevelName(h.level)
    return logging.getLevelName(root.level)


def set_capture_level(level_name: str) -> str:
    """Change the buffer handler's level on the fly; returns the new level."""
    level_name = level_name.upper()
    if level_name not in VALID_LEVELS:
        raise ValueError(f"Invalid level: {level_name}. Must be one of {VALID_LEVELS}")

    numeric = getattr(logging, level_name)
    handler = install_handler(level=numeric)
    root = logging.getLogger()
    if root.level > numeric:
        root.setLevel(numeric)
    return logging.getLevelName(handler.level)
