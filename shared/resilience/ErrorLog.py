"""Process-wide record of terminal failures.

The log is append-only and bounded: once max_entries is reached the oldest
entry is dropped. It is read by the status endpoint and by tests, never by
control flow.
"""

import threading
from collections import deque
from datetime import datetime, timezone

from pydantic import BaseModel

from shared.resilience.errors import RAGError


class ErrorLogEntry(BaseModel):
    """One terminal failure."""

    code: str
    message: str
    context: str | None = None
    attempts: int = 0
    status_code: int | None = None
    timestamp: datetime


class ErrorLog:
    def __init__(self, max_entries: int = 100) -> None:
        if max_entries < 1:
            raise ValueError("ErrorLog needs room for at least one entry.")
        self._entries: deque[ErrorLogEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen

    def record(self, error: RAGError, context: str | None = None) -> ErrorLogEntry:
        """Append a terminal failure.

        Args:
            error (RAGError): The typed failure.
            context (str | None): Label of the failed operation; defaults to error.context.

        Returns:
            ErrorLogEntry: The stored entry.
        """
        entry = ErrorLogEntry(
            code=error.code,
            message=error.message,
            context=context if context is not None else error.context,
            attempts=error.attempts,
            status_code=error.status_code,
            timestamp=datetime.now(timezone.utc),
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def recent(self, limit: int = 10) -> list[ErrorLogEntry]:
        """Return up to `limit` entries, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            entries = list(self._entries)
        return list(reversed(entries[-limit:]))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# shared by every executor that is not given its own log
error_log = ErrorLog()
