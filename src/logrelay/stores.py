"""Log stores: where the engine reads entries from.

LogStore is the protocol. Code against it.
In-process:  ProcessLogStore (a logging.Handler capturing this process's records)
File-backed: JsonlLogStore (a JSONL file written by another process)
Testing:     MemoryLogStore (entries appended by hand)

query(after) returns entries strictly newer than `after` (all entries when
`after` is None), in the store's own order. The engine sorts.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from collections import deque
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

from logrelay.errors import StoreQueryError, StoreUnavailableError
from logrelay.models import LogEntry, LogLevel
from logrelay.observability.logging import get_logger

logger = get_logger(__name__)


@runtime_checkable
class LogStore(Protocol):
    """Read side of a log store."""

    async def query(self, after: datetime | None) -> Sequence[LogEntry]: ...


def _newer_than(entries: Iterable[LogEntry], after: datetime | None) -> list[LogEntry]:
    if after is None:
        return list(entries)
    if after.tzinfo is None:
        after = after.replace(tzinfo=UTC)
    return [e for e in entries if e.timestamp > after]


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class MemoryLogStore:
    """Entries held in a list. Append from tests or from your own producer."""

    def __init__(self, entries: Iterable[LogEntry] = ()) -> None:
        self._entries: list[LogEntry] = list(entries)
        self._lock = threading.Lock()
        self.query_count = 0

    def append(self, entry: LogEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def extend(self, entries: Iterable[LogEntry]) -> None:
        with self._lock:
            self._entries.extend(entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def query(self, after: datetime | None) -> list[LogEntry]:
        with self._lock:
            self.query_count += 1
            snapshot = list(self._entries)
        return _newer_than(snapshot, after)


# ---------------------------------------------------------------------------
# Process store
# ---------------------------------------------------------------------------


class ProcessLogStore(logging.Handler):
    """Captures this process's stdlib log records as LogEntry values.

    Mapping from a LogRecord:
        subsystem  — first dotted segment of the logger name ("app" for "app.net.http")
        category   — the remainder ("net.http"), or record.category when set via extra=
        level      — LogLevel.from_logging(levelno)
        components — record.components when set via extra=, else ()

    Records from loggers under any of `exclude` (default: logrelay's own) are
    dropped so relayed output never feeds back into the store. The buffer
    keeps the newest `capacity` entries.
    """

    def __init__(
        self,
        capacity: int = 10_000,
        *,
        exclude: Iterable[str] = ("logrelay",),
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level=level)
        self._entries: deque[LogEntry] = deque(maxlen=max(int(capacity), 1))
        self._buffer_lock = threading.Lock()
        self._exclude = tuple(exclude)
        self._attached_to: logging.Logger | None = None

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def _excluded(self, name: str) -> bool:
        return any(name == p or name.startswith(p + ".") for p in self._exclude)

    @staticmethod
    def to_entry(record: logging.LogRecord) -> LogEntry:
        subsystem, _, category = record.name.partition(".")
        category = getattr(record, "category", None) or category
        components = getattr(record, "components", ())
        if not isinstance(components, (tuple, list)):
            components = (components,)
        return LogEntry(
            timestamp=datetime.fromtimestamp(record.created, UTC),
            subsystem=subsystem,
            category=str(category),
            level=LogLevel.from_logging(record.levelno),
            message=record.getMessage(),
            components=tuple(components),
        )

    def emit(self, record: logging.LogRecord) -> None:
        if self._excluded(record.name):
            return
        try:
            entry = self.to_entry(record)
        except Exception:
            self.handleError(record)
            return
        with self._buffer_lock:
            self._entries.append(entry)

    def install(self, target: logging.Logger | None = None) -> ProcessLogStore:
        """Attach to `target` (root logger by default). Idempotent."""
        target = target or logging.getLogger()
        if self._attached_to is target:
            return self
        if self._attached_to is not None:
            self._attached_to.removeHandler(self)
        target.addHandler(self)
        self._attached_to = target
        return self

    def close(self) -> None:
        if self._attached_to is not None:
            self._attached_to.removeHandler(self)
            self._attached_to = None
        super().close()

    def __len__(self) -> int:
        return len(self._entries)

    async def query(self, after: datetime | None) -> list[LogEntry]:
        with self._buffer_lock:
            snapshot = list(self._entries)
        return _newer_than(snapshot, after)


# ---------------------------------------------------------------------------
# JSONL file store
# ---------------------------------------------------------------------------


class JsonlLogStore:
    """Reads LogEntry dicts, one per line, from a JSONL file.

    The file must exist when the store is opened; that is the point at
    which an unavailable store is reported. Lines that do not parse are
    skipped with a warning.
    """

    def __init__(self, path: str | Path | None) -> None:
        if path is None:
            raise StoreUnavailableError(
                "no log store path configured",
                "Set log_store_path (LOGRELAY_LOG_STORE_PATH) to a JSONL file.",
            )
        self._path = Path(path).expanduser()
        if not self._path.is_file():
            raise StoreUnavailableError(
                f"{self._path} does not exist or is not a file",
                "Create the file or point log_store_path at an existing JSONL log.",
            )
        try:
            with open(self._path, encoding="utf-8"):
                pass
        except OSError as err:
            raise StoreUnavailableError(
                f"{self._path} is not readable: {err}",
                "Check file permissions.",
            ) from err

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> list[LogEntry]:
        entries: list[LogEntry] = []
        with open(self._path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(LogEntry.from_dict(json.loads(line)))
                except (ValueError, KeyError, TypeError, AttributeError) as err:
                    logger.warning(
                        "store.jsonl.bad_line",
                        path=str(self._path),
                        line=lineno,
                        error=str(err),
                    )
        return entries

    async def query(self, after: datetime | None) -> list[LogEntry]:
        try:
            entries = await asyncio.to_thread(self._read)
        except OSError as err:
            raise StoreQueryError(
                f"unable to read {self._path}: {err}",
                "The store will be queried again on the next poll.",
            ) from err
        return _newer_than(entries, after)
