"""Drivers: registered subscribers that receive filtered log entries.

LogSink is the protocol. Code against it.
LogDriver is the stock implementation: an id, a de-duplicated list of
LogFilters, and a handler callable that does the actual work. Behaviour is
supplied by composition (pass a handler) rather than by subclassing.

    driver = LogDriver("audit", [LogFilter.subsystem("app", ["auth"])],
                       handler=as_handler(JsonlSink(path)))
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from logrelay.filters import LogFilter, accepts
from logrelay.models import LogEntry, LogLevel


@runtime_checkable
class LogHandler(Protocol):
    """Callable that consumes one accepted entry's fields."""

    def __call__(
        self,
        level: LogLevel,
        subsystem: str,
        category: str,
        timestamp: datetime,
        message: str,
        components: tuple[Any, ...],
    ) -> None: ...


@runtime_checkable
class LogSink(Protocol):
    """A registered subscriber.

    The engine holds a non-owning reference. The sink's own state (buffers,
    queues, locks) stays with its owner.
    """

    @property
    def id(self) -> str: ...

    @property
    def log_filters(self) -> Sequence[LogFilter]: ...

    def accepts(self, subsystem: str, category: str) -> bool: ...

    def receive(self, entry: LogEntry) -> None: ...


def _noop_handler(
    level: LogLevel,
    subsystem: str,
    category: str,
    timestamp: datetime,
    message: str,
    components: tuple[Any, ...],
) -> None:
    pass


class LogDriver:
    """Default LogSink: id + log filters + handler."""

    def __init__(
        self,
        id: str,
        log_filters: Iterable[LogFilter] = (),
        *,
        handler: LogHandler | None = None,
    ) -> None:
        self._id = id
        self._log_filters: list[LogFilter] = []
        self._handler = handler or _noop_handler
        self.add_log_filters(log_filters)

    @property
    def id(self) -> str:
        return self._id

    @property
    def log_filters(self) -> tuple[LogFilter, ...]:
        return tuple(self._log_filters)

    def add_log_filters(self, filters: Iterable[LogFilter]) -> None:
        """Append filters, skipping any whose identifier is already present."""
        for f in filters:
            if f not in self._log_filters:
                self._log_filters.append(f)

    def remove_log_filters(self, filters: Iterable[LogFilter]) -> None:
        doomed = set(filters)
        self._log_filters = [f for f in self._log_filters if f not in doomed]

    def accepts(self, subsystem: str, category: str) -> bool:
        return accepts(self._log_filters, subsystem, category)

    def receive(self, entry: LogEntry) -> None:
        self._handler(
            entry.level,
            entry.subsystem,
            entry.category,
            entry.timestamp,
            entry.message,
            entry.components,
        )

    # Identity is the id: two drivers with the same id are the same subscriber.

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LogDriver):
            return NotImplemented
        return self._id == other._id

    def __hash__(self) -> int:
        return hash(self._id)

    def __repr__(self) -> str:
        return f"{type(self).__name__}<{self._id}>"
