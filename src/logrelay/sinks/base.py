"""RecordSink protocol and the bridge from sinks to driver handlers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from logrelay.drivers import LogHandler
from logrelay.models import LogLevel


@runtime_checkable
class RecordSink(Protocol):
    """Where structured record dicts get written."""

    def write(self, record: dict) -> None: ...


def entry_record(
    level: LogLevel,
    subsystem: str,
    category: str,
    timestamp: datetime,
    message: str,
    components: tuple[Any, ...] = (),
) -> dict[str, Any]:
    """Flatten one delivered entry into a JSON-friendly dict."""
    record: dict[str, Any] = {
        "timestamp": timestamp.isoformat(),
        "level": level.value,
        "subsystem": subsystem,
        "category": category,
        "message": message,
    }
    if components:
        record["components"] = list(components)
    return record


def as_handler(sink: RecordSink) -> LogHandler:
    """Adapt a RecordSink into a LogDriver handler."""

    def _handle(
        level: LogLevel,
        subsystem: str,
        category: str,
        timestamp: datetime,
        message: str,
        components: tuple[Any, ...],
    ) -> None:
        sink.write(entry_record(level, subsystem, category, timestamp, message, components))

    return _handle
