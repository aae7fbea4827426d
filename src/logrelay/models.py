"""Core value types: log entries, levels, polling intervals.

All types here are plain frozen dataclasses and enums, no I/O.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

MINIMUM_INTERVAL_SECONDS = 1.0


class LogLevel(str, Enum):
    """Severity of a log entry."""

    UNDEFINED = "undefined"
    DEBUG = "debug"
    INFO = "info"
    NOTICE = "notice"
    ERROR = "error"
    FAULT = "fault"

    @classmethod
    def from_logging(cls, levelno: int) -> LogLevel:
        """Map a stdlib logging level number onto a LogLevel."""
        if levelno >= logging.CRITICAL:
            return cls.FAULT
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.NOTICE
        if levelno >= logging.INFO:
            return cls.INFO
        if levelno >= logging.DEBUG:
            return cls.DEBUG
        return cls.UNDEFINED

    @classmethod
    def parse(cls, value: object) -> LogLevel:
        """Lenient parse: unknown, missing or non-string values become UNDEFINED."""
        if not isinstance(value, str) or not value:
            return cls.UNDEFINED
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNDEFINED


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps are taken to be UTC so comparisons never mix kinds.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _text(value: Any) -> str:
    # Missing and null fields read as empty strings.
    return "" if value is None else str(value)


@dataclass(frozen=True)
class LogEntry:
    """A single entry read from a log store. Immutable once produced."""

    timestamp: datetime
    subsystem: str
    category: str
    level: LogLevel = LogLevel.UNDEFINED
    message: str = ""
    components: tuple[Any, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", _as_utc(self.timestamp))
        if not isinstance(self.components, tuple):
            object.__setattr__(self, "components", tuple(self.components))

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "subsystem": self.subsystem,
            "category": self.category,
            "level": self.level.value,
            "message": self.message,
            "components": list(self.components),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> LogEntry:
        return cls(
            timestamp=datetime.fromisoformat(d["timestamp"]),
            subsystem=_text(d.get("subsystem")),
            category=_text(d.get("category")),
            level=LogLevel.parse(d.get("level")),
            message=_text(d.get("message")),
            components=tuple(d.get("components") or ()),
        )


def sort_entries(entries: list[LogEntry] | tuple[LogEntry, ...]) -> list[LogEntry]:
    """Ascending by timestamp. Python's sort is stable, so ties keep store order."""
    return sorted(entries, key=lambda e: e.timestamp)


@dataclass(frozen=True)
class PollingInterval:
    """How long the engine waits between scheduled polls.

    Presets: SHORT (10s), MEDIUM (30s), LONG (60s); anything else via
    PollingInterval.custom(seconds). A hard floor of 1 second is enforced
    on the effective value; smaller requests are clamped, not rejected.
    """

    name: str
    requested: float

    @property
    def seconds(self) -> float:
        return max(float(self.requested), MINIMUM_INTERVAL_SECONDS)

    @classmethod
    def custom(cls, seconds: float) -> PollingInterval:
        return cls("custom", float(seconds))

    @classmethod
    def coerce(cls, value: PollingInterval | float | int) -> PollingInterval:
        if isinstance(value, PollingInterval):
            return value
        return cls.custom(value)

    def __str__(self) -> str:
        if self.name == "custom":
            return f"custom({self.seconds:g}s)"
        return f"{self.name}({self.seconds:g}s)"


PollingInterval.SHORT = PollingInterval("short", 10.0)  # type: ignore[attr-defined]
PollingInterval.MEDIUM = PollingInterval("medium", 30.0)  # type: ignore[attr-defined]
PollingInterval.LONG = PollingInterval("long", 60.0)  # type: ignore[attr-defined]
