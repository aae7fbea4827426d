"""Typed event dataclasses for logrelay observability.

All events are frozen (immutable) dataclasses. The engine emits these;
it doesn't know about log lines or files. Subscribers handle routing.

Grouped by domain: polling lifecycle, poll cycles, drivers, dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass


# ---------------------------------------------------------------------------
# Polling lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollingStarted:
    interval_seconds: float
    paused: bool  # True when started with no drivers and pausing enabled


@dataclass(frozen=True)
class PollingStopped:
    interval_seconds: float


@dataclass(frozen=True)
class PollingPaused:
    reason: str  # "no_drivers"


@dataclass(frozen=True)
class PollingResumed:
    driver_count: int


@dataclass(frozen=True)
class PollingIntervalChanged:
    previous_seconds: float
    interval_seconds: float


# ---------------------------------------------------------------------------
# Poll cycles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PollCycleCompleted:
    forced: bool
    entry_count: int
    delivered: int
    driver_count: int
    lower_bound: str | None  # ISO
    checkpoint: str | None  # ISO, after the cycle
    latency_ms: float


@dataclass(frozen=True)
class PollCycleFailed:
    forced: bool
    stage: str  # "checkpoint_read" | "query" | "checkpoint_write"
    error: str


@dataclass(frozen=True)
class CheckpointAdvanced:
    previous: str | None  # ISO
    current: str  # ISO


# ---------------------------------------------------------------------------
# Drivers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DriverRegistered:
    driver_id: str
    driver_count: int


@dataclass(frozen=True)
class DriverDeregistered:
    driver_id: str
    driver_count: int


@dataclass(frozen=True)
class DriverRejected:
    driver_id: str
    reason: str  # "duplicate_id"


@dataclass(frozen=True)
class SinkFailed:
    driver_id: str
    entry_timestamp: str  # ISO
    error: str


ALL_EVENTS = (
    PollingStarted,
    PollingStopped,
    PollingPaused,
    PollingResumed,
    PollingIntervalChanged,
    PollCycleCompleted,
    PollCycleFailed,
    CheckpointAdvanced,
    DriverRegistered,
    DriverDeregistered,
    DriverRejected,
    SinkFailed,
)
