"""logrelay observability: structured logging plus typed lifecycle events.

Events:
    emit(event)      fire-and-forget; dropped until configure() has run
    configure(cfg)   logging, emitter and built-in subscribers, once
    reset()          undo configure(); used between tests

Logging:
    get_logger(name)                    structured logger
    register_formatter(name, factory)   add a LogFormatter by name
    register_destination(name, factory) add a LogDestination by name
"""

from logrelay.observability.emitter import configure, emit, is_configured, reset
from logrelay.observability.events import (
    ALL_EVENTS,
    CheckpointAdvanced,
    DriverDeregistered,
    DriverRegistered,
    DriverRejected,
    PollCycleCompleted,
    PollCycleFailed,
    PollingIntervalChanged,
    PollingPaused,
    PollingResumed,
    PollingStarted,
    PollingStopped,
    SinkFailed,
)
from logrelay.observability.logging import (
    LogDestination,
    LogFormatter,
    get_logger,
    register_destination,
    register_formatter,
)

__all__ = [
    # Core API
    "emit",
    "configure",
    "is_configured",
    "reset",
    # Logging
    "get_logger",
    "LogFormatter",
    "LogDestination",
    "register_formatter",
    "register_destination",
    # Polling lifecycle
    "PollingStarted",
    "PollingStopped",
    "PollingPaused",
    "PollingResumed",
    "PollingIntervalChanged",
    # Poll cycles
    "PollCycleCompleted",
    "PollCycleFailed",
    "CheckpointAdvanced",
    # Drivers
    "DriverRegistered",
    "DriverDeregistered",
    "DriverRejected",
    "SinkFailed",
    "ALL_EVENTS",
]
