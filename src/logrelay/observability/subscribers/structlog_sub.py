"""Log every relay event as one structured line on the "logrelay.events" logger.

Registered by emitter.configure(). Event names and levels live in one table
so a new event type only needs a row here. Failure events
(PollCycleFailed, DriverRejected, SinkFailed) have no row; they are logged
at the point of failure.
"""

from __future__ import annotations

import logging
from dataclasses import asdict

from logrelay.observability import events as ev
from logrelay.observability.linker import RelayEventLinker
from logrelay.observability.logging import get_logger

EVENT_LOG_LINES: dict[type, tuple[str, int]] = {
    ev.PollingStarted: ("polling.started", logging.INFO),
    ev.PollingStopped: ("polling.stopped", logging.INFO),
    ev.PollingPaused: ("polling.paused", logging.INFO),
    ev.PollingResumed: ("polling.resumed", logging.INFO),
    ev.PollingIntervalChanged: ("polling.interval_changed", logging.INFO),
    ev.PollCycleCompleted: ("poll.completed", logging.DEBUG),
    ev.CheckpointAdvanced: ("checkpoint.advanced", logging.DEBUG),
    ev.DriverRegistered: ("driver.registered", logging.INFO),
    ev.DriverDeregistered: ("driver.deregistered", logging.INFO),
}

_METHODS = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
}


def log_event(event: object) -> None:
    name, level = EVENT_LOG_LINES[type(event)]
    # Looked up per call so a later setup_logging() is picked up.
    logger = get_logger("logrelay.events")
    getattr(logger, _METHODS[level])(name, **asdict(event))  # type: ignore[arg-type]


def register_structlog_subscriber() -> None:
    RelayEventLinker.on(*EVENT_LOG_LINES)(log_event)
