"""Process-wide event emitter for relay lifecycle events.

The engine and registry call emit() unconditionally. Until configure() runs
there is no emitter and emit() drops the event, so a bare PollEngine in a
test or a script costs nothing extra.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pyventus.core.processing.asyncio import AsyncIOProcessingService
from pyventus.events import EventEmitter

from logrelay.observability.linker import RelayEventLinker
from logrelay.observability.logging import get_logger, setup_logging, shutdown_logging

if TYPE_CHECKING:
    from logrelay.config import RelayConfig

_emitter: EventEmitter | None = None


def emit(event: Any) -> None:
    if _emitter is not None:
        _emitter.emit(event)


def configure(config: RelayConfig | None = None) -> EventEmitter:
    """Set up logging, build the emitter and attach the built-in subscribers.

    A second call returns the emitter from the first; call reset() before
    configuring again with a different config.
    """
    global _emitter

    if _emitter is not None:
        return _emitter

    from logrelay.config import RelayConfig
    from logrelay.observability.subscribers.jsonl import register_jsonl_subscriber
    from logrelay.observability.subscribers.structlog_sub import register_structlog_subscriber

    cfg = config or RelayConfig()
    setup_logging(cfg)

    emitter = EventEmitter(
        event_linker=RelayEventLinker,
        event_processor=AsyncIOProcessingService(),
    )
    register_structlog_subscriber()
    if cfg.events_path:
        register_jsonl_subscriber(cfg.events_path)
        get_logger(__name__).info("events.file_attached", path=cfg.events_path)

    _emitter = emitter
    return _emitter


def is_configured() -> bool:
    return _emitter is not None


def reset() -> None:
    """Drop the emitter, every subscriber and the logging handler."""
    global _emitter

    RelayEventLinker.remove_all()
    shutdown_logging()
    _emitter = None
