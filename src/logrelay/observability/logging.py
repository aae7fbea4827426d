"""Structured logging for the relay: formatter x destination, picked by config.

    formatter    structlog (default) | stdlib     LOGRELAY_LOG_FORMATTER
    destination  stderr (default) | jsonl         LOGRELAY_LOG_DESTINATION
    renderer     json (default) | console         LOGRELAY_LOG_FORMAT

Both formatters end in a stdlib logging.Formatter on one handler attached to
the root logger, so third-party stdlib loggers share the relay's output.
Call sites always use the structlog calling convention:

    logger = get_logger(__name__)
    logger.warning("poll.cycle_failed", stage="query", error=str(err))

Extra destinations are registered as factories taking the RelayConfig:

    register_destination("syslog", lambda cfg: SyslogDestination(cfg.log_path))
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from datetime import UTC, datetime
from functools import partialmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from logrelay.config import RelayConfig

_DEFAULT_LOG_PATH = Path("~/.logrelay/logrelay.jsonl")
_HANDLER_TAG = "_logrelay_managed"


@runtime_checkable
class LogFormatter(Protocol):
    """How records are shaped. setup() returns the handler's Formatter."""

    def setup(self, config: RelayConfig) -> logging.Formatter: ...

    def get_logger(self, name: str, **kwargs: Any) -> Any: ...


@runtime_checkable
class LogDestination(Protocol):
    """Where formatted records are written."""

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler: ...

    def shutdown(self) -> None: ...


# ---------------------------------------------------------------------------
# structlog
# ---------------------------------------------------------------------------


def _merge_relay_fields(logger: Any, method_name: str, event_dict: dict) -> dict:
    # Records from _KwargsLogger carry their kwargs on the record.
    record = event_dict.get("_record")
    if record is not None:
        event_dict.update(getattr(record, "relay_fields", {}))
    return event_dict


class StructlogFormatter:
    """structlog pipeline rendered through stdlib's ProcessorFormatter."""

    def setup(self, config: RelayConfig) -> logging.Formatter:
        import structlog

        console = config.log_format == "console"
        chain: list[Any] = [
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
        ]
        # Tracebacks stay structured in JSON and pretty on the console.
        if not console:
            chain.append(structlog.processors.dict_tracebacks)

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *chain,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        renderer: Any = (
            structlog.dev.ConsoleRenderer() if console else structlog.processors.JSONRenderer()
        )
        return structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[_merge_relay_fields, *chain],
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        import structlog

        return structlog.get_logger(name, **kwargs)


# ---------------------------------------------------------------------------
# Plain stdlib
# ---------------------------------------------------------------------------


class _JsonLineFormatter(logging.Formatter):
    """One JSON object per record; structured kwargs become top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "event": record.getMessage(),
            **getattr(record, "relay_fields", {}),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class StdlibFormatter:
    """No structlog at runtime; records rendered by logging.Formatter subclasses."""

    def setup(self, config: RelayConfig) -> logging.Formatter:
        if config.log_format == "console":
            return logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        return _JsonLineFormatter()

    def get_logger(self, name: str, **kwargs: Any) -> Any:
        return _KwargsLogger(logging.getLogger(name))


class _KwargsLogger:
    """structlog-style calls (event + kwargs) on top of a stdlib Logger.

    Keyword fields travel on the record as `relay_fields`; exc_info keeps its
    stdlib meaning.
    """

    def __init__(self, logger: logging.Logger) -> None:
        self._logger = logger

    def _log(self, level: int, event: str, *, exc_info: Any = None, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, event, exc_info=exc_info, extra={"relay_fields": fields})

    debug = partialmethod(_log, logging.DEBUG)
    info = partialmethod(_log, logging.INFO)
    warning = partialmethod(_log, logging.WARNING)
    error = partialmethod(_log, logging.ERROR)
    critical = partialmethod(_log, logging.CRITICAL)

    def exception(self, event: str, **fields: Any) -> None:
        fields.setdefault("exc_info", True)
        self._log(logging.ERROR, event, **fields)


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------


class StderrDestination:
    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(formatter)
        return handler

    def shutdown(self) -> None:
        pass


class JsonlFileDestination:
    """Appends to config.log_path (default ~/.logrelay/logrelay.jsonl)."""

    def __init__(self, config: RelayConfig) -> None:
        self.path = Path(config.log_path or _DEFAULT_LOG_PATH).expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handler: logging.FileHandler | None = None

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        self._handler = logging.FileHandler(self.path, encoding="utf-8")
        self._handler.setFormatter(formatter)
        return self._handler

    def shutdown(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None


# ---------------------------------------------------------------------------
# Factories and module state
# ---------------------------------------------------------------------------

FormatterFactory = Callable[["RelayConfig"], LogFormatter]
DestinationFactory = Callable[["RelayConfig"], LogDestination]

_formatters: dict[str, FormatterFactory] = {
    "structlog": lambda cfg: StructlogFormatter(),
    "stdlib": lambda cfg: StdlibFormatter(),
}
_destinations: dict[str, DestinationFactory] = {
    "stderr": lambda cfg: StderrDestination(),
    "jsonl": JsonlFileDestination,
}


def register_formatter(name: str, factory: FormatterFactory) -> None:
    _formatters[name] = factory


def register_destination(name: str, factory: DestinationFactory) -> None:
    _destinations[name] = factory


def _lookup(table: dict[str, Any], name: str, kind: str) -> Any:
    try:
        return table[name]
    except KeyError:
        raise ValueError(
            f"Unknown log {kind}: {name!r}. Available: {sorted(table)}. "
            f"Add one with register_{kind}()."
        ) from None


_formatter: LogFormatter | None = None
_destination: LogDestination | None = None
_handler: logging.Handler | None = None


def setup_logging(config: RelayConfig) -> None:
    """Install the configured handler on the root logger.

    Calling again swaps out the handler installed by the previous call and
    leaves every other root handler (pytest's caplog, agents) in place.
    """
    global _formatter, _destination, _handler

    formatter = _lookup(_formatters, config.log_formatter, "formatter")(config)
    destination = _lookup(_destinations, config.log_destination, "destination")(config)
    handler = destination.create_handler(formatter.setup(config))
    setattr(handler, _HANDLER_TAG, True)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.log_level.upper(), logging.INFO))

    if _destination is not None:
        _destination.shutdown()
    _formatter, _destination, _handler = formatter, destination, handler


def get_logger(name: str = "", **kwargs: Any) -> Any:
    """Logger from the active formatter; a stdlib-backed shim before setup."""
    if _formatter is None:
        return _KwargsLogger(logging.getLogger(name))
    return _formatter.get_logger(name, **kwargs)


def shutdown_logging() -> None:
    global _formatter, _destination, _handler

    if _handler is not None:
        logging.getLogger().removeHandler(_handler)
    if _destination is not None:
        _destination.shutdown()
    _formatter = _destination = _handler = None
