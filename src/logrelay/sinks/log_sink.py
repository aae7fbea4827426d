"""Structured log sink: re-emit delivered entries through the configured logger."""

from __future__ import annotations

from logrelay.observability.logging import get_logger

_LEVEL_METHODS = {
    "undefined": "info",
    "debug": "debug",
    "info": "info",
    "notice": "warning",
    "error": "error",
    "fault": "critical",
}


class StructuredLogSink:
    """Forward records to get_logger(name), keeping the entry's severity.

    The entry's own timestamp and level are renamed to entry_timestamp and
    entry_level; the processor chain stamps its own timestamp/level keys.
    """

    def __init__(self, name: str = "logrelay.relayed") -> None:
        self._name = name

    def write(self, record: dict) -> None:
        fields = dict(record)
        message = fields.pop("message", "")
        level = fields.pop("level", "info")
        fields["entry_level"] = level
        fields["entry_timestamp"] = fields.pop("timestamp", None)
        method = _LEVEL_METHODS.get(level, "info")
        getattr(get_logger(self._name), method)(message, **fields)
