"""Event file subscriber: one JSON object per emitted relay event."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path

from logrelay.observability.events import ALL_EVENTS
from logrelay.observability.linker import RelayEventLinker
from logrelay.sinks.jsonl_sink import JsonlSink


def register_jsonl_subscriber(path: str | Path) -> JsonlSink:
    """Append every event to `path` as {"event": <class name>, **fields}."""
    sink = JsonlSink(path)

    def _append(event: object) -> None:
        sink.write({"event": type(event).__name__, **asdict(event)})  # type: ignore[arg-type]

    RelayEventLinker.on(*ALL_EVENTS)(_append)
    return sink
