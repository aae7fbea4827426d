"""Dispatcher: fan a sorted batch of entries out to the drivers that accept them.

Ordering is entry-major: every accepting driver sees entry N before any
driver sees entry N+1, and each driver sees entries in ascending timestamp
order. A driver whose filters or sink raise is logged and skipped for that
entry only; the rest of the batch is still delivered.
"""

from __future__ import annotations

from collections.abc import Sequence

from logrelay.drivers import LogSink
from logrelay.models import LogEntry
from logrelay.observability.emitter import emit
from logrelay.observability.events import SinkFailed
from logrelay.observability.logging import get_logger

logger = get_logger(__name__)


class Dispatcher:
    def dispatch(self, entries: Sequence[LogEntry], drivers: Sequence[LogSink]) -> int:
        """Deliver `entries` (already sorted) to `drivers`. Returns deliveries made."""
        if not entries or not drivers:
            return 0
        delivered = 0
        for entry in entries:
            for driver in drivers:
                try:
                    if not driver.accepts(entry.subsystem, entry.category):
                        continue
                    driver.receive(entry)
                except Exception as err:
                    logger.exception(
                        "dispatch.sink_error",
                        driver_id=driver.id,
                        entry_timestamp=entry.timestamp.isoformat(),
                    )
                    emit(
                        SinkFailed(
                            driver_id=driver.id,
                            entry_timestamp=entry.timestamp.isoformat(),
                            error=str(err),
                        )
                    )
                    continue
                delivered += 1
        return delivered
