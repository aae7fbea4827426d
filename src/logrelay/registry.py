"""Subscriber registry: the set of drivers the engine delivers to.

Drivers are unique by id. The registry is not thread-safe on its own; the
engine guards every mutation with its state lock and hands the dispatcher an
immutable snapshot, so registration during a dispatch never affects the
batch in flight.
"""

from __future__ import annotations

from logrelay.drivers import LogSink
from logrelay.observability.emitter import emit
from logrelay.observability.events import DriverDeregistered, DriverRegistered, DriverRejected
from logrelay.observability.logging import get_logger

logger = get_logger(__name__)


class DriverRegistry:
    """Insertion-ordered drivers keyed by id."""

    def __init__(self) -> None:
        self._drivers: dict[str, LogSink] = {}

    def register(self, driver: LogSink) -> bool:
        """Add a driver. Returns True when the registry went from empty to non-empty.

        A driver whose id is already registered is rejected: logged, not raised,
        and the existing registration is kept.
        """
        if driver.id in self._drivers:
            logger.warning("driver.duplicate", driver_id=driver.id)
            emit(DriverRejected(driver_id=driver.id, reason="duplicate_id"))
            return False
        was_empty = not self._drivers
        self._drivers[driver.id] = driver
        emit(DriverRegistered(driver_id=driver.id, driver_count=len(self._drivers)))
        return was_empty

    def deregister(self, driver_id: str) -> bool:
        """Remove by id. Returns True when the registry became empty.

        Unknown ids are a no-op.
        """
        if self._drivers.pop(driver_id, None) is None:
            return False
        emit(DriverDeregistered(driver_id=driver_id, driver_count=len(self._drivers)))
        return not self._drivers

    def is_registered(self, driver_id: str) -> bool:
        return driver_id in self._drivers

    def get(self, driver_id: str) -> LogSink | None:
        return self._drivers.get(driver_id)

    def snapshot(self) -> tuple[LogSink, ...]:
        return tuple(self._drivers.values())

    def is_empty(self) -> bool:
        return not self._drivers

    def __len__(self) -> int:
        return len(self._drivers)

    def __contains__(self, driver_id: object) -> bool:
        return driver_id in self._drivers
