"""PollEngine: schedules poll cycles and drives checkpoint -> query -> dispatch.

States:
    STOPPED         is_enabled=False, nothing scheduled
    RUNNING         is_enabled=True, a scheduled poll is pending
    RUNNING_PAUSED  is_enabled=True, nothing scheduled because there are no
                    drivers and pausing is on

Two asyncio locks:
    _state_lock  guards the registry, the flags and the pending handle
    _cycle_lock  serializes whole poll cycles, so a forced poll and the
                 scheduled poll never interleave their checkpoint
                 read-modify-write

The scheduled loop waits one interval, polls, and repeats until its
ScheduledPoll handle is cancelled. Cancellation is observed after the wait,
after the query (the batch is dropped undelivered) and before looping.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum

from logrelay.checkpoint import CheckpointStore
from logrelay.dispatch import Dispatcher
from logrelay.drivers import LogSink
from logrelay.errors import CheckpointStoreError, StoreQueryError
from logrelay.models import PollingInterval, sort_entries
from logrelay.observability.emitter import emit
from logrelay.observability.events import (
    CheckpointAdvanced,
    PollCycleCompleted,
    PollCycleFailed,
    PollingIntervalChanged,
    PollingPaused,
    PollingResumed,
    PollingStarted,
    PollingStopped,
)
from logrelay.observability.logging import get_logger
from logrelay.registry import DriverRegistry
from logrelay.stores import LogStore

logger = get_logger(__name__)


class EngineState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    RUNNING_PAUSED = "running_paused"


class ScheduledPoll:
    """Cancellation handle for one scheduled poll loop."""

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()
        self.task: asyncio.Task[None] | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def sleep(self, seconds: float) -> bool:
        """Wait `seconds`. Returns False if cancelled during (or before) the wait."""
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=seconds)
        except TimeoutError:
            return not self.cancelled
        return False


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class PollEngine:
    """Owns the driver registry and the polling lifecycle."""

    def __init__(
        self,
        log_store: LogStore,
        checkpoint_store: CheckpointStore,
        *,
        polling_interval: PollingInterval | float = PollingInterval.MEDIUM,  # type: ignore[attr-defined]
        should_pause_if_no_registered_drivers: bool = True,
        registry: DriverRegistry | None = None,
        dispatcher: Dispatcher | None = None,
    ) -> None:
        self._log_store = log_store
        self._checkpoint = checkpoint_store
        self._interval = PollingInterval.coerce(polling_interval)
        self._should_pause = should_pause_if_no_registered_drivers
        self._registry = registry or DriverRegistry()
        self._dispatcher = dispatcher or Dispatcher()

        self._enabled = False
        self._pending: ScheduledPoll | None = None
        self._loops: set[asyncio.Task[None]] = set()
        self._immediate: set[asyncio.Task[int]] = set()

        self._state_lock = asyncio.Lock()
        self._cycle_lock = asyncio.Lock()

    # -- Accessors --

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def polling_interval(self) -> PollingInterval:
        return self._interval

    @property
    def should_pause_if_no_registered_drivers(self) -> bool:
        return self._should_pause

    @property
    def has_pending_poll(self) -> bool:
        return self._pending is not None

    @property
    def state(self) -> EngineState:
        if not self._enabled:
            return EngineState.STOPPED
        if self._pending is not None:
            return EngineState.RUNNING
        return EngineState.RUNNING_PAUSED

    @property
    def drivers(self) -> tuple[LogSink, ...]:
        return self._registry.snapshot()

    def is_driver_registered(self, driver_id: str) -> bool:
        return self._registry.is_registered(driver_id)

    # -- Lifecycle --

    async def start_polling(self) -> None:
        async with self._state_lock:
            self._enabled = True
            if self._paused_for_emptiness():
                logger.debug("polling.start_paused", reason="no_drivers")
                emit(PollingStarted(interval_seconds=self._interval.seconds, paused=True))
                return
            self._schedule_locked()
            emit(PollingStarted(interval_seconds=self._interval.seconds, paused=False))

    async def stop_polling(self) -> None:
        async with self._state_lock:
            self._enabled = False
            self._cancel_pending_locked()
            emit(PollingStopped(interval_seconds=self._interval.seconds))

    async def set_polling_interval(self, interval: PollingInterval | float) -> None:
        """Replace the interval; a pending poll is restarted on the new one.

        Values below one second are clamped to one second.
        """
        new = PollingInterval.coerce(interval)
        async with self._state_lock:
            previous = self._interval
            self._cancel_pending_locked()
            self._interval = new
            if self._enabled and not self._paused_for_emptiness():
                self._schedule_locked()
            emit(
                PollingIntervalChanged(
                    previous_seconds=previous.seconds,
                    interval_seconds=new.seconds,
                )
            )

    async def set_should_pause_if_no_registered_drivers(self, flag: bool) -> None:
        """Only consulted on the next start or registry transition."""
        async with self._state_lock:
            self._should_pause = bool(flag)

    # -- Drivers --

    async def register_driver(self, driver: LogSink) -> None:
        async with self._state_lock:
            became_non_empty = self._registry.register(driver)
            if became_non_empty and self._enabled and self._should_pause:
                self._schedule_locked()
                emit(PollingResumed(driver_count=len(self._registry)))

    async def register_drivers(self, drivers: Iterable[LogSink]) -> None:
        for driver in drivers:
            await self.register_driver(driver)

    async def deregister_driver(self, driver_id: str) -> None:
        async with self._state_lock:
            became_empty = self._registry.deregister(driver_id)
            if became_empty and self._enabled and self._should_pause:
                # Soft stop: stays enabled so the next registration resumes.
                self._cancel_pending_locked()
                emit(PollingPaused(reason="no_drivers"))

    # -- Forced polls --

    async def poll_immediately(self, from_date: datetime | None = None) -> int:
        """Run one poll cycle now and wait for it. Returns deliveries made.

        `from_date` replaces the checkpoint as the lower bound of this query
        only. The pending scheduled poll is left alone.
        """
        return await self._poll_cycle(from_date=from_date, forced=True)

    def schedule_immediate_poll(self, from_date: datetime | None = None) -> asyncio.Task[int]:
        """Fire-and-forget poll_immediately. The task is tracked until it finishes."""
        task = asyncio.create_task(
            self.poll_immediately(from_date), name="logrelay.poll_immediately"
        )
        self._immediate.add(task)
        task.add_done_callback(self._reap_immediate)
        return task

    def _reap_immediate(self, task: asyncio.Task[int]) -> None:
        self._immediate.discard(task)
        if task.cancelled():
            return
        err = task.exception()
        if err is not None:
            logger.error("poll.immediate_failed", error=str(err), error_type=type(err).__name__)

    @property
    def outstanding_immediate_polls(self) -> int:
        return len(self._immediate)

    # -- Checkpoint --

    async def last_processed_date(self) -> datetime | None:
        return await self._checkpoint.read()

    async def set_last_processed_date(self, value: datetime | None) -> None:
        """Overwrite the checkpoint. Unlike a poll cycle this may move it backwards."""
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        async with self._cycle_lock:
            await self._checkpoint.write(value)

    # -- Teardown --

    async def close(self) -> None:
        """Stop polling and wait for scheduled and immediate polls to wind down."""
        async with self._state_lock:
            self._enabled = False
            self._cancel_pending_locked()
        for task in list(self._immediate):
            task.cancel()
        pending = [*self._loops, *self._immediate]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def halt(self) -> None:
        """Synchronous stop for teardown paths that cannot await."""
        self._enabled = False
        self._cancel_pending_locked()

    # -- Internals (call with _state_lock held) --

    def _paused_for_emptiness(self) -> bool:
        return self._should_pause and self._registry.is_empty()

    def _schedule_locked(self) -> None:
        if self._pending is not None:
            return
        handle = ScheduledPoll()
        task = asyncio.create_task(self._run_scheduled(handle), name="logrelay.poll_loop")
        handle.task = task
        self._loops.add(task)
        task.add_done_callback(self._loops.discard)
        self._pending = handle

    def _cancel_pending_locked(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    # -- Poll loop --

    async def _run_scheduled(self, handle: ScheduledPoll) -> None:
        while not handle.cancelled:
            if not await handle.sleep(self._interval.seconds):
                return
            try:
                await self._poll_cycle(forced=False, handle=handle)
            except Exception as err:
                logger.exception("poll.unexpected_error", error_type=type(err).__name__)
                emit(PollCycleFailed(forced=False, stage="unexpected", error=str(err)))

    async def _poll_cycle(
        self,
        *,
        forced: bool,
        from_date: datetime | None = None,
        handle: ScheduledPoll | None = None,
    ) -> int:
        async with self._cycle_lock:
            started = time.perf_counter()

            try:
                checkpoint = await self._checkpoint.read()
            except CheckpointStoreError as err:
                self._cycle_failed(forced, "checkpoint_read", err)
                return 0

            lower_bound = from_date if from_date is not None else checkpoint
            try:
                entries = await self._log_store.query(lower_bound)
            except StoreQueryError as err:
                self._cycle_failed(forced, "query", err)
                return 0

            if handle is not None and handle.cancelled:
                logger.debug("poll.cancelled", dropped=len(entries))
                return 0

            batch = sort_entries(list(entries))
            async with self._state_lock:
                drivers = self._registry.snapshot()
            delivered = self._dispatcher.dispatch(batch, drivers)

            current = checkpoint
            if batch:
                latest = batch[-1].timestamp
                if checkpoint is None or latest > checkpoint:
                    try:
                        await self._checkpoint.write(latest)
                    except CheckpointStoreError as err:
                        self._cycle_failed(forced, "checkpoint_write", err)
                        return delivered
                    current = latest
                    emit(CheckpointAdvanced(previous=_iso(checkpoint), current=latest.isoformat()))

            emit(
                PollCycleCompleted(
                    forced=forced,
                    entry_count=len(batch),
                    delivered=delivered,
                    driver_count=len(drivers),
                    lower_bound=_iso(lower_bound),
                    checkpoint=_iso(current),
                    latency_ms=(time.perf_counter() - started) * 1000,
                )
            )
            return delivered

    def _cycle_failed(self, forced: bool, stage: str, err: Exception) -> None:
        logger.warning("poll.cycle_failed", forced=forced, stage=stage, error=str(err))
        emit(PollCycleFailed(forced=forced, stage=stage, error=str(err)))
