"""Tests for PollEngine: lifecycle, pause/resume, poll cycles, cancellation, failures.

Scheduled-loop tests use the fast_intervals fixture, which lowers the
one-second floor so intervals of a few tens of milliseconds are honoured.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from logrelay.checkpoint import InMemoryCheckpointStore
from logrelay.engine import EngineState, PollEngine, ScheduledPoll
from logrelay.errors import CheckpointStoreError, StoreQueryError
from logrelay.filters import LogFilter
from logrelay.models import LogEntry, PollingInterval
from logrelay.observability.emitter import configure
from logrelay.stores import MemoryLogStore

from conftest import at, make_entry, recording_driver


async def _eventually(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


class FlakyStore(MemoryLogStore):
    """Fails the first `failures` queries with StoreQueryError."""

    def __init__(self, entries=(), failures: int = 1) -> None:
        super().__init__(entries)
        self.failures = failures

    async def query(self, after):
        if self.failures > 0:
            self.failures -= 1
            self.query_count += 1
            raise StoreQueryError("store offline")
        return await super().query(after)


class GatedStore(MemoryLogStore):
    """Blocks inside query until release() is called."""

    def __init__(self, entries=()) -> None:
        super().__init__(entries)
        self.entered = asyncio.Event()
        self._gate = asyncio.Event()

    def release(self) -> None:
        self._gate.set()

    async def query(self, after):
        result = await super().query(after)
        self.entered.set()
        await self._gate.wait()
        return result


class FlakyCheckpoint(InMemoryCheckpointStore):
    def __init__(self, fail_reads: int = 0, fail_writes: int = 0) -> None:
        super().__init__()
        self.fail_reads = fail_reads
        self.fail_writes = fail_writes

    async def read(self):
        if self.fail_reads > 0:
            self.fail_reads -= 1
            raise CheckpointStoreError("read failed")
        return await super().read()

    async def write(self, value):
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise CheckpointStoreError("write failed")
        await super().write(value)


@pytest.fixture
def log_store():
    return MemoryLogStore()


@pytest.fixture
def checkpoint():
    return InMemoryCheckpointStore()


@pytest.fixture
async def engine(log_store, checkpoint):
    eng = PollEngine(log_store, checkpoint, polling_interval=PollingInterval.custom(0.05))
    yield eng
    await eng.close()


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_starts_stopped(self, engine):
        assert engine.state is EngineState.STOPPED
        assert not engine.is_enabled
        assert engine.should_pause_if_no_registered_drivers

    async def test_start_without_drivers_pauses(self, engine):
        await engine.start_polling()
        assert engine.is_enabled
        assert not engine.has_pending_poll
        assert engine.state is EngineState.RUNNING_PAUSED

    async def test_start_with_drivers_runs(self, engine):
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        assert engine.state is EngineState.RUNNING

    async def test_start_without_pausing_runs_empty(self, engine):
        await engine.set_should_pause_if_no_registered_drivers(False)
        await engine.start_polling()
        assert engine.state is EngineState.RUNNING

    async def test_start_twice_keeps_one_pending_poll(self, engine):
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        handle = engine._pending
        await engine.start_polling()
        assert engine._pending is handle
        assert len(engine._loops) == 1

    async def test_stop_clears_pending(self, engine):
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        handle = engine._pending
        await engine.stop_polling()
        assert engine.state is EngineState.STOPPED
        assert handle.cancelled

    async def test_pause_resume_on_emptiness(self, engine):
        await engine.start_polling()
        assert engine.state is EngineState.RUNNING_PAUSED

        await engine.register_driver(recording_driver("a"))
        assert engine.state is EngineState.RUNNING

        await engine.deregister_driver("a")
        assert engine.is_enabled
        assert engine.state is EngineState.RUNNING_PAUSED

        await engine.register_driver(recording_driver("b"))
        assert engine.state is EngineState.RUNNING

    async def test_registration_while_stopped_does_not_schedule(self, engine):
        await engine.register_driver(recording_driver("a"))
        assert engine.state is EngineState.STOPPED
        assert not engine.has_pending_poll

    async def test_deregister_without_pausing_keeps_running(self, engine):
        await engine.set_should_pause_if_no_registered_drivers(False)
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        await engine.deregister_driver("a")
        assert engine.state is EngineState.RUNNING

    async def test_register_drivers_in_order(self, engine):
        await engine.register_drivers([recording_driver("a"), recording_driver("b")])
        await engine.register_driver(recording_driver("a"))
        assert [d.id for d in engine.drivers] == ["a", "b"]
        assert engine.is_driver_registered("b")
        assert not engine.is_driver_registered("c")


class TestPollingInterval:
    async def test_interval_is_clamped(self, log_store, checkpoint):
        engine = PollEngine(log_store, checkpoint, polling_interval=0.1)
        assert engine.polling_interval.seconds == 1.0

    async def test_default_interval_is_medium(self, log_store, checkpoint):
        assert PollEngine(log_store, checkpoint).polling_interval is PollingInterval.MEDIUM

    async def test_change_reschedules_when_running(self, engine):
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        old = engine._pending
        await engine.set_polling_interval(PollingInterval.LONG)
        assert old.cancelled
        assert engine._pending is not old
        assert engine.polling_interval is PollingInterval.LONG
        assert engine.state is EngineState.RUNNING

    async def test_change_while_stopped_does_not_schedule(self, engine):
        await engine.set_polling_interval(5)
        assert engine.polling_interval.seconds == 5
        assert not engine.has_pending_poll

    async def test_change_while_paused_stays_paused(self, engine):
        await engine.start_polling()
        await engine.set_polling_interval(5)
        assert engine.state is EngineState.RUNNING_PAUSED


# ---------------------------------------------------------------------------
# Poll cycles
# ---------------------------------------------------------------------------


class TestPollCycle:
    async def test_delivers_sorted_and_advances_checkpoint(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(3), make_entry(1), make_entry(2)])

        assert await engine.poll_immediately() == 3
        assert driver.recorder.messages == ["m1", "m2", "m3"]
        assert await engine.last_processed_date() == at(3)

    async def test_at_most_once(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(1), make_entry(2)])

        await engine.poll_immediately()
        await engine.poll_immediately()
        log_store.append(make_entry(3))
        await engine.poll_immediately()
        assert driver.recorder.messages == ["m1", "m2", "m3"]

    async def test_empty_batch_leaves_checkpoint(self, engine, checkpoint):
        await checkpoint.write(at(5))
        await engine.poll_immediately()
        assert await engine.last_processed_date() == at(5)

    async def test_from_date_overrides_lower_bound_once(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(1), make_entry(2)])
        await engine.poll_immediately()

        await engine.poll_immediately(from_date=at(0))
        assert driver.recorder.messages == ["m1", "m2", "m1", "m2"]
        assert await engine.last_processed_date() == at(2)

    async def test_checkpoint_never_regresses(self, engine, log_store, checkpoint):
        await checkpoint.write(at(10))
        log_store.extend([make_entry(1), make_entry(2)])
        await engine.register_driver(recording_driver("a"))
        await engine.poll_immediately(from_date=at(0))
        assert await engine.last_processed_date() == at(10)

    async def test_poll_without_drivers_still_advances(self, engine, log_store):
        log_store.append(make_entry(4))
        assert await engine.poll_immediately() == 0
        assert await engine.last_processed_date() == at(4)

    async def test_poll_immediately_leaves_pending_poll(self, engine):
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        handle = engine._pending
        await engine.poll_immediately()
        assert engine._pending is handle
        assert not handle.cancelled

    async def test_concurrent_forced_polls_deliver_once(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(i) for i in range(1, 6)])

        results = await asyncio.gather(*(engine.poll_immediately() for _ in range(4)))
        assert sum(results) == 5
        assert driver.recorder.messages == ["m1", "m2", "m3", "m4", "m5"]

    async def test_registration_during_dispatch_waits_for_next_batch(self, engine, log_store):
        late = recording_driver("late")

        def _register_late(*args):
            asyncio.get_running_loop().create_task(engine.register_driver(late))

        from logrelay.drivers import LogDriver

        await engine.register_driver(LogDriver("trigger", handler=_register_late))
        log_store.extend([make_entry(1), make_entry(2)])
        await engine.poll_immediately()
        await _eventually(lambda: engine.is_driver_registered("late"))
        assert late.recorder.messages == []

    async def test_set_last_processed_date(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(1), make_entry(2)])
        await engine.set_last_processed_date(datetime(2026, 1, 1, 0, 0, 1))
        assert await engine.last_processed_date() == at(1)
        await engine.poll_immediately()
        assert driver.recorder.messages == ["m2"]

        await engine.set_last_processed_date(None)
        assert await engine.last_processed_date() is None


class TestFailures:
    async def test_query_failure_keeps_checkpoint(self, checkpoint):
        store = FlakyStore([make_entry(1)])
        engine = PollEngine(store, checkpoint)
        driver = recording_driver("a")
        await engine.register_driver(driver)

        assert await engine.poll_immediately() == 0
        assert await checkpoint.read() is None

        await engine.poll_immediately()
        assert driver.recorder.messages == ["m1"]
        assert await checkpoint.read() == at(1)

    async def test_checkpoint_read_failure_skips_cycle(self, log_store):
        engine = PollEngine(log_store, FlakyCheckpoint(fail_reads=1))
        log_store.append(make_entry(1))
        assert await engine.poll_immediately() == 0
        assert log_store.query_count == 0

    async def test_checkpoint_write_failure_reports_delivered(self, log_store):
        checkpoint = FlakyCheckpoint(fail_writes=1)
        engine = PollEngine(log_store, checkpoint)
        await engine.register_driver(recording_driver("a"))
        log_store.append(make_entry(1))
        assert await engine.poll_immediately() == 1
        assert await checkpoint.read() is None

    async def test_scheduled_loop_survives_query_failure(self, fast_intervals, checkpoint):
        store = FlakyStore([make_entry(1)], failures=2)
        engine = PollEngine(store, checkpoint, polling_interval=0.02)
        driver = recording_driver("a")
        await engine.register_driver(driver)
        await engine.start_polling()
        try:
            await _eventually(lambda: driver.recorder.messages == ["m1"])
            assert store.query_count >= 3
        finally:
            await engine.close()

    async def test_scheduled_loop_survives_unexpected_error(self, fast_intervals, checkpoint):
        class Exploding(MemoryLogStore):
            async def query(self, after):
                self.query_count += 1
                if self.query_count == 1:
                    raise RuntimeError("surprise")
                return await super().query(after)

        store = Exploding([make_entry(1)])
        engine = PollEngine(store, checkpoint, polling_interval=0.02)
        driver = recording_driver("a")
        await engine.register_driver(driver)
        await engine.start_polling()
        try:
            await _eventually(lambda: driver.recorder.messages == ["m1"])
        finally:
            await engine.close()

    async def test_forced_poll_propagates_unexpected_error(self, checkpoint):
        class Exploding(MemoryLogStore):
            async def query(self, after):
                raise RuntimeError("surprise")

        engine = PollEngine(Exploding(), checkpoint)
        with pytest.raises(RuntimeError):
            await engine.poll_immediately()

    async def test_unmatchable_entry_does_not_replay_batch(self, log_store, checkpoint):
        log_store.extend(
            [
                make_entry(1, "app"),
                # A null subsystem makes subsystem filters raise.
                LogEntry(at(2), None, "net", message="m2"),  # type: ignore[arg-type]
                make_entry(3, "app"),
            ]
        )
        engine = PollEngine(log_store, checkpoint)
        filtered = recording_driver("filtered", [LogFilter.subsystem("app")])
        everything = recording_driver("everything")
        await engine.register_drivers([filtered, everything])

        for _ in range(3):
            await engine.poll_immediately()

        assert filtered.recorder.messages == ["m1", "m3"]
        assert everything.recorder.messages == ["m1", "m2", "m3"]
        assert await checkpoint.read() == at(3)

    async def test_raising_accepts_is_isolated(self, log_store, checkpoint):
        class BrokenFilterSink:
            id = "broken"
            log_filters = ()

            def accepts(self, subsystem, category):
                raise RuntimeError("filter blew up")

            def receive(self, entry):
                raise AssertionError("never reached")

        log_store.extend([make_entry(1), make_entry(2)])
        engine = PollEngine(log_store, checkpoint)
        healthy = recording_driver("healthy")
        await engine.register_drivers([BrokenFilterSink(), healthy])

        assert await engine.poll_immediately() == 2
        assert await engine.poll_immediately() == 0
        assert healthy.recorder.messages == ["m1", "m2"]
        assert await checkpoint.read() == at(2)

    async def test_cycle_failure_logged_once(self, checkpoint, caplog):
        configure()
        engine = PollEngine(FlakyStore([make_entry(1)]), checkpoint)
        with caplog.at_level(logging.DEBUG):
            await engine.poll_immediately()
            for _ in range(10):
                await asyncio.sleep(0)
        messages = [r.getMessage() for r in caplog.records]
        assert sum("poll.cycle_failed" in m or "poll.failed" in m for m in messages) == 1


# ---------------------------------------------------------------------------
# Scheduling and cancellation
# ---------------------------------------------------------------------------


class TestScheduling:
    async def test_scheduled_loop_delivers(self, fast_intervals, log_store, checkpoint):
        engine = PollEngine(log_store, checkpoint, polling_interval=0.02)
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.extend([make_entry(1), make_entry(2)])
        await engine.start_polling()
        try:
            await _eventually(lambda: driver.recorder.messages == ["m1", "m2"])
            log_store.append(make_entry(3))
            await _eventually(lambda: driver.recorder.messages == ["m1", "m2", "m3"])
        finally:
            await engine.close()

    async def test_sleeps_before_first_poll(self, log_store, checkpoint):
        engine = PollEngine(log_store, checkpoint, polling_interval=PollingInterval.LONG)
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        await asyncio.sleep(0.05)
        assert log_store.query_count == 0
        await engine.close()

    async def test_stop_mid_sleep_prevents_poll(self, fast_intervals, log_store, checkpoint):
        engine = PollEngine(log_store, checkpoint, polling_interval=0.2)
        await engine.register_driver(recording_driver("a"))
        await engine.start_polling()
        loop_task = engine._pending.task
        await asyncio.sleep(0.05)
        await engine.stop_polling()
        await asyncio.wait_for(loop_task, timeout=1)
        assert log_store.query_count == 0

    async def test_stop_after_query_drops_batch(self, fast_intervals, checkpoint):
        store = GatedStore([make_entry(1)])
        engine = PollEngine(store, checkpoint, polling_interval=0.01)
        driver = recording_driver("a")
        await engine.register_driver(driver)
        await engine.start_polling()
        loop_task = engine._pending.task

        await asyncio.wait_for(store.entered.wait(), timeout=1)
        await engine.stop_polling()
        store.release()
        await asyncio.wait_for(loop_task, timeout=1)

        assert driver.recorder.messages == []
        assert await checkpoint.read() is None

    async def test_stop_does_not_cancel_forced_poll(self, checkpoint):
        store = GatedStore([make_entry(1)])
        engine = PollEngine(store, checkpoint)
        driver = recording_driver("a")
        await engine.register_driver(driver)

        forced = asyncio.create_task(engine.poll_immediately())
        await asyncio.wait_for(store.entered.wait(), timeout=1)
        await engine.stop_polling()
        store.release()
        assert await forced == 1
        assert driver.recorder.messages == ["m1"]

    async def test_schedule_immediate_poll_is_tracked(self, engine, log_store):
        driver = recording_driver("a")
        await engine.register_driver(driver)
        log_store.append(make_entry(1))
        task = engine.schedule_immediate_poll()
        assert engine.outstanding_immediate_polls == 1
        assert await task == 1
        await asyncio.sleep(0)
        assert engine.outstanding_immediate_polls == 0

    async def test_close_cancels_outstanding_work(self, checkpoint):
        store = GatedStore([make_entry(1)])
        engine = PollEngine(store, checkpoint)
        task = engine.schedule_immediate_poll()
        await asyncio.wait_for(store.entered.wait(), timeout=1)
        await engine.close()
        assert task.cancelled()
        assert engine.state is EngineState.STOPPED


class TestScheduledPollHandle:
    async def test_sleep_completes(self):
        assert await ScheduledPoll().sleep(0.01) is True

    async def test_cancel_wakes_sleeper(self):
        handle = ScheduledPoll()
        sleeper = asyncio.create_task(handle.sleep(10))
        await asyncio.sleep(0)
        handle.cancel()
        assert await asyncio.wait_for(sleeper, timeout=1) is False

    async def test_cancelled_before_sleep(self):
        handle = ScheduledPoll()
        handle.cancel()
        assert await handle.sleep(10) is False


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


class TestCheckpointMonotonicity:
    @settings(max_examples=40, suppress_health_check=[HealthCheck.function_scoped_fixture])
    @given(
        batches=st.lists(
            st.lists(st.integers(min_value=0, max_value=1000), max_size=6),
            min_size=1,
            max_size=6,
        ),
        overrides=st.lists(
            st.one_of(st.none(), st.integers(min_value=0, max_value=1000)), max_size=6
        ),
    )
    def test_checkpoint_never_decreases(self, batches, overrides):
        async def _run() -> list[datetime | None]:
            store = MemoryLogStore()
            engine = PollEngine(store, InMemoryCheckpointStore())
            await engine.register_driver(recording_driver("a"))
            seen: list[datetime | None] = []
            for i, batch in enumerate(batches):
                store.extend(make_entry(s) for s in batch)
                override = overrides[i] if i < len(overrides) else None
                await engine.poll_immediately(
                    from_date=at(override) if override is not None else None
                )
                seen.append(await engine.last_processed_date())
            return seen

        seen = asyncio.run(_run())
        values = [v for v in seen if v is not None]
        assert values == sorted(values)
        all_seconds = [s for batch in batches for s in batch]
        if values:
            assert values[-1] <= at(max(all_seconds))
