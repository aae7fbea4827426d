"""Process-wide facade: initialize once, reach the client from anywhere.

    import logrelay

    client = logrelay.initialize(logrelay.PollingInterval.SHORT)
    await client.register_driver(LogDriver("console", handler=as_handler(StdoutSink())))
    await client.start_polling()
    ...
    await logrelay.shutdown()

get_client() before initialize() raises NotInitializedError. That is a usage
error and is not meant to be caught.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import datetime

from logrelay.checkpoint import CheckpointStore
from logrelay.config import RelayConfig
from logrelay.drivers import LogSink
from logrelay.engine import EngineState, PollEngine
from logrelay.errors import AlreadyInitializedError, NotInitializedError
from logrelay.models import PollingInterval
from logrelay.observability import emitter
from logrelay.observability.logging import get_logger
from logrelay.stores import LogStore, ProcessLogStore

logger = get_logger(__name__)


class LogRelayClient:
    """Thin async wrapper over PollEngine plus ownership of its collaborators.

    Collaborators the client built itself (from config) are closed by
    aclose(); ones passed in by the caller are left to the caller.
    """

    def __init__(
        self,
        engine: PollEngine,
        *,
        log_store: LogStore,
        checkpoint_store: CheckpointStore,
        owns_log_store: bool = False,
        owns_checkpoint_store: bool = False,
    ) -> None:
        self._engine = engine
        self._log_store = log_store
        self._checkpoint_store = checkpoint_store
        self._owns_log_store = owns_log_store
        self._owns_checkpoint_store = owns_checkpoint_store

    @property
    def engine(self) -> PollEngine:
        return self._engine

    @property
    def log_store(self) -> LogStore:
        return self._log_store

    @property
    def checkpoint_store(self) -> CheckpointStore:
        return self._checkpoint_store

    # -- State --

    @property
    def is_enabled(self) -> bool:
        return self._engine.is_enabled

    @property
    def polling_interval(self) -> PollingInterval:
        return self._engine.polling_interval

    @property
    def should_pause_if_no_registered_drivers(self) -> bool:
        return self._engine.should_pause_if_no_registered_drivers

    @property
    def state(self) -> EngineState:
        return self._engine.state

    @property
    def drivers(self) -> tuple[LogSink, ...]:
        return self._engine.drivers

    async def last_processed_date(self) -> datetime | None:
        return await self._engine.last_processed_date()

    async def set_last_processed_date(self, value: datetime | None) -> None:
        await self._engine.set_last_processed_date(value)

    # -- Polling --

    async def start_polling(self) -> None:
        await self._engine.start_polling()

    async def stop_polling(self) -> None:
        await self._engine.stop_polling()

    async def set_polling_interval(self, interval: PollingInterval | float) -> None:
        await self._engine.set_polling_interval(interval)

    async def set_should_pause_if_no_registered_drivers(self, flag: bool) -> None:
        await self._engine.set_should_pause_if_no_registered_drivers(flag)

    async def poll_immediately(self, from_date: datetime | None = None) -> int:
        return await self._engine.poll_immediately(from_date)

    # -- Drivers --

    async def register_driver(self, driver: LogSink) -> None:
        await self._engine.register_driver(driver)

    async def register_drivers(self, drivers: Iterable[LogSink]) -> None:
        await self._engine.register_drivers(drivers)

    async def deregister_driver(self, driver_id: str) -> None:
        await self._engine.deregister_driver(driver_id)

    def is_driver_registered(self, driver_id: str) -> bool:
        return self._engine.is_driver_registered(driver_id)

    # -- Teardown --

    async def aclose(self) -> None:
        await self._engine.close()
        if self._owns_checkpoint_store:
            await self._checkpoint_store.close()
        self._detach_log_store()

    def close_nowait(self) -> None:
        """Cancel the pending poll and detach owned stores without awaiting."""
        self._engine.halt()
        self._detach_log_store()

    def _detach_log_store(self) -> None:
        if self._owns_log_store and isinstance(self._log_store, ProcessLogStore):
            self._log_store.close()


# ---------------------------------------------------------------------------
# Module singleton
# ---------------------------------------------------------------------------

_client: LogRelayClient | None = None
_lock = threading.Lock()


def initialize(
    polling_interval: PollingInterval | float | None = None,
    checkpoint_store: CheckpointStore | None = None,
    log_store: LogStore | None = None,
    config: RelayConfig | None = None,
) -> LogRelayClient:
    """Create the process-wide client.

    Args:
        polling_interval: Defaults to config.polling_interval (MEDIUM, 30s).
        checkpoint_store: Defaults to the store named by config.checkpoint.
        log_store: Defaults to the store named by config.log_store.
        config: Defaults to RelayConfig.load() (env vars + YAML).

    Raises:
        AlreadyInitializedError: a client already exists.
        StoreUnavailableError: the configured log store could not be opened.
            The facade stays uninitialized.
    """
    global _client

    with _lock:
        if _client is not None:
            raise AlreadyInitializedError()

        cfg = config or RelayConfig.load()
        configured_here = not emitter.is_configured()
        emitter.configure(cfg)

        owns_log_store = log_store is None
        owns_checkpoint_store = checkpoint_store is None
        try:
            if log_store is None:
                log_store = cfg.build_log_store()
                if isinstance(log_store, ProcessLogStore):
                    log_store.install()
            if checkpoint_store is None:
                checkpoint_store = cfg.build_checkpoint_store()

            interval = PollingInterval.coerce(
                polling_interval if polling_interval is not None else cfg.polling_interval
            )
            engine = PollEngine(
                log_store,
                checkpoint_store,
                polling_interval=interval,
                should_pause_if_no_registered_drivers=cfg.pause_if_no_drivers,
            )
        except Exception:
            # Leave logging and the root logger as they were before the call.
            if owns_log_store and isinstance(log_store, ProcessLogStore):
                log_store.close()
            if configured_here:
                emitter.reset()
            raise
        _client = LogRelayClient(
            engine,
            log_store=log_store,
            checkpoint_store=checkpoint_store,
            owns_log_store=owns_log_store,
            owns_checkpoint_store=owns_checkpoint_store,
        )
        logger.info(
            "client.initialized",
            polling_interval=interval.seconds,
            log_store=type(log_store).__name__,
            checkpoint_store=type(checkpoint_store).__name__,
        )
        return _client


def get_client() -> LogRelayClient:
    if _client is None:
        raise NotInitializedError()
    return _client


def is_initialized() -> bool:
    return _client is not None


async def shutdown() -> None:
    """Close the client's polls and owned stores, then forget it."""
    client = _client
    if client is not None:
        await client.aclose()
    reset()


def reset() -> None:
    """Forget the client without awaiting anything. For tests.

    Pending polls are cancelled and an owned ProcessLogStore is detached;
    use shutdown() from async code to also close the checkpoint store.
    """
    global _client

    with _lock:
        client, _client = _client, None
    if client is None:
        return
    client.close_nowait()
