"""logrelay: poll a log store and relay filtered entries to registered drivers."""

from logrelay.checkpoint import (
    CheckpointStore,
    InMemoryCheckpointStore,
    JsonCheckpointStore,
    SqliteCheckpointStore,
)
from logrelay.client import (
    LogRelayClient,
    get_client,
    initialize,
    is_initialized,
    reset,
    shutdown,
)
from logrelay.config import RelayConfig
from logrelay.dispatch import Dispatcher
from logrelay.drivers import LogDriver, LogHandler, LogSink
from logrelay.engine import EngineState, PollEngine, ScheduledPoll
from logrelay.errors import (
    AlreadyInitializedError,
    CheckpointStoreError,
    LogRelayError,
    NotInitializedError,
    StoreQueryError,
    StoreUnavailableError,
)
from logrelay.filters import CategoryFilter, LogFilter
from logrelay.models import LogEntry, LogLevel, PollingInterval
from logrelay.registry import DriverRegistry
from logrelay.stores import JsonlLogStore, LogStore, MemoryLogStore, ProcessLogStore

__all__ = [
    # Facade
    "initialize",
    "get_client",
    "is_initialized",
    "reset",
    "shutdown",
    "LogRelayClient",
    "RelayConfig",
    # Core
    "PollEngine",
    "ScheduledPoll",
    "EngineState",
    "DriverRegistry",
    "Dispatcher",
    # Types
    "LogEntry",
    "LogLevel",
    "PollingInterval",
    "CategoryFilter",
    "LogFilter",
    "LogDriver",
    "LogHandler",
    "LogSink",
    # Stores
    "LogStore",
    "MemoryLogStore",
    "ProcessLogStore",
    "JsonlLogStore",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "JsonCheckpointStore",
    "SqliteCheckpointStore",
    # Errors
    "LogRelayError",
    "NotInitializedError",
    "AlreadyInitializedError",
    "StoreUnavailableError",
    "StoreQueryError",
    "CheckpointStoreError",
]
