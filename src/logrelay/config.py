"""Relay configuration: YAML file + env var overrides.

Priority: env var > YAML file > default.
Env vars use the LOGRELAY_{FIELD_NAME} convention (e.g. LOGRELAY_CHECKPOINT=sqlite).
YAML file default: ~/.logrelay/config.yaml (override with LOGRELAY_CONFIG).

All settings have safe defaults. Zero config required for an in-process
relay with stderr structured logging.

Logging architecture:
    Formatter:   LOGRELAY_LOG_FORMATTER=structlog (default) | stdlib
    Destination: LOGRELAY_LOG_DESTINATION=stderr (default) | jsonl
    Renderer:    LOGRELAY_LOG_FORMAT=json (default) | console
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

if TYPE_CHECKING:
    from logrelay.checkpoint import CheckpointStore
    from logrelay.stores import LogStore

_TRUTHY = {"1", "true", "on", "yes"}
_FALSY = {"0", "false", "off", "no"}
_DEFAULT_PATH = Path("~/.logrelay/config.yaml").expanduser()
_ENV_PREFIX = "LOGRELAY_"

DEFAULT_CHECKPOINT_KEY = "logrelay.lastProcessed"

_VALID_CHECKPOINTS = {"memory", "sqlite", "json"}
_VALID_LOG_STORES = {"process", "jsonl"}


def _coerce(raw: Any, default: Any, name: str) -> Any:
    """Coerce a YAML/env value to the type of the field default."""
    if isinstance(default, bool):
        if isinstance(raw, bool):
            return raw
        val = str(raw).lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
        raise ValueError(f"{name}={raw!r} is not a valid boolean")
    if isinstance(default, int):
        try:
            return int(raw)
        except (TypeError, ValueError) as err:
            raise ValueError(f"{name}={raw!r} is not a valid integer") from err
    if isinstance(default, float):
        try:
            return float(raw)
        except (TypeError, ValueError) as err:
            raise ValueError(f"{name}={raw!r} is not a valid number") from err
    if raw is None:
        return None
    return str(raw)


@dataclass
class RelayConfig:
    """Relay configuration: polling, checkpoint, log store, logging."""

    # --- Polling ---
    polling_interval: float = 30.0  # seconds, clamped to >= 1
    pause_if_no_drivers: bool = True

    # --- Checkpoint ---
    checkpoint: str = "sqlite"  # "memory" | "sqlite" | "json"
    checkpoint_key: str = DEFAULT_CHECKPOINT_KEY
    checkpoint_path: str | None = None  # default ~/.logrelay/checkpoints.{db,json}

    # --- Log store ---
    log_store: str = "process"  # "process" | "jsonl"
    log_store_path: str | None = None
    log_store_capacity: int = 10_000

    # --- Logging: formatter × destination ---
    log_formatter: str = "structlog"
    log_destination: str = "stderr"
    log_level: str = "INFO"
    log_format: str = "json"
    log_path: str | None = None

    # --- Events ---
    events_path: str | None = None

    # Where this config was read from, for diagnostics.
    source: str | None = field(default=None, repr=False, compare=False)

    @classmethod
    def load(cls, path: Path | None = None) -> RelayConfig:
        """Load from YAML file, then override with env vars."""
        env_path = os.environ.get(f"{_ENV_PREFIX}CONFIG")
        file_path = path or (Path(env_path) if env_path else _DEFAULT_PATH)
        file_values: dict[str, Any] = {}

        if file_path.exists():
            raw = yaml.safe_load(file_path.read_text()) or {}
            if isinstance(raw, dict):
                file_values = raw

        defaults = cls()
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            name = f.name
            if name == "source":
                continue
            default = getattr(defaults, name)
            env_key = f"{_ENV_PREFIX}{name.upper()}"
            if env_key in os.environ:
                kwargs[name] = _coerce(os.environ[env_key], default, env_key)
            elif name in file_values:
                kwargs[name] = _coerce(file_values[name], default, name)

        cfg = cls(**kwargs)
        cfg.source = str(file_path) if file_path.exists() else None
        cfg.validate()
        return cfg

    def validate(self) -> None:
        if self.checkpoint not in _VALID_CHECKPOINTS:
            raise ValueError(
                f"Unknown checkpoint strategy: {self.checkpoint!r}. "
                f"Available: {sorted(_VALID_CHECKPOINTS)}."
            )
        if self.log_store not in _VALID_LOG_STORES:
            raise ValueError(
                f"Unknown log store: {self.log_store!r}. "
                f"Available: {sorted(_VALID_LOG_STORES)}."
            )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "source"}

    # -- Collaborator factories --

    def build_checkpoint_store(self) -> CheckpointStore:
        from logrelay.checkpoint import (
            InMemoryCheckpointStore,
            JsonCheckpointStore,
            SqliteCheckpointStore,
        )

        self.validate()
        if self.checkpoint == "memory":
            return InMemoryCheckpointStore()
        if self.checkpoint == "json":
            return JsonCheckpointStore(self.checkpoint_key, self.checkpoint_path)
        return SqliteCheckpointStore(self.checkpoint_key, self.checkpoint_path)

    def build_log_store(self) -> LogStore:
        """Open the configured log store.

        Raises StoreUnavailableError when the store cannot be opened.
        """
        from logrelay.stores import JsonlLogStore, ProcessLogStore

        self.validate()
        if self.log_store == "jsonl":
            return JsonlLogStore(self.log_store_path)
        return ProcessLogStore(capacity=self.log_store_capacity)
