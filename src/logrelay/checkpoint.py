"""Checkpoint persistence: protocol + in-memory, JSON and SQLite backends.

CheckpointStore is the protocol. Code against it.
Durable:  SqliteCheckpointStore (ACID, async via aiosqlite), key-scoped
Fallback: JsonCheckpointStore (simple file, key-scoped)
Volatile: InMemoryCheckpointStore (process lifetime only)

A checkpoint is a single optional timezone-aware datetime, stored as an ISO
8601 string so it round-trips at full precision. Writing None removes it.
"""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, runtime_checkable

import aiosqlite

from logrelay.errors import CheckpointStoreError

_DEFAULT_DIR = Path("~/.logrelay").expanduser()


def _encode(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


def _decode(raw: str | None) -> datetime | None:
    if raw is None:
        return None
    value = datetime.fromisoformat(raw)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value


@runtime_checkable
class CheckpointStore(Protocol):
    """Protocol for last-processed checkpoint persistence."""

    async def read(self) -> datetime | None: ...
    async def write(self, value: datetime | None) -> None: ...
    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------


class InMemoryCheckpointStore:
    """Volatile storage. Starts empty every process."""

    def __init__(self, initial: datetime | None = None) -> None:
        self._value = _decode(_encode(initial)) if initial is not None else None

    async def read(self) -> datetime | None:
        return self._value

    async def write(self, value: datetime | None) -> None:
        self._value = _decode(_encode(value)) if value is not None else None

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# JSON backend
# ---------------------------------------------------------------------------


class JsonCheckpointStore:
    """Persists checkpoints in a JSON object keyed by caller-supplied key.

    File layout: {path} (default ~/.logrelay/checkpoints.json)
    JSON structure: { key: "2026-01-01T00:00:00+00:00" }
    """

    def __init__(self, key: str, path: str | Path | None = None) -> None:
        self._key = key
        self._path = Path(path) if path else _DEFAULT_DIR / "checkpoints.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def key(self) -> str:
        return self._key

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        raw = json.loads(self._path.read_text() or "{}")
        return raw if isinstance(raw, dict) else {}

    async def read(self) -> datetime | None:
        try:
            data = await asyncio.to_thread(self._load)
            return _decode(data.get(self._key))
        except (OSError, ValueError) as err:
            raise CheckpointStoreError(
                f"unable to read checkpoint {self._key!r} from {self._path}: {err}",
                "Check the file is readable and contains a JSON object.",
            ) from err

    async def write(self, value: datetime | None) -> None:
        def _write() -> None:
            data = self._load()
            if value is None:
                data.pop(self._key, None)
            else:
                data[self._key] = _encode(value)
            self._path.write_text(json.dumps(data, indent=2))

        try:
            await asyncio.to_thread(_write)
        except (OSError, ValueError) as err:
            raise CheckpointStoreError(
                f"unable to write checkpoint {self._key!r} to {self._path}: {err}",
                "Check the directory is writable.",
            ) from err

    async def close(self) -> None:
        """No-op for JSON backend (no connection to close)."""
        pass


# ---------------------------------------------------------------------------
# SQLite backend
# ---------------------------------------------------------------------------


class SqliteCheckpointStore:
    """ACID-safe checkpoint persistence with aiosqlite.

    File layout: {path} (default ~/.logrelay/checkpoints.db)
    One row per key; several relays can share a database with distinct keys.
    """

    def __init__(self, key: str, path: str | Path | None = None) -> None:
        self._key = key
        self._db_path = Path(path) if path else _DEFAULT_DIR / "checkpoints.db"
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: aiosqlite.Connection | None = None

    @property
    def key(self) -> str:
        return self._key

    async def _ensure_connection(self) -> aiosqlite.Connection:
        if self._conn is not None:
            return self._conn
        self._conn = await aiosqlite.connect(str(self._db_path))
        await self._conn.execute("PRAGMA journal_mode = WAL")
        await self._conn.execute("PRAGMA busy_timeout = 3000")
        await self._conn.execute("""
            CREATE TABLE IF NOT EXISTS checkpoints (
                key TEXT PRIMARY KEY,
                last_processed TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._conn.commit()
        return self._conn

    async def read(self) -> datetime | None:
        try:
            conn = await self._ensure_connection()
            async with conn.execute(
                "SELECT last_processed FROM checkpoints WHERE key = ?",
                (self._key,),
            ) as cursor:
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as err:
            raise CheckpointStoreError(
                f"unable to read checkpoint {self._key!r} from {self._db_path}: {err}"
            ) from err
        return _decode(row[0]) if row is not None else None

    async def write(self, value: datetime | None) -> None:
        try:
            conn = await self._ensure_connection()
            if value is None:
                await conn.execute("DELETE FROM checkpoints WHERE key = ?", (self._key,))
            else:
                await conn.execute(
                    "INSERT OR REPLACE INTO checkpoints (key, last_processed, updated_at) "
                    "VALUES (?, ?, ?)",
                    (self._key, _encode(value), datetime.now(UTC).isoformat()),
                )
            await conn.commit()
        except (aiosqlite.Error, OSError) as err:
            raise CheckpointStoreError(
                f"unable to write checkpoint {self._key!r} to {self._db_path}: {err}"
            ) from err

    async def close(self) -> None:
        """Close the underlying aiosqlite connection.

        Call this during teardown to avoid RuntimeError('Event loop is closed')
        from aiosqlite's background thread.
        """
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()
