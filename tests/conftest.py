"""Shared fixtures for logrelay tests."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from logrelay import models
from logrelay.drivers import LogDriver
from logrelay.models import LogEntry, LogLevel

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def make_entry(
    seconds: float,
    subsystem: str = "app",
    category: str = "net",
    message: str = "",
    level: LogLevel = LogLevel.INFO,
) -> LogEntry:
    return LogEntry(
        timestamp=at(seconds),
        subsystem=subsystem,
        category=category,
        level=level,
        message=message or f"m{seconds:g}",
    )


class Recorder:
    """Handler that records every delivered entry's fields."""

    def __init__(self, log: list | None = None, name: str = "") -> None:
        self.calls: list[dict] = []
        self._log = log
        self._name = name

    def __call__(self, level, subsystem, category, timestamp, message, components):
        self.calls.append(
            {
                "level": level,
                "subsystem": subsystem,
                "category": category,
                "timestamp": timestamp,
                "message": message,
                "components": components,
            }
        )
        if self._log is not None:
            self._log.append((self._name, message))

    @property
    def messages(self) -> list[str]:
        return [c["message"] for c in self.calls]


def recording_driver(driver_id: str, filters=(), log: list | None = None) -> LogDriver:
    recorder = Recorder(log, driver_id)
    driver = LogDriver(driver_id, filters, handler=recorder)
    driver.recorder = recorder  # type: ignore[attr-defined]
    return driver


@pytest.fixture(autouse=True)
def _reset_logrelay():
    """Reset the facade singleton and the emitter around every test."""
    from logrelay.client import reset as reset_client
    from logrelay.observability.emitter import reset as reset_emitter

    reset_client()
    reset_emitter()
    yield
    reset_client()
    reset_emitter()


@pytest.fixture
def fast_intervals(monkeypatch):
    """Drop the one-second floor so scheduled-loop tests run quickly."""
    monkeypatch.setattr(models, "MINIMUM_INTERVAL_SECONDS", 0.01)


@pytest.fixture(name="make_entry")
def _make_entry_fixture():
    return make_entry


@pytest.fixture(name="at")
def _at_fixture():
    return at


@pytest.fixture
def driver_factory():
    return recording_driver
