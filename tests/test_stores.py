"""Tests for MemoryLogStore, ProcessLogStore and JsonlLogStore."""

from __future__ import annotations

import json
import logging

import pytest

from logrelay.errors import StoreQueryError, StoreUnavailableError
from logrelay.models import LogLevel
from logrelay.stores import JsonlLogStore, LogStore, MemoryLogStore, ProcessLogStore


class TestMemoryLogStore:
    def test_protocol(self):
        assert isinstance(MemoryLogStore(), LogStore)

    async def test_query_all_when_no_lower_bound(self, make_entry):
        store = MemoryLogStore([make_entry(1), make_entry(2)])
        assert len(await store.query(None)) == 2

    async def test_lower_bound_is_exclusive(self, make_entry, at):
        store = MemoryLogStore()
        store.extend([make_entry(1), make_entry(2), make_entry(3)])
        got = await store.query(at(2))
        assert [e.message for e in got] == ["m3"]

    async def test_keeps_store_order(self, make_entry):
        store = MemoryLogStore([make_entry(3), make_entry(1)])
        assert [e.message for e in await store.query(None)] == ["m3", "m1"]

    async def test_counts_queries(self):
        store = MemoryLogStore()
        await store.query(None)
        await store.query(None)
        assert store.query_count == 2


class TestProcessLogStore:
    @pytest.fixture
    def store(self):
        store = ProcessLogStore(capacity=3).install()
        previous = logging.getLogger().level
        logging.getLogger().setLevel(logging.INFO)
        yield store
        store.close()
        logging.getLogger().setLevel(previous)

    def test_protocol(self):
        assert isinstance(ProcessLogStore(), LogStore)

    async def test_captures_records(self, store):
        logging.getLogger("payments.api.http").warning("charge %s failed", "c_1")
        (entry,) = await store.query(None)
        assert entry.subsystem == "payments"
        assert entry.category == "api.http"
        assert entry.level is LogLevel.NOTICE
        assert entry.message == "charge c_1 failed"

    async def test_category_extra_overrides(self, store):
        logging.getLogger("payments").info("x", extra={"category": "billing", "components": [1]})
        (entry,) = await store.query(None)
        assert entry.category == "billing"
        assert entry.components == (1,)

    async def test_excludes_own_loggers(self, store):
        logging.getLogger("logrelay.engine").info("internal")
        logging.getLogger("logrelay").info("internal")
        logging.getLogger("logrelayish").info("kept")
        assert [e.message for e in await store.query(None)] == ["kept"]

    async def test_capacity_keeps_newest(self, store):
        for i in range(5):
            logging.getLogger("app").info("n%d", i)
        assert [e.message for e in await store.query(None)] == ["n2", "n3", "n4"]

    async def test_close_detaches(self, store):
        store.close()
        logging.getLogger("app").info("after close")
        assert len(store) == 0
        assert store not in logging.getLogger().handlers

    def test_install_is_idempotent(self, store):
        store.install()
        assert logging.getLogger().handlers.count(store) == 1


class TestJsonlLogStore:
    def _write(self, path, entries):
        path.write_text("".join(json.dumps(e.to_dict()) + "\n" for e in entries))

    def test_missing_path_is_unavailable(self):
        with pytest.raises(StoreUnavailableError) as info:
            JsonlLogStore(None)
        assert str(info.value).startswith("log store failed to resolve")

    def test_missing_file_is_unavailable(self, tmp_path):
        with pytest.raises(StoreUnavailableError):
            JsonlLogStore(tmp_path / "nope.jsonl")

    async def test_reads_entries_after_bound(self, tmp_path, make_entry, at):
        path = tmp_path / "logs.jsonl"
        self._write(path, [make_entry(1), make_entry(2), make_entry(3)])
        store = JsonlLogStore(path)
        assert [e.message for e in await store.query(at(1))] == ["m2", "m3"]

    async def test_skips_bad_lines(self, tmp_path, make_entry):
        path = tmp_path / "logs.jsonl"
        self._write(path, [make_entry(1)])
        with path.open("a") as f:
            f.write("not json\n\n")
            f.write(json.dumps(make_entry(2).to_dict()) + "\n")
        assert len(await JsonlLogStore(path).query(None)) == 2

    async def test_odd_field_types_are_tolerated(self, tmp_path, make_entry, caplog):
        path = tmp_path / "logs.jsonl"
        self._write(path, [make_entry(1)])
        odd = [
            {"timestamp": "2026-01-01T00:00:02+00:00", "level": 5, "message": "numeric level"},
            {"timestamp": "2026-01-01T00:00:03+00:00", "subsystem": None, "category": 7},
            {"timestamp": 4},
            ["not", "an", "object"],
            "2026-01-01T00:00:05+00:00",
        ]
        with path.open("a") as f:
            f.writelines(json.dumps(line) + "\n" for line in odd)

        with caplog.at_level(logging.WARNING):
            entries = await JsonlLogStore(path).query(None)

        assert [e.message for e in entries] == ["m1", "numeric level", ""]
        assert entries[1].level is LogLevel.UNDEFINED
        assert (entries[2].subsystem, entries[2].category) == ("", "7")
        bad = [r for r in caplog.records if r.getMessage() == "store.jsonl.bad_line"]
        assert len(bad) == 3

    async def test_file_removed_after_open_raises_query_error(self, tmp_path, make_entry):
        path = tmp_path / "logs.jsonl"
        self._write(path, [make_entry(1)])
        store = JsonlLogStore(path)
        path.unlink()
        with pytest.raises(StoreQueryError):
            await store.query(None)
