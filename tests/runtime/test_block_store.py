"""
Block store implementations: in-memory, SQL and the timeout wrapper.

The SQL store runs against the per-test SQLite database from conftest.
"""

from __future__ import annotations

import dataclasses
import threading

import pytest

from linearvue.infra.exceptions import StoreError, StoreTimeoutError
from linearvue.runtime.block_store import BoundedBlockStore, InMemoryBlockStore, SqlBlockStore
from linearvue.runtime.schedule_types import BlockSeed, Cursor, FillerPolicy, ScheduleBlock
from linearvue.runtime.timeline_builder import build_timeline
from linearvue.usecases.channel_add import add_channel
from schedule_helpers import MIN, T0, at, playlist

ITEMS = playlist(("A", 30), ("B", 45))
FILL = FillerPolicy(fill_ms=5 * MIN)


def _chain(channel_id: int, count: int, version: int = 1) -> list[ScheduleBlock]:
    """``count`` consecutive 8h blocks starting at T0."""
    blocks = []
    seed = BlockSeed(Cursor(0, 0, "A"))
    for i in range(count):
        start, end = at(hours=8 * i), at(hours=8 * (i + 1))
        result = build_timeline(ITEMS, seed.cursor, start, end, filler=FILL, lead_in=seed.lead_in)
        blocks.append(
            ScheduleBlock(
                channel_id=channel_id,
                block_start=start,
                block_end=end,
                entries=tuple(result.entries),
                seed=seed,
                next_seed=result.next_seed,
                content_version=version,
                generated_at=T0,
            )
        )
        seed = result.next_seed
    return blocks


@pytest.fixture
def sql_store(db_session, session_factory):
    add_channel(db_session, name="One", item_ids=["A", "B"])
    add_channel(db_session, name="Two", item_ids=["B"])
    return SqlBlockStore(session_factory)


@pytest.fixture(params=["memory", "sql"])
def any_store(request):
    if request.param == "memory":
        return InMemoryBlockStore()
    return request.getfixturevalue("sql_store")


class TestBlockStoreContract:
    def test_replace_then_read(self, any_store):
        blocks = _chain(1, 3)
        assert any_store.replace_blocks(1, blocks) == 3

        assert any_store.get_blocks(1) == blocks
        assert any_store.get_block(1, at(hours=8)) == blocks[1]
        assert any_store.get_block(1, at(hours=9)) is None
        assert any_store.get_block_at(1, at(hours=8)) == blocks[1]
        assert any_store.get_block_at(1, at(hours=23, minutes=59)) == blocks[2]
        assert any_store.get_block_at(1, at(hours=24)) is None
        assert any_store.get_blocks(2) == []

    def test_range_query_uses_overlap(self, any_store):
        blocks = _chain(1, 3)
        any_store.replace_blocks(1, blocks)
        assert any_store.get_blocks(1, at(hours=10), at(hours=16)) == [blocks[1]]
        assert any_store.get_blocks(1, at(hours=8)) == blocks[1:]
        assert any_store.get_blocks(1, None, at(hours=8)) == [blocks[0]]

    def test_replace_overwrites_by_block_start(self, any_store):
        any_store.replace_blocks(1, _chain(1, 2))
        newer = _chain(1, 1, version=2)
        any_store.replace_blocks(1, newer)

        stored = any_store.get_blocks(1)
        assert len(stored) == 2
        assert stored[0].content_version == 2
        assert stored[1].content_version == 1

    def test_replace_is_idempotent(self, any_store):
        blocks = _chain(1, 2)
        any_store.replace_blocks(1, blocks)
        any_store.replace_blocks(1, blocks)
        assert any_store.get_blocks(1) == blocks

    def test_rejects_foreign_blocks(self, any_store):
        with pytest.raises(ValueError):
            any_store.replace_blocks(2, _chain(1, 1))

    def test_prune_drops_finished_blocks(self, any_store):
        any_store.replace_blocks(1, _chain(1, 3))
        any_store.replace_blocks(2, _chain(2, 1))
        assert any_store.prune(at(hours=8)) == 2
        assert [b.block_start for b in any_store.get_blocks(1)] == [at(hours=8), at(hours=16)]
        assert any_store.get_blocks(2) == []

    def test_delete_channel_blocks(self, any_store):
        any_store.replace_blocks(1, _chain(1, 2))
        any_store.replace_blocks(2, _chain(2, 1))
        assert any_store.delete_channel_blocks(1) == 2
        assert any_store.get_blocks(1) == []
        assert len(any_store.get_blocks(2)) == 1

    def test_block_stamp(self, any_store):
        any_store.replace_blocks(1, _chain(1, 2))
        assert any_store.get_block_stamp(1, at(hours=8)) == (1, T0)
        assert any_store.get_block_stamp(1, at(hours=16)) is None

        any_store.replace_blocks(1, _chain(1, 1, version=3))
        assert any_store.get_block_stamp(1, T0) == any_store.get_block(1, T0).stamp == (3, T0)


class TestSqlBlockStore:
    def test_round_trip_keeps_lead_in_and_utc(self, sql_store):
        blocks = _chain(1, 2)
        sql_store.replace_blocks(1, blocks)
        stored = sql_store.get_block(1, at(hours=8))
        assert stored.block_start.tzinfo is not None
        assert stored.seed == blocks[1].seed
        assert stored.entries[0].item_id == "B"
        assert stored.entries[0].start_time == at(hours=8)
        assert stored.generated_at == T0

    def test_unknown_channel_is_a_store_error(self, sql_store):
        with pytest.raises(StoreError):
            sql_store.replace_blocks(99, _chain(99, 1))
        assert sql_store.get_blocks(99) == []

    def test_failed_write_rolls_back_whole_batch(self, sql_store):
        original = _chain(1, 3)
        sql_store.replace_blocks(1, original)

        newer = _chain(1, 3, version=2)
        newer[-1] = dataclasses.replace(newer[-1], block_end=newer[-1].block_start)
        with pytest.raises(StoreError):
            sql_store.replace_blocks(1, newer)
        assert sql_store.get_blocks(1) == original


class _SlowStore(InMemoryBlockStore):
    def __init__(self, release: threading.Event):
        super().__init__()
        self.release = release

    def get_block_at(self, channel_id, at):
        self.release.wait(5)
        return super().get_block_at(channel_id, at)


class _StalledWriteStore(InMemoryBlockStore):
    """Holds the first write until released and records write order by version."""

    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.order = []

    def replace_blocks(self, channel_id, blocks):
        blocks = list(blocks)
        self.order.append(blocks[0].content_version)
        if len(self.order) == 1:
            self.release.wait(5)
        return super().replace_blocks(channel_id, blocks)


class TestBoundedBlockStore:
    def test_passes_calls_through(self):
        inner = InMemoryBlockStore()
        store = BoundedBlockStore(inner, timeout_seconds=2)
        try:
            store.replace_blocks(1, _chain(1, 1))
            assert store.get_block_at(1, at(minutes=10)) == inner.get_block_at(1, at(minutes=10))
            assert store.prune(at(hours=8)) == 1
            assert store.inner is inner
        finally:
            store.close()

    def test_slow_call_times_out(self):
        release = threading.Event()
        store = BoundedBlockStore(_SlowStore(release), timeout_seconds=0.05)
        try:
            with pytest.raises(StoreTimeoutError):
                store.get_block_at(1, T0)
        finally:
            release.set()
            store.close()

    def test_timeout_must_be_positive(self):
        with pytest.raises(ValueError):
            BoundedBlockStore(InMemoryBlockStore(), timeout_seconds=0)

    def test_writes_for_one_channel_run_in_order(self):
        inner = _StalledWriteStore()
        store = BoundedBlockStore(inner, timeout_seconds=0.2)
        try:
            with pytest.raises(StoreTimeoutError):
                store.replace_blocks(1, _chain(1, 1))
            settled = threading.Event()
            store.after_writes(1, settled.set)
            assert not settled.is_set()

            inner.release.set()
            assert store.replace_blocks(1, _chain(1, 1, version=2)) == 1
            assert settled.wait(5)
            assert inner.order == [1, 2]
            assert store.get_block(1, T0).content_version == 2
        finally:
            inner.release.set()
            store.close()

    def test_after_writes_runs_at_once_when_idle(self):
        store = BoundedBlockStore(InMemoryBlockStore(), timeout_seconds=1)
        try:
            calls = []
            store.after_writes(1, lambda: calls.append(1))
            assert calls == [1]
        finally:
            store.close()

