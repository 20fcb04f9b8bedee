"""Now resolver: what is airing at an instant, and what comes next."""

from __future__ import annotations

import threading

import pytest

from linearvue.infra.exceptions import ValidationError
from linearvue.runtime.block_store import BoundedBlockStore, InMemoryBlockStore
from linearvue.runtime.now_resolver import NowResolver, merge_block_entries
from linearvue.runtime.schedule_manager import ScheduleManager
from linearvue.runtime.schedule_types import ChannelSnapshot, NotScheduled, NowPlaying, ScheduleChanged
from linearvue.runtime.timeline_builder import TimelineBuilder
from schedule_helpers import MIN, T0, assert_contiguous, at


@pytest.fixture
def scheduled(manager, store):
    manager.ensure_horizon(1)
    return store


@pytest.fixture
def resolver(scheduled, clock, notifier):
    r = NowResolver(scheduled, clock, notifier)
    yield r
    r.close()


class TestResolve:
    def test_mid_program(self, resolver):
        now = resolver.resolve(1, at(minutes=40))
        assert isinstance(now, NowPlaying)
        assert now.entry.item_id == "B"
        assert now.offset_ms == 10 * MIN
        assert now.remaining_ms == 35 * MIN
        assert now.next_entry.item_id == "A"
        assert now.next_entry.start_time == at(minutes=75)

    def test_defaults_to_clock(self, resolver):
        now = resolver.resolve(1)
        assert now.at == at(minutes=10)
        assert now.entry.item_id == "A"
        assert now.offset_ms == 10 * MIN

    def test_start_instant_belongs_to_new_entry(self, resolver):
        now = resolver.resolve(1, at(minutes=30))
        assert now.entry.item_id == "B"
        assert now.offset_ms == 0

    def test_next_entry_from_following_block(self, resolver):
        now = resolver.resolve(1, at(hours=7, minutes=59))
        assert now.entry.end_time == at(hours=8)
        assert now.next_entry.item_id == "B"
        assert now.next_entry.start_time == at(hours=8)

    def test_straddling_entry_not_repeated_as_next(self, resolver):
        now = resolver.resolve(1, at(hours=15, minutes=59))
        assert now.entry.item_id == "B"
        assert now.entry.end_time == at(hours=16, minutes=15)
        assert now.next_entry.item_id == "A"
        assert now.next_entry.start_time == at(hours=16, minutes=15)

    def test_continuation_resolves_from_next_block(self, resolver):
        now = resolver.resolve(1, at(hours=16, minutes=5))
        assert now.entry.item_id == "B"
        assert now.offset_ms == 35 * MIN

    def test_no_block(self, resolver):
        result = resolver.resolve(1, at(hours=40))
        assert isinstance(result, NotScheduled)
        assert result.reason == "no_block"

    def test_no_program_in_empty_channel(self, manager, channels, store):
        channels.put(ChannelSnapshot(2, 2, "Empty", (), 1))
        manager.ensure_horizon(2)
        result = NowResolver(store).resolve(2, at(minutes=10))
        assert result.reason == "no_program"

    def test_naive_instant_rejected(self, resolver):
        with pytest.raises(ValidationError):
            resolver.resolve(1, T0.replace(tzinfo=None))


class _CountingStore(InMemoryBlockStore):
    def __init__(self):
        super().__init__()
        self.block_reads = 0

    def get_block_at(self, channel_id, at):
        self.block_reads += 1
        return super().get_block_at(channel_id, at)


class TestProjection:
    def test_cached_block_serves_repeat_reads(self, channels, catalog, clock):
        store = _CountingStore()
        ScheduleManager(channels, store, TimelineBuilder(catalog), clock, block_hours=8).ensure_horizon(1)
        resolver = NowResolver(store)

        assert resolver.resolve(1, at(minutes=40)).entry.item_id == "B"
        assert resolver.resolve(1, at(minutes=50)).entry.item_id == "B"
        assert store.block_reads == 1

        store.delete_channel_blocks(1)
        assert resolver.resolve(1, at(minutes=50)).reason == "no_block"
        assert 1 not in resolver._cache

    def test_rewrite_without_event_is_noticed(self, scheduled, channels, catalog, clock):
        # A second manager with no notifier stands in for another process.
        other = ScheduleManager(channels, scheduled, TimelineBuilder(catalog), clock, block_hours=8)
        warmed, fresh = NowResolver(scheduled), NowResolver(scheduled)
        assert warmed.resolve(1, at(minutes=80)).entry.item_id == "A"

        channels.set_items(1, ("C", "A"))
        assert other.regenerate_channel(1).status == "ok"

        assert warmed.resolve(1, at(minutes=80)).entry.item_id == "C"
        assert fresh.resolve(1, at(minutes=80)).entry.item_id == "C"

    def test_cache_is_bounded(self, manager, channels, store):
        for channel_id in (2, 3):
            channels.put(ChannelSnapshot(channel_id, channel_id, f"Ch{channel_id}", ("C",), 1))
        manager.ensure_all()
        resolver = NowResolver(store, cache_size=2)

        for channel_id in (1, 2, 3):
            assert isinstance(resolver.resolve(channel_id, at(minutes=40)), NowPlaying)
        assert list(resolver._cache) == [2, 3]

        with pytest.raises(ValidationError):
            NowResolver(store, cache_size=0)

    def test_change_event_drops_cache(self, resolver, manager, channels, clock):
        assert resolver.resolve(1, at(minutes=40)).next_entry.item_id == "A"
        clock.advance(minutes=30)
        channels.set_items(1, ("C", "A"))
        manager.ensure_horizon(1)
        assert resolver.resolve(1, at(minutes=40)).next_entry.item_id == "C"

    def test_close_unsubscribes(self, scheduled, notifier):
        resolver = NowResolver(scheduled, notifier=notifier)
        count = notifier.subscriber_count
        resolver.close()
        resolver.close()
        assert notifier.subscriber_count == count - 1
        notifier.publish(ScheduleChanged(1))


class _StalledStore(InMemoryBlockStore):
    def __init__(self, release: threading.Event):
        super().__init__()
        self.release = release

    def get_block_at(self, channel_id, at):
        self.release.wait(5)
        return super().get_block_at(channel_id, at)


def test_slow_store_reports_unavailable():
    release = threading.Event()
    store = BoundedBlockStore(_StalledStore(release), timeout_seconds=0.05)
    try:
        result = NowResolver(store).resolve(1, at(minutes=10))
        assert isinstance(result, NotScheduled)
        assert result.reason == "store_unavailable"
        assert "timed out" in result.error
    finally:
        release.set()
        store.close()


class TestSchedule:
    def test_merged_schedule_is_contiguous(self, resolver):
        entries = resolver.get_schedule(1)
        assert entries[0].start_time == T0
        assert len({(e.item_id, e.start_time) for e in entries}) == len(entries)
        assert_contiguous(entries)

    def test_range(self, resolver):
        entries = resolver.get_schedule(1, at(hours=8), at(hours=16))
        assert entries[0].start_time == at(hours=8)
        assert entries[-1].end_time == at(hours=16, minutes=15)

    def test_merge_drops_boundary_duplicates(self, scheduled):
        blocks = scheduled.get_blocks(1)
        merged = merge_block_entries(list(reversed(blocks)))
        assert len(merged) == sum(len(b.entries) for b in blocks) - 2


def test_reads_stay_consistent_during_regeneration(resolver, manager, channels, clock):
    clock.advance(minutes=30)
    seen = []
    stop = threading.Event()

    def read():
        while True:
            seen.append(resolver.resolve(1, at(minutes=40)))
            if stop.is_set():
                return

    reader = threading.Thread(target=read)
    reader.start()
    try:
        for items in [("C", "A"), ("A", "B"), ("B", "C"), ("A", "B")] * 3:
            channels.set_items(1, items)
            assert manager.regenerate_channel(1).status == "ok"
    finally:
        stop.set()
        reader.join(5)

    assert seen
    for result in seen:
        assert isinstance(result, NowPlaying)
        assert (result.entry.item_id, result.offset_ms) == ("B", 10 * MIN)
