"""Now Resolver: (channel, instant) -> what is airing and how far in.

Read-only. Never takes a write lock and never triggers generation. Store
failures are reported as ``NotScheduled(reason="store_unavailable")`` so
callers can tell a transient outage apart from a channel with no schedule.

The resolver keeps a small projection: the block it last served per channel,
for at most ``cache_size`` channels. While ``at`` stays inside that block a
lookup costs one stamp read (content_version, generated_at) plus an in-memory
bisect, so a block rewritten by another process is noticed on the next read.
A change event for the channel drops its cached block outright.
"""

from __future__ import annotations

import logging
import threading
from bisect import bisect_right
from collections import OrderedDict
from datetime import datetime, timedelta

from linearvue.domain.interfaces import BlockStore
from linearvue.infra.exceptions import StoreError, ValidationError
from linearvue.runtime.change_notifier import ChangeNotifier
from linearvue.runtime.clock import MasterClock
from linearvue.runtime.schedule_types import (
    NotScheduled,
    NowPlaying,
    ScheduleBlock,
    ScheduleChanged,
    ScheduledEntry,
)

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)


def merge_block_entries(blocks: list[ScheduleBlock]) -> list[ScheduledEntry]:
    """Concatenate block entries in order, dropping boundary duplicates."""
    merged: list[ScheduledEntry] = []
    for block in sorted(blocks, key=lambda b: b.block_start):
        for entry in block.entries:
            if merged and entry.start_time <= merged[-1].start_time:
                continue
            merged.append(entry)
    return merged


class NowResolver:
    def __init__(
        self,
        store: BlockStore,
        clock: MasterClock | None = None,
        notifier: ChangeNotifier | None = None,
        cache_size: int = 256,
    ):
        if cache_size < 1:
            raise ValidationError("cache_size must be at least 1")
        self._store = store
        self._clock = clock or MasterClock()
        self._cache: OrderedDict[int, ScheduleBlock] = OrderedDict()
        self._cache_size = cache_size
        self._epoch = 0
        self._lock = threading.Lock()
        self._unsubscribe = notifier.subscribe(self._on_change) if notifier else None

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # ------------------------------------------------------------------
    # Projection
    # ------------------------------------------------------------------

    def _on_change(self, event: ScheduleChanged) -> None:
        self.invalidate(event.channel_id)

    def invalidate(self, channel_id: int | None = None) -> None:
        with self._lock:
            self._epoch += 1
            if channel_id is None:
                self._cache.clear()
            else:
                self._cache.pop(channel_id, None)

    def _block_at(self, channel_id: int, at: datetime) -> ScheduleBlock | None:
        with self._lock:
            cached = self._cache.get(channel_id)
            epoch = self._epoch
        if cached is not None and cached.covers(at):
            if self._store.get_block_stamp(channel_id, cached.block_start) == cached.stamp:
                with self._lock:
                    if channel_id in self._cache:
                        self._cache.move_to_end(channel_id)
                return cached
        block = self._store.get_block_at(channel_id, at)
        with self._lock:
            # Drop the result if an invalidation raced with the read.
            if self._epoch != epoch:
                return block
            if block is None:
                self._cache.pop(channel_id, None)
            else:
                self._cache[channel_id] = block
                self._cache.move_to_end(channel_id)
                while len(self._cache) > self._cache_size:
                    self._cache.popitem(last=False)
        return block

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def resolve(self, channel_id: int, at: datetime | None = None) -> NowPlaying | NotScheduled:
        at = at or self._clock.now_utc()
        if at.tzinfo is None:
            raise ValidationError("at must be timezone-aware")

        try:
            block = self._block_at(channel_id, at)
        except StoreError as e:
            logger.warning("Now lookup for channel %s failed: %s", channel_id, e)
            return NotScheduled(channel_id, at, "store_unavailable", error=str(e))
        if block is None:
            return NotScheduled(channel_id, at, "no_block")

        entries = block.entries
        idx = bisect_right([e.start_time for e in entries], at) - 1
        if idx < 0 or not entries[idx].contains(at):
            return NotScheduled(channel_id, at, "no_program")

        entry = entries[idx]
        offset_ms = (at - entry.start_time) // _ONE_MS
        return NowPlaying(
            channel_id=channel_id,
            entry=entry,
            offset_ms=offset_ms,
            at=at,
            next_entry=self._next_entry(block, idx),
        )

    def _next_entry(self, block: ScheduleBlock, idx: int) -> ScheduledEntry | None:
        current = block.entries[idx]
        for entry in block.entries[idx + 1 :]:
            if entry.start_time > current.start_time:
                return entry
        try:
            following = self._store.get_block(block.channel_id, block.block_end)
        except StoreError as e:
            logger.warning("Next-entry lookup for channel %s failed: %s", block.channel_id, e)
            return None
        if following is None:
            return None
        for entry in following.entries:
            if entry.start_time > current.start_time:
                return entry
        return None

    def get_schedule(
        self,
        channel_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ScheduledEntry]:
        """All persisted entries for a channel, in order.

        Raises:
            StoreError: If the store is unavailable.
        """
        return merge_block_entries(self._store.get_blocks(channel_id, start, end))
