"""Schedule Manager: keeps each channel's persisted blocks current.

Single entry point for every write to the block store. Both on-demand
regeneration (content changed, operator request) and the Horizon Keeper's
periodic extension go through the same per-channel gate, so at most one
generation runs per channel at a time. Requests that arrive while a run is in
flight are merged into a single follow-up run.

Rebuild algorithm for one channel:

1. Take the grid blocks overlapping [now, now + lookahead).
2. The first dirty block is the first one that is missing or was built from
   an older content_version (for a forced run: the block containing now).
3. Seed it from the previous block's next_seed, remapped onto the current
   item list when that block predates the current content_version.
4. If the dirty block is the one airing now, it is rebuilt in place: entries
   that already aired and the entry airing now are kept; the new content
   starts where the airing entry ends.
5. Chain next_seed -> seed through the rest of the window, then keep going
   through already-persisted blocks until one reconnects (same version, same
   seed).
6. Commit every changed block in one store call, then publish a change event.
"""

from __future__ import annotations

import threading
from bisect import bisect_right
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta

from linearvue.domain.interfaces import BlockStore, ChannelSource
from linearvue.infra.exceptions import ResourceError, StoreError, ValidationError
from linearvue.infra.logging import get_logger
from linearvue.runtime import grid
from linearvue.runtime.change_notifier import ChangeNotifier
from linearvue.runtime.clock import MasterClock
from linearvue.runtime.schedule_types import (
    BatchResult,
    BlockSeed,
    ChannelSnapshot,
    Cursor,
    PlaylistItem,
    RegenerationResult,
    ScheduleBlock,
    ScheduleChanged,
    ScheduledEntry,
    TimelineResult,
)
from linearvue.runtime.timeline_builder import TimelineBuilder, build_timeline, slot_length_ms

logger = get_logger(__name__)


class _ChannelGate:
    """Per-channel coalescing gate.

    ``requested`` counts requests; ``completed`` is the highest request number
    covered by a finished run. A run covers every request made before it
    started. ``running`` stays set until the run's store writes have settled,
    which can be after the run itself returned on a store timeout. ``users``
    counts callers holding the gate; idle gates are dropped.
    """

    def __init__(self) -> None:
        self.cond = threading.Condition()
        self.running = False
        self.requested = 0
        self.completed = 0
        self.pending_force = False
        self.pending_lookahead = 0
        self.last_result: RegenerationResult | None = None
        self.users = 0


@dataclass(frozen=True)
class _RunRequest:
    channel: ChannelSnapshot
    now: datetime
    lookahead_blocks: int
    force: bool
    cancel: threading.Event | None


class ScheduleManager:
    def __init__(
        self,
        channel_source: ChannelSource,
        store: BlockStore,
        builder: TimelineBuilder,
        clock: MasterClock | None = None,
        *,
        block_hours: int = grid.DEFAULT_BLOCK_HOURS,
        lookahead_blocks: int = 3,
        max_workers: int = 4,
        notifier: ChangeNotifier | None = None,
    ):
        if lookahead_blocks < 1:
            raise ValidationError("lookahead_blocks must be >= 1")
        if max_workers < 1:
            raise ValidationError("max_workers must be >= 1")
        self._channels = channel_source
        self._store = store
        self._builder = builder
        self._clock = clock or MasterClock()
        self._block_hours = block_hours
        self._block_size = timedelta(hours=block_hours)
        self._lookahead_blocks = lookahead_blocks
        self._max_workers = max_workers
        self._notifier = notifier

        self._gates: dict[int, _ChannelGate] = {}
        self._gates_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def block_hours(self) -> int:
        return self._block_hours

    @property
    def lookahead_blocks(self) -> int:
        return self._lookahead_blocks

    def ensure_horizon(
        self,
        channel: ChannelSnapshot | int,
        now: datetime | None = None,
        lookahead_blocks: int | None = None,
        cancel: threading.Event | None = None,
    ) -> RegenerationResult:
        """Generate missing or stale blocks covering [now, now + lookahead)."""
        return self._request(channel, now, lookahead_blocks, force=False, cancel=cancel)

    def regenerate_channel(
        self,
        channel: ChannelSnapshot | int,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> RegenerationResult:
        """Rebuild from the block containing ``now`` forward.

        Past blocks are untouched; in the airing block, entries that already
        aired and the entry airing now are preserved.
        """
        return self._request(channel, now, None, force=True, cancel=cancel)

    def ensure_all(
        self, now: datetime | None = None, cancel: threading.Event | None = None
    ) -> BatchResult:
        return self._batch(now, force=False, cancel=cancel)

    def regenerate_all(
        self, now: datetime | None = None, cancel: threading.Event | None = None
    ) -> BatchResult:
        return self._batch(now, force=True, cancel=cancel)

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    def _acquire_gate(self, channel_id: int) -> _ChannelGate:
        with self._gates_lock:
            gate = self._gates.get(channel_id)
            if gate is None:
                gate = self._gates[channel_id] = _ChannelGate()
            gate.users += 1
            return gate

    def _drop_if_idle(self, channel_id: int, gate: _ChannelGate) -> None:
        with self._gates_lock:
            with gate.cond:
                idle = gate.users == 0 and not gate.running
            if idle and self._gates.get(channel_id) is gate:
                del self._gates[channel_id]

    def _leave_gate(self, channel_id: int, gate: _ChannelGate) -> None:
        with self._gates_lock:
            gate.users -= 1
        self._drop_if_idle(channel_id, gate)

    def _release_gate(self, channel_id: int, gate: _ChannelGate) -> None:
        with gate.cond:
            gate.running = False
            gate.cond.notify_all()
        self._drop_if_idle(channel_id, gate)

    def _resolve_channel(self, channel: ChannelSnapshot | int) -> ChannelSnapshot:
        if isinstance(channel, ChannelSnapshot):
            return channel
        snapshot = self._channels.get_channel(channel)
        if snapshot is None:
            raise ResourceError(f"Channel {channel} not found")
        return snapshot

    def _request(
        self,
        channel: ChannelSnapshot | int,
        now: datetime | None,
        lookahead_blocks: int | None,
        *,
        force: bool,
        cancel: threading.Event | None,
    ) -> RegenerationResult:
        lookahead = self._lookahead_blocks if lookahead_blocks is None else lookahead_blocks
        if lookahead < 1:
            raise ValidationError("lookahead_blocks must be >= 1")
        if now is not None and now.tzinfo is None:
            raise ValidationError("now must be timezone-aware")
        snapshot = self._resolve_channel(channel)

        gate = self._acquire_gate(snapshot.id)
        try:
            return self._gated_run(gate, snapshot, now, lookahead, force, cancel)
        finally:
            self._leave_gate(snapshot.id, gate)

    def _gated_run(
        self,
        gate: _ChannelGate,
        snapshot: ChannelSnapshot,
        now: datetime | None,
        lookahead: int,
        force: bool,
        cancel: threading.Event | None,
    ) -> RegenerationResult:
        with gate.cond:
            gate.requested += 1
            ticket = gate.requested
            gate.pending_force = gate.pending_force or force
            gate.pending_lookahead = max(gate.pending_lookahead, lookahead)
            while True:
                if gate.completed >= ticket and gate.last_result is not None:
                    return gate.last_result
                if not gate.running:
                    break
                gate.cond.wait()
            gate.running = True
            covered = gate.requested
            run_force = gate.pending_force
            run_lookahead = gate.pending_lookahead
            gate.pending_force = False
            gate.pending_lookahead = 0

        result: RegenerationResult | None = None
        try:
            result = self._run(
                _RunRequest(
                    channel=snapshot,
                    now=now or self._clock.now_utc(),
                    lookahead_blocks=run_lookahead,
                    force=run_force,
                    cancel=cancel,
                )
            )
        finally:
            with gate.cond:
                if result is None:
                    result = RegenerationResult(snapshot.id, "failed", error="generation aborted")
                gate.completed = covered
                gate.last_result = result
                gate.cond.notify_all()
            # A write that timed out may still be executing; the next run
            # for this channel waits for it.
            self._store.after_writes(snapshot.id, lambda: self._release_gate(snapshot.id, gate))
        return result

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    def _batch(
        self, now: datetime | None, *, force: bool, cancel: threading.Event | None
    ) -> BatchResult:
        now = now or self._clock.now_utc()
        channels = self._channels.list_channels()
        batch = BatchResult()
        if not channels:
            return batch

        def _one(channel: ChannelSnapshot) -> RegenerationResult:
            if cancel is not None and cancel.is_set():
                return RegenerationResult(channel.id, "cancelled")
            try:
                if force:
                    return self.regenerate_channel(channel, now, cancel=cancel)
                return self.ensure_horizon(channel, now, cancel=cancel)
            except Exception as e:
                logger.exception("schedule_batch_channel_failed", channel_id=channel.id)
                return RegenerationResult(channel.id, "failed", error=str(e))

        with ThreadPoolExecutor(
            max_workers=min(self._max_workers, len(channels)),
            thread_name_prefix="schedule-manager",
        ) as pool:
            batch.results = list(pool.map(_one, channels))
        batch.cancelled = cancel is not None and cancel.is_set()
        logger.info(
            "schedule_batch_complete",
            force=force,
            channels=len(channels),
            blocks_written=batch.blocks_written,
            failed=len(batch.failed),
            cancelled=batch.cancelled,
        )
        return batch

    # ------------------------------------------------------------------
    # One run
    # ------------------------------------------------------------------

    def _run(self, req: _RunRequest) -> RegenerationResult:
        channel = req.channel
        log = logger.bind(channel_id=channel.id)
        try:
            # Re-read so a coalesced follow-up sees the latest item list.
            channel = self._channels.get_channel(channel.id) or channel
            log = log.bind(content_version=channel.content_version)
            if req.cancel is not None and req.cancel.is_set():
                return RegenerationResult(channel.id, "cancelled")
            blocks = self._plan(channel, req)
            if not blocks:
                return RegenerationResult(channel.id, "unchanged")
            if req.cancel is not None and req.cancel.is_set():
                log.info("schedule_regeneration_cancelled", pending_blocks=len(blocks))
                return RegenerationResult(channel.id, "cancelled")
            written = self._store.replace_blocks(channel.id, blocks)
        except StoreError as e:
            log.error("schedule_regeneration_failed", error=str(e), force=req.force)
            return RegenerationResult(channel.id, "failed", error=str(e))
        except Exception as e:
            log.exception("schedule_regeneration_failed", force=req.force)
            return RegenerationResult(channel.id, "failed", error=str(e))

        log.info(
            "schedule_regenerated",
            blocks_written=written,
            first_block=blocks[0].block_start.isoformat(),
            last_block=blocks[-1].block_start.isoformat(),
            force=req.force,
        )
        if self._notifier is not None:
            self._notifier.publish(ScheduleChanged(channel.id, written))
        return RegenerationResult(channel.id, "ok", blocks_written=written)

    def _plan(self, channel: ChannelSnapshot, req: _RunRequest) -> list[ScheduleBlock]:
        """Compute the blocks that must be written (possibly none)."""
        window = grid.window_blocks(req.now, req.lookahead_blocks, self._block_hours)
        current_start = window[0][0]
        existing = {b.block_start: b for b in self._store.get_blocks(channel.id, current_start)}

        first_dirty: int | None = 0 if req.force else None
        if first_dirty is None:
            for i, (start, _) in enumerate(window):
                block = existing.get(start)
                if block is None or block.content_version != channel.content_version:
                    first_dirty = i
                    break
        if first_dirty is None:
            return []

        items = self._builder.resolve_items(channel)
        generated_at = self._clock.now_utc()
        planned: list[ScheduleBlock] = []

        dirty_start = window[first_dirty][0]
        airing = existing.get(dirty_start) if first_dirty == 0 else None
        if airing is not None:
            block = self._rebuild_airing(channel, items, airing, req.now, generated_at)
        else:
            if first_dirty > 0:
                seed = self._carry_seed(channel, existing[window[first_dirty - 1][0]])
            else:
                seed = self._seed_before(channel, items, dirty_start)
            block = self._build_block(channel, items, seed, dirty_start, generated_at)
        planned.append(block)

        for start, _ in window[first_dirty + 1 :]:
            block = self._build_block(channel, items, planned[-1].next_seed, start, generated_at)
            planned.append(block)

        # Past the window: rebuild persisted blocks until the chain reconnects.
        start = window[-1][1]
        while start in existing:
            old = existing[start]
            seed = planned[-1].next_seed
            if old.content_version == channel.content_version and old.seed == seed:
                break
            planned.append(self._build_block(channel, items, seed, start, generated_at))
            start += self._block_size

        return [b for b in planned if existing.get(b.block_start) != b]

    def _build_block(
        self,
        channel: ChannelSnapshot,
        items: Sequence[PlaylistItem],
        seed: BlockSeed,
        start: datetime,
        generated_at: datetime,
    ) -> ScheduleBlock:
        end = start + self._block_size
        result = build_timeline(
            items, seed.cursor, start, end, filler=self._builder.filler, lead_in=seed.lead_in
        )
        return ScheduleBlock(
            channel_id=channel.id,
            block_start=start,
            block_end=end,
            entries=tuple(result.entries),
            seed=seed,
            next_seed=result.next_seed,
            content_version=channel.content_version,
            generated_at=generated_at,
        )

    def _rebuild_airing(
        self,
        channel: ChannelSnapshot,
        items: Sequence[PlaylistItem],
        block: ScheduleBlock,
        now: datetime,
        generated_at: datetime,
    ) -> ScheduleBlock:
        """Rebuild the block airing at ``now``, keeping everything up to the airing entry."""
        entries = block.entries
        idx = bisect_right([e.start_time for e in entries], now) - 1
        if idx < 0 or not entries[idx].contains(now):
            seed = self._carry_seed(channel, block, own=True)
            return self._build_block(channel, items, seed, block.block_start, generated_at)

        airing = entries[idx]
        result = self._replay_airing(items, airing, block.block_end)
        if result is None:
            result = build_timeline(
                items,
                _cursor_after(airing, items, self._builder),
                block.block_start,
                block.block_end,
                filler=self._builder.filler,
                lead_in=airing,
            )
        return ScheduleBlock(
            channel_id=channel.id,
            block_start=block.block_start,
            block_end=block.block_end,
            entries=tuple(entries[:idx]) + tuple(result.entries),
            seed=block.seed,
            next_seed=result.next_seed,
            content_version=channel.content_version,
            generated_at=generated_at,
        )

    def _replay_airing(
        self, items: Sequence[PlaylistItem], airing: ScheduledEntry, block_end: datetime
    ) -> TimelineResult | None:
        """Rebuild from the airing entry's own slot if that reproduces it exactly.

        Keeps the chain in plain cursor form while the airing item is still
        where it was, so rebuilding unchanged content yields identical blocks.
        Returns None when the airing entry has to be carried as a lead-in.
        """
        index = airing.slot_index
        if index >= len(items):
            return None
        item = items[index]
        offset = item.duration_ms if airing.kind == "interstitial" and item.playable else 0
        result = build_timeline(
            items,
            Cursor(index, offset, item.item_id),
            airing.start_time,
            block_end,
            filler=self._builder.filler,
        )
        if not result.entries or result.entries[0] != airing:
            return None
        return result

    def _carry_seed(
        self, channel: ChannelSnapshot, block: ScheduleBlock, own: bool = False
    ) -> BlockSeed:
        """Seed following ``block`` (or ``block``'s own seed), remapped if stale."""
        seed = block.seed if own else block.next_seed
        if block.content_version == channel.content_version:
            return seed
        return BlockSeed(seed.cursor.remap(channel.item_ids), seed.lead_in)

    def _seed_before(
        self, channel: ChannelSnapshot, items: Sequence[PlaylistItem], start: datetime
    ) -> BlockSeed:
        """Seed for ``start`` when the block before it was not in the window.

        Continues from the latest persisted block before ``start``,
        fast-forwarding across any gap. A channel with no history starts at
        the top of its list.
        """
        history = self._store.get_blocks(channel.id, None, start)
        history = [b for b in history if b.block_end <= start]
        if not history:
            return BlockSeed(Cursor(0, 0, items[0].item_id if items else None))
        last = history[-1]
        seed = self._carry_seed(channel, last)
        t = last.block_end
        while t < start:
            step_end = min(t + self._block_size, start)
            result = build_timeline(
                items, seed.cursor, t, step_end, filler=self._builder.filler, lead_in=seed.lead_in
            )
            seed = result.next_seed
            t = step_end
        return seed


def _cursor_after(
    entry: ScheduledEntry, items: Sequence[PlaylistItem], builder: TimelineBuilder
) -> Cursor:
    """Cursor positioned at the end of ``entry`` within the current item list."""
    n = len(items)
    if n == 0:
        return Cursor()
    if entry.kind == "program" and entry.item_id is not None:
        index: int | None = None
        if entry.slot_index < n and items[entry.slot_index].item_id == entry.item_id:
            index = entry.slot_index
        else:
            for i, item in enumerate(items):
                if item.item_id == entry.item_id:
                    index = i
                    break
        if index is not None:
            item = items[index]
            if item.playable:
                offset = item.duration_ms
            else:
                offset = slot_length_ms(items, index, builder.filler)
            return Cursor(index, offset, item.item_id)
    index = (entry.slot_index + 1) % n
    return Cursor(index, 0, items[index].item_id)
