"""Timeline builder: cyclic item list + cursor + window -> contiguous entries.

Pure computation. No clock access, no store access, no randomness. The same
(items, cursor, window, filler, lead_in) always yields the same entries.

Each item occupies a *slot* in the cycle:

    playable item   -> [PROGRAM d] (+ [INTERSTITIAL gap] when the next item differs)
    unplayable item -> [INTERSTITIAL fill]

A cursor offset is measured into the slot, so a cursor may point into the
gap filler that follows a program. Entries carry global start/end times: an
entry clipped by ``window_end`` keeps its real end, and the continuation in
the following window starts at the same instant.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from linearvue.runtime.schedule_types import (
    CatalogItem,
    ChannelSnapshot,
    Cursor,
    FillerPolicy,
    PlaylistItem,
    ScheduledEntry,
    TimelineResult,
)

logger = logging.getLogger(__name__)

_ONE_MS = timedelta(milliseconds=1)

COMING_UP_TITLE = "Coming Up Next"


@dataclass(frozen=True)
class _Segment:
    kind: str
    duration_ms: int


def _next_up_title(items: Sequence[PlaylistItem], index: int) -> str:
    following = items[(index + 1) % len(items)]
    if following.playable:
        return f"Next Up: {following.title}"
    return COMING_UP_TITLE


def _slot(items: Sequence[PlaylistItem], index: int, filler: FillerPolicy) -> list[_Segment]:
    item = items[index]
    if not item.playable:
        return [_Segment("interstitial", filler.fill_ms)]
    segments = [_Segment("program", item.duration_ms)]
    if filler.gap_ms > 0 and items[(index + 1) % len(items)].item_id != item.item_id:
        segments.append(_Segment("interstitial", filler.gap_ms))
    return segments


def _entry(
    items: Sequence[PlaylistItem],
    index: int,
    segment: _Segment,
    start: datetime,
) -> ScheduledEntry:
    item = items[index]
    end = start + segment.duration_ms * _ONE_MS
    if segment.kind == "program":
        return ScheduledEntry(
            item_id=item.item_id,
            title=item.title,
            subtitle=item.subtitle,
            start_time=start,
            end_time=end,
            duration_ms=segment.duration_ms,
            kind="program",
            content_type=item.content_type,
            slot_index=index,
        )
    return ScheduledEntry(
        item_id=None,
        title=_next_up_title(items, index),
        start_time=start,
        end_time=end,
        duration_ms=segment.duration_ms,
        kind="interstitial",
        slot_index=index,
    )


def slot_length_ms(items: Sequence[PlaylistItem], index: int, filler: FillerPolicy) -> int:
    """Total on-air length of the slot at ``index``."""
    return sum(seg.duration_ms for seg in _slot(items, index, filler))


def build_timeline(
    items: Sequence[PlaylistItem],
    cursor: Cursor,
    window_start: datetime,
    window_end: datetime,
    *,
    filler: FillerPolicy,
    lead_in: ScheduledEntry | None = None,
) -> TimelineResult:
    """Fill [window_start, window_end) from ``cursor`` onward.

    ``lead_in`` is an already-airing entry that plays out before the cursor
    applies. If it runs past ``window_end`` it is returned as
    ``pending_lead_in`` and the cursor is passed through untouched.

    Raises:
        ValueError: If window_start >= window_end, or either bound is naive.
    """
    if window_start.tzinfo is None or window_end.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware")
    if window_start >= window_end:
        raise ValueError("window_start must be before window_end")

    entries: list[ScheduledEntry] = []
    clock = window_start

    if lead_in is not None and lead_in.end_time > window_start:
        entries.append(lead_in)
        if lead_in.end_time > window_end:
            return TimelineResult(entries, cursor, pending_lead_in=lead_in)
        clock = lead_in.end_time

    if not items:
        return TimelineResult(entries, cursor)

    n = len(items)
    index = cursor.item_index % n
    offset = max(cursor.offset_ms, 0)
    if index != cursor.item_index:
        offset = 0

    while clock < window_end:
        segments = _slot(items, index, filler)
        slot_len = sum(seg.duration_ms for seg in segments)
        if offset >= slot_len:
            # Stale offset (item got shorter since the cursor was taken).
            index = (index + 1) % n
            offset = 0
            continue

        seg_begin = 0
        for segment in segments:
            seg_end = seg_begin + segment.duration_ms
            if offset >= seg_end:
                seg_begin = seg_end
                continue
            into = offset - seg_begin
            entry = _entry(items, index, segment, clock - into * _ONE_MS)
            entries.append(entry)

            window_left_ms = (window_end - clock) // _ONE_MS
            remaining_ms = segment.duration_ms - into
            if remaining_ms > window_left_ms:
                offset += window_left_ms
                clock = window_end
                break
            clock = entry.end_time
            offset = seg_end
            seg_begin = seg_end
            if clock >= window_end:
                break

        if offset >= slot_len:
            index = (index + 1) % n
            offset = 0

    return TimelineResult(entries, Cursor(index, offset, items[index].item_id))


def playlist_items(
    item_ids: Sequence[str], catalog_items: dict[str, CatalogItem]
) -> list[PlaylistItem]:
    """Resolve a channel's item ids against catalog metadata.

    Missing items and items without a positive runtime come back with
    ``duration_ms=None`` and are scheduled as interstitials.
    """
    resolved: list[PlaylistItem] = []
    for item_id in item_ids:
        meta = catalog_items.get(item_id)
        if meta is None:
            logger.warning("Catalog item %s not found; scheduling interstitial", item_id)
            resolved.append(PlaylistItem(item_id=item_id, title=COMING_UP_TITLE))
            continue
        duration = meta.duration_ms if meta.duration_ms and meta.duration_ms > 0 else None
        if duration is None:
            logger.warning("Catalog item %s has no usable runtime; scheduling interstitial", item_id)
        resolved.append(
            PlaylistItem(
                item_id=item_id,
                title=meta.display_title,
                subtitle=meta.display_subtitle,
                duration_ms=duration,
                content_type="episode" if meta.is_episode else "movie",
            )
        )
    return resolved


class TimelineBuilder:
    """Binds the pure builder to a media catalog and a filler policy."""

    def __init__(self, catalog, filler: FillerPolicy | None = None):
        self._catalog = catalog  # needs .get_items(ids) -> dict[str, CatalogItem]
        self._filler = filler or FillerPolicy()

    @property
    def filler(self) -> FillerPolicy:
        return self._filler

    def resolve_items(self, channel: ChannelSnapshot) -> list[PlaylistItem]:
        if not channel.item_ids:
            return []
        catalog_items = self._catalog.get_items(list(dict.fromkeys(channel.item_ids)))
        return playlist_items(channel.item_ids, catalog_items)

    def build(
        self,
        channel: ChannelSnapshot,
        cursor: Cursor,
        window_start: datetime,
        window_end: datetime,
        lead_in: ScheduledEntry | None = None,
    ) -> TimelineResult:
        return build_timeline(
            self.resolve_items(channel),
            cursor,
            window_start,
            window_end,
            filler=self._filler,
            lead_in=lead_in,
        )
