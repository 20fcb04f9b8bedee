"""
Scheduling Runtime Types

Canonical data structures shared by the timeline builder, block store,
schedule manager and now resolver. Implementations and tests import from
this module rather than redefining locally.

All timestamps are aware UTC datetimes. Durations are integer milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

EntryKind = Literal["program", "interstitial"]
ContentType = Literal["movie", "episode"]
RegenerationStatus = Literal["ok", "unchanged", "failed", "cancelled"]
NotScheduledReason = Literal["no_block", "no_program", "store_unavailable"]


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def _parse(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChannelSnapshot:
    """Read-only view of a channel as the scheduler sees it."""
    id: int
    number: int
    name: str
    item_ids: tuple[str, ...]
    content_version: int
    kind: str = "custom"


@dataclass(frozen=True)
class CatalogItem:
    """Catalog metadata for one playable item."""
    item_id: str
    name: str
    item_type: str = "Movie"            # "Movie" | "Episode"
    series_name: str | None = None
    season_number: int | None = None
    episode_number: int | None = None
    duration_ms: int | None = None
    year: int | None = None
    rating: str | None = None

    @property
    def is_episode(self) -> bool:
        return self.item_type.lower() == "episode"

    @property
    def display_title(self) -> str:
        if self.is_episode and self.series_name:
            return self.series_name
        return self.name

    @property
    def display_subtitle(self) -> str | None:
        if not self.is_episode:
            return None
        if self.season_number is not None and self.episode_number is not None:
            return f"S{self.season_number:02d}E{self.episode_number:02d} - {self.name}"
        return self.name


@dataclass(frozen=True)
class PlaylistItem:
    """One position of a channel's cyclic item list, resolved against the catalog.

    ``duration_ms`` is None when the item is missing or has no usable runtime;
    the builder substitutes an interstitial for such items.
    """
    item_id: str
    title: str
    subtitle: str | None = None
    duration_ms: int | None = None
    content_type: ContentType | None = None

    @property
    def playable(self) -> bool:
        return self.duration_ms is not None and self.duration_ms > 0


@dataclass(frozen=True)
class FillerPolicy:
    """Interstitial durations (ms)."""
    fill_ms: int = 300_000
    gap_ms: int = 0

    def __post_init__(self) -> None:
        if self.fill_ms <= 0:
            raise ValueError("fill_ms must be positive")
        if self.gap_ms < 0:
            raise ValueError("gap_ms must be non-negative")


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ScheduledEntry:
    """One contiguous span of the channel timeline.

    ``start_time``/``end_time`` are global: an entry truncated by a block
    boundary keeps its real end, and the continuation in the next block
    carries the same start and end.
    """
    item_id: str | None
    title: str
    start_time: datetime
    end_time: datetime
    duration_ms: int
    kind: EntryKind = "program"
    subtitle: str | None = None
    content_type: ContentType | None = None
    slot_index: int = 0

    def contains(self, at: datetime) -> bool:
        return self.start_time <= at < self.end_time

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "duration_ms": self.duration_ms,
            "kind": self.kind,
            "content_type": self.content_type,
            "slot_index": self.slot_index,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledEntry:
        return cls(
            item_id=data.get("item_id"),
            title=data["title"],
            subtitle=data.get("subtitle"),
            start_time=_parse(data["start_time"]),
            end_time=_parse(data["end_time"]),
            duration_ms=int(data["duration_ms"]),
            kind=data.get("kind", "program"),
            content_type=data.get("content_type"),
            slot_index=int(data.get("slot_index", 0)),
        )


@dataclass(frozen=True)
class Cursor:
    """Position in a cyclic item list: item index plus offset into its slot."""
    item_index: int = 0
    offset_ms: int = 0
    item_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"item_index": self.item_index, "offset_ms": self.offset_ms, "item_id": self.item_id}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cursor:
        return cls(
            item_index=int(data.get("item_index", 0)),
            offset_ms=int(data.get("offset_ms", 0)),
            item_id=data.get("item_id"),
        )

    def remap(self, item_ids: tuple[str, ...] | list[str]) -> Cursor:
        """Translate this cursor onto a (possibly changed) item list.

        Keeps the index when it still points at the same item, otherwise
        follows the item to its first new position. If the item is gone the
        index is kept (modulo the new length) and the offset is dropped.
        """
        n = len(item_ids)
        if n == 0:
            return Cursor(0, 0, None)
        if self.item_id is None:
            index = self.item_index % n
            return Cursor(index, self.offset_ms if index == self.item_index else 0, item_ids[index])
        if self.item_index < n and item_ids[self.item_index] == self.item_id:
            return self
        try:
            index = list(item_ids).index(self.item_id)
        except ValueError:
            index = self.item_index % n
            return Cursor(index, 0, item_ids[index])
        return Cursor(index, self.offset_ms, self.item_id)


@dataclass(frozen=True)
class BlockSeed:
    """Cursor state at a block start plus an optional carried-over entry."""
    cursor: Cursor = field(default_factory=Cursor)
    lead_in: ScheduledEntry | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.cursor.to_dict()
        data["lead_in"] = self.lead_in.to_dict() if self.lead_in else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlockSeed:
        lead_in = data.get("lead_in")
        return cls(
            cursor=Cursor.from_dict(data),
            lead_in=ScheduledEntry.from_dict(lead_in) if lead_in else None,
        )


@dataclass(frozen=True)
class TimelineResult:
    entries: list[ScheduledEntry]
    next_cursor: Cursor
    pending_lead_in: ScheduledEntry | None = None

    @property
    def next_seed(self) -> BlockSeed:
        return BlockSeed(self.next_cursor, self.pending_lead_in)


# Identifies one written version of a block: (content_version, generated_at).
BlockStamp = tuple[int, datetime | None]


@dataclass(frozen=True)
class ScheduleBlock:
    """A fixed-size persisted chunk of a channel's timeline."""
    channel_id: int
    block_start: datetime
    block_end: datetime
    entries: tuple[ScheduledEntry, ...]
    seed: BlockSeed
    next_seed: BlockSeed
    content_version: int
    generated_at: datetime | None = field(default=None, compare=False)

    def covers(self, at: datetime) -> bool:
        return self.block_start <= at < self.block_end

    @property
    def stamp(self) -> BlockStamp:
        return (self.content_version, self.generated_at)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class NowPlaying:
    channel_id: int
    entry: ScheduledEntry
    offset_ms: int
    at: datetime
    next_entry: ScheduledEntry | None = None

    @property
    def remaining_ms(self) -> int:
        return self.entry.duration_ms - self.offset_ms


@dataclass(frozen=True)
class NotScheduled:
    channel_id: int
    at: datetime
    reason: NotScheduledReason
    error: str | None = None


@dataclass(frozen=True)
class RegenerationResult:
    channel_id: int
    status: RegenerationStatus
    blocks_written: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "unchanged")


@dataclass
class BatchResult:
    """Outcome of a batch run over many channels."""
    results: list[RegenerationResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def failed(self) -> list[RegenerationResult]:
        return [r for r in self.results if r.status == "failed"]

    @property
    def blocks_written(self) -> int:
        return sum(r.blocks_written for r in self.results)

    def by_channel(self) -> dict[int, RegenerationResult]:
        return {r.channel_id: r for r in self.results}


@dataclass(frozen=True)
class ScheduleChanged:
    """Event published after a channel's blocks were rewritten."""
    channel_id: int
    blocks_written: int = 0
    reason: str = "regenerated"
