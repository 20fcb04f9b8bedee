"""Shared constants and small helpers for scheduling tests."""

from datetime import datetime, timedelta, timezone

from linearvue.runtime.schedule_types import CatalogItem, PlaylistItem

# Monday 2026-01-05 00:00 UTC: a block boundary for every grid size.
T0 = datetime(2026, 1, 5, 0, 0, tzinfo=timezone.utc)

MIN = 60_000


def at(minutes: float = 0, hours: float = 0) -> datetime:
    """T0 plus an offset."""
    return T0 + timedelta(minutes=minutes, hours=hours)


ALPHA = CatalogItem("A", "Alpha", item_type="Movie", duration_ms=30 * MIN, year=1984)
BRAVO = CatalogItem("B", "Bravo", item_type="Movie", duration_ms=45 * MIN)
CHARLIE = CatalogItem("C", "Charlie", item_type="Movie", duration_ms=60 * MIN)


def playlist(*specs: tuple[str, int | None]) -> list[PlaylistItem]:
    """Build playlist items from (id, minutes) pairs; None minutes = unplayable."""
    return [
        PlaylistItem(
            item_id=item_id,
            title=f"Title {item_id}",
            duration_ms=None if minutes is None else minutes * MIN,
            content_type="movie",
        )
        for item_id, minutes in specs
    ]


def assert_contiguous(entries) -> None:
    for prev, cur in zip(entries, entries[1:]):
        assert cur.start_time == prev.end_time, f"gap/overlap between {prev} and {cur}"

