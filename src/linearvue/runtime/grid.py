"""
Block grid math: boundaries defined once, centrally.

Blocks are aligned to UTC midnight in multiples of ``block_hours`` (which must
divide 24). Every schedule read and write uses these same boundaries.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone

DEFAULT_BLOCK_HOURS = 8


def _check_hours(block_hours: int) -> None:
    if block_hours < 1 or 24 % block_hours != 0:
        raise ValueError(f"block_hours must divide 24, got {block_hours}")


def block_start(at: datetime, block_hours: int = DEFAULT_BLOCK_HOURS) -> datetime:
    """Start of the block containing ``at`` (floor to the grid).

    Args:
        at: Wall-clock time (aware preferred; naive is treated as UTC).
        block_hours: Block size in hours.

    Returns:
        Aware UTC datetime of the block start.
    """
    _check_hours(block_hours)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    at = at.astimezone(timezone.utc)
    hour = (at.hour // block_hours) * block_hours
    return at.replace(hour=hour, minute=0, second=0, microsecond=0)


def block_end(at: datetime, block_hours: int = DEFAULT_BLOCK_HOURS) -> datetime:
    """End of the block containing ``at`` (exclusive; start of the next block)."""
    return block_start(at, block_hours) + timedelta(hours=block_hours)


def is_aligned(at: datetime, block_hours: int = DEFAULT_BLOCK_HOURS) -> bool:
    return block_start(at, block_hours) == at


def iter_blocks(
    start: datetime, end: datetime, block_hours: int = DEFAULT_BLOCK_HOURS
) -> Iterator[tuple[datetime, datetime]]:
    """Yield (block_start, block_end) for every block overlapping [start, end)."""
    size = timedelta(hours=block_hours)
    current = block_start(start, block_hours)
    while current < end:
        yield current, current + size
        current += size


def window_blocks(
    now: datetime, lookahead_blocks: int, block_hours: int = DEFAULT_BLOCK_HOURS
) -> list[tuple[datetime, datetime]]:
    """Blocks overlapping [now, now + lookahead_blocks * block_size)."""
    if lookahead_blocks < 1:
        raise ValueError("lookahead_blocks must be >= 1")
    end = now + timedelta(hours=block_hours * lookahead_blocks)
    return list(iter_blocks(now, end, block_hours))
