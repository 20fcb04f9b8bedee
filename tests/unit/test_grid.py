"""Block grid boundaries: alignment, iteration and lookahead windows."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from linearvue.runtime import grid
from schedule_helpers import T0, at


class TestBlockStart:
    def test_floors_to_grid(self):
        assert grid.block_start(at(hours=9, minutes=30)) == at(hours=8)
        assert grid.block_start(at(hours=23, minutes=59)) == at(hours=16)

    def test_boundary_belongs_to_next_block(self):
        assert grid.block_start(at(hours=8)) == at(hours=8)
        assert grid.block_end(at(hours=8)) == at(hours=16)

    def test_non_utc_input_is_normalized(self):
        est = timezone(timedelta(hours=-5))
        local = datetime(2026, 1, 4, 20, 30, tzinfo=est)  # 01:30 UTC on the 5th
        assert grid.block_start(local, 4) == T0

    def test_naive_treated_as_utc(self):
        assert grid.block_start(datetime(2026, 1, 5, 13, 0), 6) == at(hours=12)

    @pytest.mark.parametrize("hours", [0, 5, 7, 25])
    def test_block_hours_must_divide_day(self, hours):
        with pytest.raises(ValueError):
            grid.block_start(T0, hours)

    def test_is_aligned(self):
        assert grid.is_aligned(at(hours=16))
        assert not grid.is_aligned(at(hours=16, minutes=1))


class TestWindows:
    def test_iter_blocks_covers_partial_range(self):
        blocks = list(grid.iter_blocks(at(hours=7), at(hours=9), 8))
        assert blocks == [(T0, at(hours=8)), (at(hours=8), at(hours=16))]

    def test_window_from_mid_block(self):
        window = grid.window_blocks(at(minutes=10), 3, 8)
        assert [start for start, _ in window] == [T0, at(hours=8), at(hours=16), at(hours=24)]

    def test_window_from_boundary(self):
        window = grid.window_blocks(T0, 2, 8)
        assert window == [(T0, at(hours=8)), (at(hours=8), at(hours=16))]

    def test_lookahead_must_be_positive(self):
        with pytest.raises(ValueError):
            grid.window_blocks(T0, 0)
