"""Domain interfaces for the scheduler's collaborators and its block store."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime

from ..runtime.schedule_types import BlockStamp, CatalogItem, ChannelSnapshot, ScheduleBlock


class ChannelSource(ABC):
    """Read-only access to channels produced by the channel-generation side."""

    @abstractmethod
    def list_channels(self) -> list[ChannelSnapshot]:
        """Return every channel, ordered for display."""
        raise NotImplementedError

    @abstractmethod
    def get_channel(self, channel_id: int) -> ChannelSnapshot | None:
        """Return one channel, or None if it does not exist."""
        raise NotImplementedError


class MediaCatalog(ABC):
    """Per-item metadata lookup (the only source of item durations)."""

    @abstractmethod
    def get_items(self, item_ids: Sequence[str]) -> dict[str, CatalogItem]:
        """
        Look up catalog metadata for the given ids.

        Args:
            item_ids: Library item ids, possibly with repeats

        Returns:
            Mapping of id to CatalogItem; unknown ids are simply absent
        """
        raise NotImplementedError


class BlockStore(ABC):
    """
    Persistence for schedule blocks.

    Writes go through replace_blocks only, which is transactional per call:
    either every block in the call is visible afterwards or none is. Readers
    never observe a partially written block.
    """

    @abstractmethod
    def get_block(self, channel_id: int, block_start: datetime) -> ScheduleBlock | None:
        raise NotImplementedError

    @abstractmethod
    def get_block_at(self, channel_id: int, at: datetime) -> ScheduleBlock | None:
        """Return the block with block_start <= at < block_end, if any."""
        raise NotImplementedError

    @abstractmethod
    def get_blocks(
        self,
        channel_id: int,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ScheduleBlock]:
        """Return blocks overlapping [start, end), sorted by block_start."""
        raise NotImplementedError

    @abstractmethod
    def replace_blocks(self, channel_id: int, blocks: Iterable[ScheduleBlock]) -> int:
        """Upsert blocks keyed by (channel_id, block_start); returns count written."""
        raise NotImplementedError

    @abstractmethod
    def delete_channel_blocks(self, channel_id: int) -> int:
        raise NotImplementedError

    @abstractmethod
    def prune(self, before: datetime) -> int:
        """Delete blocks whose block_end <= before; returns count deleted."""
        raise NotImplementedError

    def get_block_stamp(self, channel_id: int, block_start: datetime) -> BlockStamp | None:
        """Return (content_version, generated_at) of one block, or None if absent.

        Lets readers revalidate a cached block without loading its entries.
        """
        block = self.get_block(channel_id, block_start)
        return block.stamp if block is not None else None

    def after_writes(self, channel_id: int, callback: Callable[[], None]) -> None:
        """Call ``callback`` once no write for ``channel_id`` is still executing.

        Stores whose writes have finished by the time they return call it
        immediately.
        """
        callback()
