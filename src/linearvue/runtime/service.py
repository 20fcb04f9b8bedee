"""
Scheduling service facade.

Wires the runtime components together and exposes the operations used by
the HTTP API and the CLI:

    get_schedule(channel_id)         -> ordered entries
    get_now(channel_id, at=None)     -> NowPlaying | NotScheduled
    regenerate_channel(channel_id)   -> RegenerationResult
    regenerate_all()                 -> BatchResult
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from linearvue.domain.interfaces import BlockStore, ChannelSource, MediaCatalog
from linearvue.infra.exceptions import ResourceError
from linearvue.infra.settings import Settings
from linearvue.runtime.block_store import BoundedBlockStore, SqlBlockStore
from linearvue.runtime.catalog import DbMediaCatalog
from linearvue.runtime.change_notifier import ChangeNotifier
from linearvue.runtime.channel_source import SqlChannelSource
from linearvue.runtime.clock import MasterClock
from linearvue.runtime.horizon_keeper import HorizonKeeper
from linearvue.runtime.now_resolver import NowResolver
from linearvue.runtime.schedule_manager import ScheduleManager
from linearvue.runtime.schedule_types import (
    BatchResult,
    ChannelSnapshot,
    FillerPolicy,
    NotScheduled,
    NowPlaying,
    RegenerationResult,
    ScheduledEntry,
)
from linearvue.runtime.timeline_builder import TimelineBuilder


@dataclass
class ChannelSchedule:
    channel: ChannelSnapshot
    entries: list[ScheduledEntry]


class SchedulingService:
    def __init__(
        self,
        channel_source: ChannelSource,
        store: BlockStore,
        manager: ScheduleManager,
        resolver: NowResolver,
        notifier: ChangeNotifier,
        keeper: HorizonKeeper | None = None,
        clock: MasterClock | None = None,
    ):
        self.channel_source = channel_source
        self.store = store
        self.manager = manager
        self.resolver = resolver
        self.notifier = notifier
        self.keeper = keeper
        self.clock = clock or MasterClock()

    def _require_channel(self, channel_id: int) -> ChannelSnapshot:
        channel = self.channel_source.get_channel(channel_id)
        if channel is None:
            raise ResourceError(f"Channel {channel_id} not found")
        return channel

    def list_channels(self) -> list[ChannelSnapshot]:
        return self.channel_source.list_channels()

    def get_schedule(self, channel_id: int) -> list[ScheduledEntry]:
        self._require_channel(channel_id)
        return self.resolver.get_schedule(channel_id)

    def get_all_schedules(self) -> list[ChannelSchedule]:
        return [
            ChannelSchedule(channel, self.resolver.get_schedule(channel.id))
            for channel in self.channel_source.list_channels()
        ]

    def get_now(self, channel_id: int, at: datetime | None = None) -> NowPlaying | NotScheduled:
        self._require_channel(channel_id)
        return self.resolver.resolve(channel_id, at)

    def regenerate_channel(self, channel_id: int) -> RegenerationResult:
        channel = self._require_channel(channel_id)
        return self.manager.regenerate_channel(channel)

    def regenerate_all(self, cancel: threading.Event | None = None) -> BatchResult:
        return self.manager.regenerate_all(cancel=cancel)

    def ensure_all(self) -> BatchResult:
        return self.manager.ensure_all()

    def prune(self, before: datetime) -> int:
        return self.store.prune(before)

    def start(self) -> None:
        if self.keeper is not None:
            self.keeper.start()

    def stop(self) -> None:
        if self.keeper is not None:
            self.keeper.stop()
        self.resolver.close()
        if isinstance(self.store, BoundedBlockStore):
            self.store.close()


def build_service(
    settings: Settings,
    session_factory: Callable[[], Session],
    *,
    clock: MasterClock | None = None,
    catalog: MediaCatalog | None = None,
    channel_source: ChannelSource | None = None,
    store: BlockStore | None = None,
) -> SchedulingService:
    """Assemble a SchedulingService from settings and a session factory."""
    clock = clock or MasterClock()
    notifier = ChangeNotifier()
    channel_source = channel_source or SqlChannelSource(session_factory)
    store = store or BoundedBlockStore(
        SqlBlockStore(session_factory),
        timeout_seconds=settings.store_timeout_seconds,
        max_workers=settings.regeneration_max_workers * 2,
    )
    builder = TimelineBuilder(
        catalog or DbMediaCatalog(session_factory),
        FillerPolicy(
            fill_ms=settings.interstitial_fill_seconds * 1000,
            gap_ms=settings.interstitial_gap_seconds * 1000,
        ),
    )
    manager = ScheduleManager(
        channel_source,
        store,
        builder,
        clock,
        block_hours=settings.block_hours,
        lookahead_blocks=settings.horizon_lookahead_blocks,
        max_workers=settings.regeneration_max_workers,
        notifier=notifier,
    )
    resolver = NowResolver(store, clock, notifier)
    keeper = HorizonKeeper(
        manager,
        store,
        clock,
        interval_seconds=settings.auto_regenerate_interval_seconds,
        retention_hours=settings.retention_hours,
        enabled=settings.auto_regenerate_enabled,
    )
    return SchedulingService(channel_source, store, manager, resolver, notifier, keeper, clock)
