"""Channel source adapters: read-only channel snapshots for the scheduler."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import replace

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from linearvue.domain.entities import Channel
from linearvue.domain.interfaces import ChannelSource
from linearvue.infra.exceptions import StoreError
from linearvue.infra.uow import read_session
from linearvue.runtime.schedule_types import ChannelSnapshot


def snapshot_from_row(row: Channel) -> ChannelSnapshot:
    return ChannelSnapshot(
        id=row.id,
        number=row.number,
        name=row.name,
        kind=row.kind,
        item_ids=tuple(row.item_ids or ()),
        content_version=row.content_version,
    )


class SqlChannelSource(ChannelSource):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def list_channels(self) -> list[ChannelSnapshot]:
        try:
            with read_session(self._session_factory) as db:
                rows = db.execute(
                    select(Channel).order_by(Channel.sort_order, Channel.number, Channel.id)
                ).scalars()
                return [snapshot_from_row(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreError(f"channel list read failed: {e}") from e

    def get_channel(self, channel_id: int) -> ChannelSnapshot | None:
        try:
            with read_session(self._session_factory) as db:
                row = db.get(Channel, channel_id)
                return snapshot_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StoreError(f"channel {channel_id} read failed: {e}") from e


class InMemoryChannelSource(ChannelSource):
    """Mutable channel source for tests; ``set_items`` bumps content_version."""

    def __init__(self, channels: Iterable[ChannelSnapshot] = ()):
        self._channels: dict[int, ChannelSnapshot] = {c.id: c for c in channels}
        self._lock = threading.Lock()

    def put(self, channel: ChannelSnapshot) -> None:
        with self._lock:
            self._channels[channel.id] = channel

    def set_items(self, channel_id: int, item_ids: Iterable[str]) -> ChannelSnapshot:
        with self._lock:
            current = self._channels[channel_id]
            updated = replace(
                current,
                item_ids=tuple(item_ids),
                content_version=current.content_version + 1,
            )
            self._channels[channel_id] = updated
            return updated

    def remove(self, channel_id: int) -> None:
        with self._lock:
            self._channels.pop(channel_id, None)

    def list_channels(self) -> list[ChannelSnapshot]:
        with self._lock:
            return sorted(self._channels.values(), key=lambda c: (c.number, c.id))

    def get_channel(self, channel_id: int) -> ChannelSnapshot | None:
        with self._lock:
            return self._channels.get(channel_id)
