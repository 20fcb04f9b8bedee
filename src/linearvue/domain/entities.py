"""
Domain entities for LinearVue.

Persisted rows for channels, the media catalog cache and schedule blocks.
Channel rows are owned by the channel-generation side; the scheduler reads
them through a ChannelSource and only ever writes ScheduleBlockRecord rows.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import sqlalchemy as sa
from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..infra.db import Base, UTCDateTime

CHANNEL_KINDS = ("auto", "preset", "custom")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Channel(Base):
    """A linear channel: an ordered, cyclic list of library item ids."""

    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="custom")
    item_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    content_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=1,
        server_default=sa.text("1"),
        comment="Incremented whenever item_ids changes; schedule blocks record the version they were built from.",
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    blocks: Mapped[list[ScheduleBlockRecord]] = relationship(
        "ScheduleBlockRecord",
        back_populates="channel",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("kind IN ('auto', 'preset', 'custom')", name="channel_kind"),
        CheckConstraint("content_version >= 1", name="content_version_positive"),
        Index("ix_channels_number", "number"),
    )

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, number={self.number}, name={self.name}, v={self.content_version})>"


class LibraryItem(Base):
    """Cached catalog metadata for one library item (movie or episode)."""

    __tablename__ = "library_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    item_type: Mapped[str] = mapped_column(String(16), nullable=False, default="Movie")
    series_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    season_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    episode_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    runtime_ms: Mapped[int | None] = mapped_column(sa.BigInteger, nullable=True)
    production_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rating: Mapped[str | None] = mapped_column(String(32), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<LibraryItem(id={self.id}, type={self.item_type}, name={self.name})>"


class ScheduleBlockRecord(Base):
    """One persisted block of a channel's timeline.

    ``entries``, ``seed`` and ``next_seed`` hold the JSON form of the runtime
    dataclasses (see linearvue.runtime.schedule_types).
    """

    __tablename__ = "schedule_blocks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    block_start: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    block_end: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    entries: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    seed: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    next_seed: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    content_version: Mapped[int] = mapped_column(Integer, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)

    channel: Mapped[Channel] = relationship("Channel", back_populates="blocks")

    __table_args__ = (
        UniqueConstraint("channel_id", "block_start", name="uq_schedule_blocks_channel_start"),
        CheckConstraint("block_end > block_start", name="block_bounds"),
        Index("ix_schedule_blocks_channel_start", "channel_id", "block_start"),
        Index("ix_schedule_blocks_block_end", "block_end"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleBlockRecord(channel_id={self.channel_id}, "
            f"block_start={self.block_start.isoformat()}, entries={len(self.entries)})>"
        )
