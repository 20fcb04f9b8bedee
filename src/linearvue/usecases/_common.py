from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy.orm import Session

from ..domain.entities import Channel
from ..infra.exceptions import ResourceError


def format_datetime(dt: datetime | None) -> str | None:
    """Format datetime for output in ISO-8601 UTC format."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def resolve_channel(db: Session, channel_id: int) -> Channel:
    """Load a channel by id.

    Raises ResourceError if the channel does not exist.
    """
    channel = db.get(Channel, channel_id)
    if channel is None:
        raise ResourceError(f"Channel {channel_id} not found")
    return channel


def channel_to_dict(channel: Channel) -> dict[str, Any]:
    return {
        "id": channel.id,
        "number": channel.number,
        "name": channel.name,
        "kind": channel.kind,
        "item_ids": list(channel.item_ids or []),
        "item_count": len(channel.item_ids or []),
        "content_version": channel.content_version,
        "sort_order": channel.sort_order,
        "created_at": format_datetime(channel.created_at),
        "updated_at": format_datetime(channel.updated_at),
    }
