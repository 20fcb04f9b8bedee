from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..domain.entities import Channel
from ._common import channel_to_dict


def list_channels(db: Session, *, kind: str | None = None) -> dict[str, Any]:
    """List channels in display order, optionally filtered by kind."""
    stmt = select(Channel).order_by(Channel.sort_order, Channel.number, Channel.id)
    if kind is not None:
        stmt = stmt.where(Channel.kind == kind)
    channels = [channel_to_dict(c) for c in db.execute(stmt).scalars()]
    return {"total": len(channels), "channels": channels}
