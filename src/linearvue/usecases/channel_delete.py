from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..domain.entities import ScheduleBlockRecord
from ._common import resolve_channel


def delete_channel(db: Session, *, channel_id: int) -> dict[str, Any]:
    """Delete a channel; its schedule blocks go with it (FK cascade).

    Raises:
        ResourceError: If the channel is not found
    """
    channel = resolve_channel(db, channel_id)
    block_count = db.execute(
        select(func.count()).select_from(ScheduleBlockRecord).where(
            ScheduleBlockRecord.channel_id == channel_id
        )
    ).scalar_one()
    name = channel.name

    db.delete(channel)
    db.commit()

    return {
        "deleted": 1,
        "id": channel_id,
        "name": name,
        "blocks_deleted": block_count,
    }
