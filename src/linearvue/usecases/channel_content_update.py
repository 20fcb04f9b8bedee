from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ._common import channel_to_dict, resolve_channel


def update_channel_content(
    db: Session,
    *,
    channel_id: int,
    item_ids: list[str],
) -> dict[str, Any]:
    """Replace a channel's ordered item list.

    content_version is bumped only when the order actually changes, so
    re-applying the same list does not invalidate the channel's schedule.
    The returned dict carries ``changed`` so callers know whether to trigger
    regeneration.
    """
    channel = resolve_channel(db, channel_id)
    new_ids = [str(i) for i in item_ids]
    changed = list(channel.item_ids or []) != new_ids
    if changed:
        channel.item_ids = new_ids
        channel.content_version = channel.content_version + 1
        db.commit()
        db.refresh(channel)

    result = channel_to_dict(channel)
    result["changed"] = changed
    return result
