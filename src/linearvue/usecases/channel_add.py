from __future__ import annotations

from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..domain.entities import CHANNEL_KINDS, Channel
from ..infra.exceptions import ValidationError
from ._common import channel_to_dict


def add_channel(
    db: Session,
    *,
    name: str,
    number: int | None = None,
    kind: str = "custom",
    item_ids: list[str] | None = None,
    sort_order: int | None = None,
) -> dict[str, Any]:
    """Create a Channel and return its dict form.

    ``number`` defaults to one past the highest existing channel number.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    if kind not in CHANNEL_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(CHANNEL_KINDS)}")
    if number is not None and number < 1:
        raise ValidationError("number must be a positive integer")

    if number is None:
        highest = db.execute(select(func.max(Channel.number))).scalar()
        number = (highest or 0) + 1
    if sort_order is None:
        sort_order = number

    channel = Channel(
        number=number,
        name=name,
        kind=kind,
        item_ids=[str(i) for i in (item_ids or [])],
        content_version=1,
        sort_order=sort_order,
    )
    db.add(channel)
    db.commit()
    db.refresh(channel)
    return channel_to_dict(channel)
