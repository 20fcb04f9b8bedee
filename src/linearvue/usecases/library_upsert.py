from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from ..domain.entities import LibraryItem
from ..infra.exceptions import ValidationError
from ._common import format_datetime

ITEM_TYPES = ("Movie", "Episode")


def upsert_library_item(
    db: Session,
    *,
    item_id: str,
    name: str,
    item_type: str = "Movie",
    runtime_seconds: float | None = None,
    series_name: str | None = None,
    season_number: int | None = None,
    episode_number: int | None = None,
    production_year: int | None = None,
    rating: str | None = None,
) -> dict[str, Any]:
    """Insert or update one catalog cache row.

    A missing or non-positive runtime is stored as-is; the scheduler turns
    such items into interstitials.
    """
    if not item_id:
        raise ValidationError("item_id is required")
    if not name:
        raise ValidationError("name is required")
    normalized_type = item_type.capitalize()
    if normalized_type not in ITEM_TYPES:
        raise ValidationError("item_type must be Movie or Episode")

    item = db.get(LibraryItem, item_id)
    created = item is None
    if item is None:
        item = LibraryItem(id=item_id)
        db.add(item)

    item.name = name
    item.item_type = normalized_type
    item.runtime_ms = int(round(runtime_seconds * 1000)) if runtime_seconds is not None else None
    item.series_name = series_name
    item.season_number = season_number
    item.episode_number = episode_number
    item.production_year = production_year
    item.rating = rating
    db.commit()
    db.refresh(item)

    return {
        "id": item.id,
        "name": item.name,
        "item_type": item.item_type,
        "runtime_ms": item.runtime_ms,
        "series_name": item.series_name,
        "season_number": item.season_number,
        "episode_number": item.episode_number,
        "production_year": item.production_year,
        "rating": item.rating,
        "created": created,
        "updated_at": format_datetime(item.updated_at),
    }
