"""Build a SchedulingService for one CLI invocation."""

from __future__ import annotations

from datetime import datetime, timezone

from ....infra import db as db_module
from ....infra.exceptions import ValidationError
from ....infra.settings import settings
from ....runtime.schedule_types import NotScheduled, NowPlaying
from ....runtime.service import SchedulingService, build_service


def cli_service() -> SchedulingService:
    # Resolved at call time so tests can swap the session factory.
    return build_service(settings, db_module.SessionLocal)


def parse_when(value: str | None) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if value is None:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValidationError(f"invalid timestamp '{value}'") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def now_to_dict(result: NowPlaying | NotScheduled) -> dict:
    if isinstance(result, NotScheduled):
        return {
            "status": "not_scheduled",
            "channel_id": result.channel_id,
            "at": result.at.isoformat(),
            "reason": result.reason,
            "error": result.error,
        }
    return {
        "status": "ok",
        "channel_id": result.channel_id,
        "at": result.at.isoformat(),
        "program": result.entry.to_dict(),
        "offset_ms": result.offset_ms,
        "next": result.next_entry.to_dict() if result.next_entry else None,
    }
