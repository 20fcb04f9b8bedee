"""
REST API endpoints for channel schedules.

GET  /api/schedule                         every channel with its entries
GET  /api/schedule/{channel_id}            one channel's entries
GET  /api/schedule/{channel_id}/now        what is airing (?at= ISO instant)
POST /api/schedule/{channel_id}/regenerate rebuild one channel
POST /api/schedule/regenerate              rebuild every channel
"""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from ...runtime.schedule_types import (
    NotScheduled,
    RegenerationResult,
    ScheduledEntry,
)
from ...runtime.service import SchedulingService

router = APIRouter(prefix="/api/schedule", tags=["schedule"])

_STATUS_FOR_REASON = {"no_block": 404, "no_program": 404, "store_unavailable": 503}


def get_service(request: Request) -> SchedulingService:
    return request.app.state.service


# ============================================================================
# Pydantic Models for Responses
# ============================================================================


class EntryResponse(BaseModel):
    item_id: str | None
    title: str
    subtitle: str | None
    start_time: datetime
    end_time: datetime
    duration_ms: int
    kind: str = Field(..., description="program | interstitial")
    content_type: str | None = Field(None, description="movie | episode")

    @classmethod
    def from_entry(cls, entry: ScheduledEntry) -> EntryResponse:
        return cls(
            item_id=entry.item_id,
            title=entry.title,
            subtitle=entry.subtitle,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration_ms=entry.duration_ms,
            kind=entry.kind,
            content_type=entry.content_type,
        )


class ChannelScheduleResponse(BaseModel):
    channel_id: int
    number: int
    name: str
    programs: list[EntryResponse]


class NowPlayingResponse(BaseModel):
    channel_id: int
    at: datetime
    program: EntryResponse
    next: EntryResponse | None
    seek_ms: int = Field(..., description="Offset into the airing program")


class RegenerationResponse(BaseModel):
    channel_id: int
    status: str
    blocks_written: int
    error: str | None = None

    @classmethod
    def from_result(cls, result: RegenerationResult) -> RegenerationResponse:
        return cls(
            channel_id=result.channel_id,
            status=result.status,
            blocks_written=result.blocks_written,
            error=result.error,
        )


class BatchRegenerationResponse(BaseModel):
    blocks_written: int
    results: list[RegenerationResponse]


# ============================================================================
# Endpoints
# ============================================================================


@router.get("", response_model=list[ChannelScheduleResponse])
def list_schedules(service: SchedulingService = Depends(get_service)):
    return [
        ChannelScheduleResponse(
            channel_id=s.channel.id,
            number=s.channel.number,
            name=s.channel.name,
            programs=[EntryResponse.from_entry(e) for e in s.entries],
        )
        for s in service.get_all_schedules()
    ]


@router.post("/regenerate", response_model=BatchRegenerationResponse)
def regenerate_all(service: SchedulingService = Depends(get_service)):
    batch = service.regenerate_all()
    return BatchRegenerationResponse(
        blocks_written=batch.blocks_written,
        results=[RegenerationResponse.from_result(r) for r in batch.results],
    )


@router.get("/{channel_id}", response_model=list[EntryResponse])
def get_schedule(channel_id: int, service: SchedulingService = Depends(get_service)):
    return [EntryResponse.from_entry(e) for e in service.get_schedule(channel_id)]


@router.get("/{channel_id}/now", response_model=NowPlayingResponse)
def get_now(
    channel_id: int,
    at: datetime | None = Query(None, description="ISO-8601 instant (default: now)"),
    service: SchedulingService = Depends(get_service),
):
    if at is not None and at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    result = service.get_now(channel_id, at)
    if isinstance(result, NotScheduled):
        if result.reason == "store_unavailable":
            detail = "Schedule temporarily unavailable"
        else:
            detail = "No program currently airing"
        raise HTTPException(
            status_code=_STATUS_FOR_REASON[result.reason],
            detail={"message": detail, "reason": result.reason},
        )
    return NowPlayingResponse(
        channel_id=channel_id,
        at=result.at,
        program=EntryResponse.from_entry(result.entry),
        next=EntryResponse.from_entry(result.next_entry) if result.next_entry else None,
        seek_ms=result.offset_ms,
    )


@router.post("/{channel_id}/regenerate", response_model=RegenerationResponse)
def regenerate_channel(channel_id: int, service: SchedulingService = Depends(get_service)):
    result = service.regenerate_channel(channel_id)
    if result.status == "failed":
        raise HTTPException(status_code=503, detail=result.error or "Regeneration failed")
    return RegenerationResponse.from_result(result)
