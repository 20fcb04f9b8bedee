from __future__ import annotations

from datetime import timedelta

import typer

from ...infra.exceptions import LinearVueError
from ...infra.settings import settings
from ...runtime.schedule_types import NotScheduled
from ._ops.output import emit_json, fail, wants_json
from ._ops.scheduling import cli_service, now_to_dict, parse_when

app = typer.Typer(name="schedule", help="Schedule inspection and regeneration")


def _format_ms(ms: int) -> str:
    seconds = ms // 1000
    return f"{seconds // 3600:d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}"


@app.command("show")
def show(
    ctx: typer.Context,
    channel_id: int = typer.Argument(..., help="Channel id"),
    limit: int | None = typer.Option(None, "--limit", help="Show at most N entries"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Print a channel's persisted schedule."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    try:
        entries = service.get_schedule(channel_id)
    except LinearVueError as e:
        fail(str(e), as_json)
    finally:
        service.stop()

    if limit is not None:
        entries = entries[:limit]
    if as_json:
        emit_json({"status": "ok", "channel_id": channel_id, "entries": [e.to_dict() for e in entries]})
        return
    if not entries:
        typer.echo(f"No schedule for channel {channel_id}")
        return
    for e in entries:
        label = e.title if not e.subtitle else f"{e.title} - {e.subtitle}"
        typer.echo(
            f"{e.start_time:%Y-%m-%d %H:%M:%S}  {e.end_time:%H:%M:%S}  "
            f"{_format_ms(e.duration_ms):>8}  {e.kind:<12}  {label}"
        )


@app.command("now")
def now(
    ctx: typer.Context,
    channel_id: int = typer.Argument(..., help="Channel id"),
    at: str | None = typer.Option(None, "--at", help="ISO-8601 instant (default: now)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Show what is airing on a channel."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    try:
        result = service.get_now(channel_id, parse_when(at))
    except LinearVueError as e:
        fail(str(e), as_json)
    finally:
        service.stop()

    if as_json:
        emit_json(now_to_dict(result))
    elif isinstance(result, NotScheduled):
        typer.echo(f"Nothing scheduled on channel {channel_id}: {result.reason}")
    else:
        typer.echo(f"Now: {result.entry.title}")
        if result.entry.subtitle:
            typer.echo(f"  {result.entry.subtitle}")
        typer.echo(f"  Offset: {_format_ms(result.offset_ms)} / {_format_ms(result.entry.duration_ms)}")
        if result.next_entry is not None:
            typer.echo(f"Next: {result.next_entry.title} at {result.next_entry.start_time:%H:%M:%S}")
    if isinstance(result, NotScheduled) and result.reason == "store_unavailable":
        raise typer.Exit(2)


@app.command("regenerate")
def regenerate(
    ctx: typer.Context,
    channel_id: int = typer.Argument(..., help="Channel id"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Rebuild a channel's schedule from the airing block forward."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    try:
        result = service.regenerate_channel(channel_id)
    except LinearVueError as e:
        fail(str(e), as_json)
    finally:
        service.stop()

    if as_json:
        emit_json(
            {
                "status": result.status,
                "channel_id": result.channel_id,
                "blocks_written": result.blocks_written,
                "error": result.error,
            }
        )
    else:
        typer.echo(f"Channel {channel_id}: {result.status} ({result.blocks_written} blocks written)")
        if result.error:
            typer.echo(f"  Error: {result.error}", err=True)
    if result.status == "failed":
        raise typer.Exit(1)


@app.command("regenerate-all")
def regenerate_all(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Rebuild every channel's schedule."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    try:
        batch = service.regenerate_all()
    finally:
        service.stop()

    if as_json:
        emit_json(
            {
                "status": "error" if batch.failed else "ok",
                "blocks_written": batch.blocks_written,
                "results": [
                    {
                        "channel_id": r.channel_id,
                        "status": r.status,
                        "blocks_written": r.blocks_written,
                        "error": r.error,
                    }
                    for r in batch.results
                ],
            }
        )
    else:
        for r in batch.results:
            typer.echo(f"Channel {r.channel_id}: {r.status} ({r.blocks_written} blocks written)")
        typer.echo(f"Total blocks written: {batch.blocks_written}")
    if batch.failed:
        raise typer.Exit(1)


@app.command("prune")
def prune(
    ctx: typer.Context,
    before: str | None = typer.Option(None, "--before", help="ISO-8601 cutoff (default: now - retention)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Delete blocks that ended before the cutoff."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    try:
        cutoff = parse_when(before) or (
            service.clock.now_utc() - timedelta(hours=settings.retention_hours)
        )
        removed = service.prune(cutoff)
    except LinearVueError as e:
        fail(str(e), as_json)
    finally:
        service.stop()

    if as_json:
        emit_json({"status": "ok", "before": cutoff.isoformat(), "blocks_pruned": removed})
    else:
        typer.echo(f"Pruned {removed} blocks ending before {cutoff.isoformat()}")
