from __future__ import annotations

import typer

from ...infra.exceptions import LinearVueError
from ...infra.uow import session
from ...usecases import channel_add as _uc_channel_add
from ...usecases import channel_content_update as _uc_channel_content_update
from ...usecases import channel_delete as _uc_channel_delete
from ...usecases import channel_list as _uc_channel_list
from ._ops.output import emit_json, fail, wants_json
from ._ops.scheduling import cli_service

app = typer.Typer(name="channel", help="Channel and content list operations")


def _split_items(items: list[str] | None) -> list[str]:
    """Accept repeated --item flags and/or comma-separated values."""
    result: list[str] = []
    for raw in items or []:
        result.extend(part.strip() for part in raw.split(",") if part.strip())
    return result


@app.command("add")
def add_channel(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", help="Channel display name"),
    number: int | None = typer.Option(None, "--number", help="Channel number (default: next free)"),
    kind: str = typer.Option("custom", "--kind", help="auto | preset | custom"),
    items: list[str] | None = typer.Option(None, "--item", help="Library item id (repeatable or comma-separated)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create a channel."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            result = _uc_channel_add.add_channel(
                db, name=name, number=number, kind=kind, item_ids=_split_items(items)
            )
    except LinearVueError as e:
        fail(str(e), as_json, prefix="Error creating channel")

    if as_json:
        emit_json({"status": "ok", "channel": result})
    else:
        typer.echo("Channel created:")
        typer.echo(f"  ID: {result['id']}")
        typer.echo(f"  Number: {result['number']}")
        typer.echo(f"  Name: {result['name']}")
        typer.echo(f"  Kind: {result['kind']}")
        typer.echo(f"  Items: {result['item_count']}")


@app.command("set-items")
def set_items(
    ctx: typer.Context,
    channel_id: int = typer.Argument(..., help="Channel id"),
    items: list[str] | None = typer.Option(None, "--item", help="Library item id (repeatable or comma-separated)"),
    regenerate: bool = typer.Option(True, "--regenerate/--no-regenerate", help="Regenerate the schedule if the list changed"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Replace a channel's ordered item list."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            result = _uc_channel_content_update.update_channel_content(
                db, channel_id=channel_id, item_ids=_split_items(items)
            )
    except LinearVueError as e:
        fail(str(e), as_json, prefix="Error updating channel")

    regeneration = None
    if result["changed"] and regenerate:
        service = cli_service()
        try:
            outcome = service.regenerate_channel(channel_id)
        finally:
            service.stop()
        regeneration = {
            "status": outcome.status,
            "blocks_written": outcome.blocks_written,
            "error": outcome.error,
        }

    if as_json:
        emit_json({"status": "ok", "channel": result, "regeneration": regeneration})
    else:
        state = "updated" if result["changed"] else "unchanged"
        typer.echo(f"Channel {channel_id} content {state} (version {result['content_version']})")
        if regeneration is not None:
            typer.echo(
                f"  Regeneration: {regeneration['status']} "
                f"({regeneration['blocks_written']} blocks written)"
            )


@app.command("delete")
def delete_channel(
    ctx: typer.Context,
    channel_id: int = typer.Argument(..., help="Channel id"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Delete a channel and its schedule blocks."""
    as_json = wants_json(ctx, json_output)
    if not yes and not as_json:
        typer.confirm(f"Delete channel {channel_id} and its schedule?", abort=True)
    try:
        with session() as db:
            result = _uc_channel_delete.delete_channel(db, channel_id=channel_id)
    except LinearVueError as e:
        fail(str(e), as_json, prefix="Error deleting channel")

    if as_json:
        emit_json({"status": "ok", **result})
    else:
        typer.echo(
            f"Channel {result['id']} ({result['name']}) deleted; "
            f"{result['blocks_deleted']} schedule blocks removed"
        )


@app.command("list")
def list_channels(
    ctx: typer.Context,
    kind: str | None = typer.Option(None, "--kind", help="Filter by kind"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """List channels."""
    as_json = wants_json(ctx, json_output)
    with session() as db:
        result = _uc_channel_list.list_channels(db, kind=kind)

    if as_json:
        emit_json({"status": "ok", **result})
        return
    if not result["channels"]:
        typer.echo("No channels found")
        return
    for ch in result["channels"]:
        typer.echo(
            f"{ch['number']:>4}  {ch['name']}  [{ch['kind']}]  "
            f"id={ch['id']} items={ch['item_count']} v{ch['content_version']}"
        )
