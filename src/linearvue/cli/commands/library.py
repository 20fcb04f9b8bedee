from __future__ import annotations

import typer

from ...infra.exceptions import LinearVueError
from ...infra.uow import session
from ...usecases import library_upsert as _uc_library_upsert
from ._ops.output import emit_json, fail, wants_json

app = typer.Typer(name="library", help="Catalog cache operations")


@app.command("add")
def add_item(
    ctx: typer.Context,
    item_id: str = typer.Argument(..., help="Library item id"),
    name: str = typer.Option(..., "--name", help="Item name (episode name for episodes)"),
    item_type: str = typer.Option("Movie", "--type", help="Movie | Episode"),
    runtime: float | None = typer.Option(None, "--runtime", help="Runtime in seconds"),
    series: str | None = typer.Option(None, "--series", help="Series name (episodes)"),
    season: int | None = typer.Option(None, "--season", help="Season number"),
    episode: int | None = typer.Option(None, "--episode", help="Episode number"),
    year: int | None = typer.Option(None, "--year", help="Production year"),
    rating: str | None = typer.Option(None, "--rating", help="Official rating"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Add or update a catalog cache row."""
    as_json = wants_json(ctx, json_output)
    try:
        with session() as db:
            result = _uc_library_upsert.upsert_library_item(
                db,
                item_id=item_id,
                name=name,
                item_type=item_type,
                runtime_seconds=runtime,
                series_name=series,
                season_number=season,
                episode_number=episode,
                production_year=year,
                rating=rating,
            )
    except LinearVueError as e:
        fail(str(e), as_json, prefix="Error saving library item")

    if as_json:
        emit_json({"status": "ok", "item": result})
    else:
        verb = "added" if result["created"] else "updated"
        typer.echo(f"Library item {result['id']} {verb}: {result['name']}")
