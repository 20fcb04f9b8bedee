from __future__ import annotations

import typer

from ...infra import db as db_module
from ._ops.output import emit_json, fail, wants_json

app = typer.Typer(name="db", help="Database setup operations")


@app.command("init")
def init(
    ctx: typer.Context,
    db_url: str | None = typer.Option(None, "--db-url", help="Target database (defaults to DATABASE_URL)"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Create all tables (development convenience; use Alembic in production)."""
    as_json = wants_json(ctx, json_output)
    try:
        db_module.init_db(db_module.get_engine(db_url))
    except Exception as e:
        fail(str(e), as_json, prefix="Error initializing database")
    if as_json:
        emit_json({"status": "ok"})
    else:
        typer.echo("Database initialized")
