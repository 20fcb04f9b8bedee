"""
Main CLI application using Typer with router-based command dispatch.

This module provides the command-line interface for LinearVue, calling use
cases and the scheduling service and printing JSON when requested.

Command groups are declared in COMMAND_GROUPS and mounted through CliRouter.
"""

from __future__ import annotations

import typer

from ..infra.logging import configure_logging
from .commands import channel, db, keeper, library, schedule
from .commands.serve import serve
from .router import CliRouter, CommandGroup

COMMAND_GROUPS = (
    CommandGroup("db", db.app, "Database setup operations"),
    CommandGroup("channel", channel.app, "Channel and content list operations"),
    CommandGroup("library", library.app, "Catalog cache operations"),
    CommandGroup("schedule", schedule.app, "Schedule inspection and regeneration"),
    CommandGroup("keeper", keeper.app, "Horizon keeper (background extension)"),
)

app = typer.Typer(help="LinearVue operator CLI")

router = CliRouter(app)
router.register_all(COMMAND_GROUPS)

app.command("serve")(serve)


@app.callback()
def main(
    ctx: typer.Context,
    json: bool = typer.Option(False, "--json", help="Output in JSON format"),
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    """LinearVue - linear channels from an on-demand library."""
    configure_logging(log_level)
    ctx.ensure_object(dict)
    ctx.obj["json"] = json


def cli():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
