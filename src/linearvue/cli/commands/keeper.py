from __future__ import annotations

import time

import typer

from ._ops.output import emit_json, wants_json
from ._ops.scheduling import cli_service

app = typer.Typer(name="keeper", help="Horizon keeper (background extension)")


@app.command("run")
def run(
    ctx: typer.Context,
    once: bool = typer.Option(False, "--once", help="Run a single pass and exit"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format"),
):
    """Keep every channel's future schedule materialized."""
    as_json = wants_json(ctx, json_output)
    service = cli_service()
    keeper = service.keeper

    if once:
        try:
            report = keeper.evaluate_once()
        finally:
            service.stop()
        if as_json:
            emit_json({"status": "ok" if report.ok else "error", "report": report.to_dict()})
        else:
            typer.echo(
                f"Pass complete: {report.channels} channels, {report.blocks_written} blocks written, "
                f"{report.blocks_pruned} pruned, {len(report.failed_channels)} failed"
            )
        if not report.ok:
            raise typer.Exit(1)
        return

    keeper.start()
    if not keeper.is_running:
        typer.echo("Horizon keeper is disabled (AUTO_REGENERATE_ENABLED=false)")
        service.stop()
        return
    typer.echo("Horizon keeper running (Ctrl+C to stop)...")
    try:
        while keeper.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        typer.echo("\nShutting down...")
    finally:
        service.stop()
