from __future__ import annotations

import json
from typing import Any

import typer


def wants_json(ctx: typer.Context | None, json_output: bool) -> bool:
    """A command's own --json flag or the root --json flag."""
    if json_output:
        return True
    if ctx is not None and isinstance(ctx.obj, dict):
        return bool(ctx.obj.get("json"))
    return False


def emit_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


def fail(message: str, json_output: bool, *, prefix: str = "Error") -> None:
    """Report an error and exit with status 1."""
    if json_output:
        emit_json({"status": "error", "error": message})
    else:
        typer.echo(f"{prefix}: {message}", err=True)
    raise typer.Exit(1)
