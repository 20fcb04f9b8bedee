from __future__ import annotations

import typer
import uvicorn

from ...infra.settings import settings


def serve(
    host: str | None = typer.Option(None, "--host", help="Bind address (default: HOST)"),
    port: int | None = typer.Option(None, "--port", help="Bind port (default: PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the HTTP API and the horizon keeper."""
    uvicorn.run(
        "linearvue.web.server:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )
