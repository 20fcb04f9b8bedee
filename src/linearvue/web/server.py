"""
HTTP server for LinearVue.

Serves the schedule API and a WebSocket feed of schedule changes, and runs
the horizon keeper for the lifetime of the app.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..infra import db as db_module
from ..infra.exceptions import ResourceError, StoreError, ValidationError
from ..infra.logging import configure_logging
from ..infra.settings import settings
from ..runtime.service import SchedulingService, build_service
from .api import schedule as schedule_api
from .broadcaster import WebSocketBroadcaster

logger = logging.getLogger(__name__)


def create_app(service: SchedulingService | None = None, *, start_keeper: bool = True) -> FastAPI:
    """Build the FastAPI app around a SchedulingService (built from settings if omitted)."""
    if service is None:
        configure_logging()
        service = build_service(settings, db_module.SessionLocal)
    broadcaster = WebSocketBroadcaster()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        broadcaster.bind_loop(asyncio.get_running_loop())
        unsubscribe = service.notifier.subscribe(broadcaster.on_schedule_changed)
        if start_keeper:
            service.start()
        logger.info("LinearVue server started")
        try:
            yield
        finally:
            unsubscribe()
            if start_keeper:
                service.stop()
            logger.info("LinearVue server stopped")

    app = FastAPI(title="LinearVue", lifespan=lifespan)
    app.state.service = service
    app.state.broadcaster = broadcaster

    @app.exception_handler(ResourceError)
    async def _resource_error(request: Request, exc: ResourceError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def _store_error(request: Request, exc: StoreError):
        logger.warning("Store error serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Schedule store unavailable"})

    @app.get("/api/health")
    def health():
        report = service.keeper.get_health_report() if service.keeper else None
        return {
            "status": "ok",
            "websocket_clients": broadcaster.client_count,
            "keeper": report.to_dict() if report else None,
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        await broadcaster.connect(websocket)
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            broadcaster.disconnect(websocket)

    app.include_router(schedule_api.router)
    return app
