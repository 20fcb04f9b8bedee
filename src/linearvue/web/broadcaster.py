"""
WebSocket fan-out for schedule change events.

ChangeNotifier delivers events on whatever thread committed the regeneration;
this bridge hands them to the server's event loop and sends them to every
connected client as ``{"type": "schedule_updated", "payload": {...}}``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket

from ..runtime.schedule_types import ScheduleChanged

logger = logging.getLogger(__name__)


class WebSocketBroadcaster:
    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        await websocket.send_json(
            {"type": "connected", "payload": {"message": "Connected to LinearVue"}}
        )

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    async def broadcast(self, message: dict[str, Any]) -> None:
        for websocket in list(self._clients):
            try:
                await websocket.send_json(message)
            except Exception as e:
                logger.debug("Dropping websocket client: %s", e)
                self._clients.discard(websocket)

    def on_schedule_changed(self, event: ScheduleChanged) -> None:
        """ChangeNotifier subscriber; safe to call from any thread."""
        if self._loop is None or self._loop.is_closed():
            return
        message = {
            "type": "schedule_updated",
            "payload": {"channel_id": event.channel_id, "blocks_written": event.blocks_written},
        }
        asyncio.run_coroutine_threadsafe(self.broadcast(message), self._loop)
