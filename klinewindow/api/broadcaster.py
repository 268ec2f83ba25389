"""
Pushes the active window to connected websocket clients.

The controller calls on_window_changed() after every merge or backfill
replacement of the active key. The frame is built right away (the window is
mutated in place later) and sent from a separate task so the event loop that
drains the engine queue never waits on a slow client.
"""

from __future__ import annotations

import asyncio
import logging
from typing import List, Set

from fastapi import WebSocket

from klinewindow.controller import SelectionController
from klinewindow.models.market import Candle, WindowKey
from klinewindow.models.window import WindowOut

log = logging.getLogger("window_broadcaster")

SEND_TIMEOUT_S = 1.0


class WindowBroadcaster:
    def __init__(self, controller: SelectionController) -> None:
        self._controller = controller
        self._clients: Set[WebSocket] = set()
        self._sends: Set[asyncio.Task] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def attach(self) -> None:
        self._controller.add_listener(self.on_window_changed)

    def detach(self) -> None:
        self._controller.remove_listener(self.on_window_changed)
        for task in list(self._sends):
            task.cancel()

    def frame(self) -> dict:
        active = self._controller.active
        return WindowOut.build(active.key, active.generation, self._controller.active_window()).model_dump()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        log.info("Window client connected clients=%d", len(self._clients))
        await websocket.send_json(self.frame())

    def disconnect(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)
        log.info("Window client disconnected clients=%d", len(self._clients))

    def on_window_changed(self, key: WindowKey, window: List[Candle]) -> None:
        if not self._clients:
            return
        task = asyncio.create_task(self.broadcast(self.frame()))
        self._sends.add(task)
        task.add_done_callback(self._sends.discard)

    async def broadcast(self, frame: dict) -> None:
        for websocket in list(self._clients):
            try:
                await asyncio.wait_for(websocket.send_json(frame), timeout=SEND_TIMEOUT_S)
            except Exception as e:
                log.warning("Dropping window client error=%r", e)
                self._clients.discard(websocket)
