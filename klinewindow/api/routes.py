from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from klinewindow.controller import SelectionController
from klinewindow.models.market import WindowKey
from klinewindow.models.window import SelectionOut, SelectRequest, WindowOut, WindowStatus

router = APIRouter()

# A window counts as fresh if it moved within ~1.5 buckets.
FRESHNESS_SECONDS = {
    "1m": 90,
    "3m": 270,
    "5m": 450,
}


def iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt else None


def get_controller(request: Request) -> SelectionController:
    return request.app.state.controller


def make_key(instrument: str, interval: str) -> WindowKey:
    try:
        return WindowKey(instrument=instrument, interval=interval)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def selection_out(controller: SelectionController, changed: bool) -> SelectionOut:
    active = controller.active
    return SelectionOut(
        instrument=active.key.instrument if active.key else None,
        interval=active.key.interval if active.key else None,
        generation=active.generation,
        changed=changed,
    )


@router.get("/window", response_model=WindowOut)
async def active_window(request: Request):
    """Candles of the active key, oldest first."""
    controller = get_controller(request)
    active = controller.active
    return WindowOut.build(active.key, active.generation, controller.active_window())


@router.get("/window/{instrument}/{interval}", response_model=WindowOut)
async def window(instrument: str, interval: str, request: Request):
    """
    Any retained window, active or not.
    Switching away from a key keeps its window, so this can serve stale data.
    """
    controller = get_controller(request)
    key = make_key(instrument, interval)
    generation = controller.active.generation if key == controller.active.key else 0
    return WindowOut.build(key, generation, controller.store.get_window(key))


@router.post("/select", response_model=SelectionOut)
async def select(body: SelectRequest, request: Request):
    controller = get_controller(request)
    key = make_key(body.instrument, body.interval)
    changed = controller.select(key)
    return selection_out(controller, changed)


@router.post("/refresh", response_model=SelectionOut)
async def refresh(request: Request):
    """Re-run the backfill for the active key (manual retry after a failure)."""
    controller = get_controller(request)
    if not controller.refresh():
        raise HTTPException(status_code=409, detail="No active selection")
    return selection_out(controller, changed=False)


@router.get("/snapshot")
async def snapshot(request: Request):
    """
    Snapshot:
    - every retained window with its size
    - last_updated timestamps
    - simple freshness flags
    """
    controller = get_controller(request)
    store = controller.store
    active = controller.active

    windows = []
    for key in store.keys():
        windows.append(
            WindowStatus(
                instrument=key.instrument,
                interval=key.interval,
                count=len(store.get_window(key)),
                last_updated=store.get_last_updated(key),
                fresh=store.is_fresh(key, FRESHNESS_SECONDS[key.interval]),
            )
        )

    return {
        "active": selection_out(controller, changed=False),
        "stream_open": controller.stream.is_open,
        "windows": windows,
    }


@router.websocket("/ws/window")
async def window_feed(websocket: WebSocket):
    """Sends the active window on connect, then again after every change."""
    broadcaster = websocket.app.state.broadcaster
    await broadcaster.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.disconnect(websocket)
