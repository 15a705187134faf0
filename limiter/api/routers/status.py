"""
/status: tracking state snapshot + WebSocket stream.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect

from ...api.schemas import TrackingStatusOut

router = APIRouter(prefix="/status", tags=["status"])


def _get_engine(request: Request):
    return request.app.state.engine


def _get_engine_ws(websocket: WebSocket):
    return websocket.app.state.engine


@router.get("", response_model=TrackingStatusOut)
def get_status(engine=Depends(_get_engine)):
    """What is being timed right now, and whether any ledger writes are pending."""
    return TrackingStatusOut(**engine.status())


@router.websocket("/ws")
async def status_websocket(websocket: WebSocket, engine=Depends(_get_engine_ws)):
    """
    WebSocket stream: pushes the tracking status every 2 seconds.
    The popup subscribes to this for its live countdown.
    """
    await websocket.accept()
    try:
        while True:
            await websocket.send_json(engine.status())
            await asyncio.sleep(2)
    except WebSocketDisconnect:
        pass
