"""
/activity: ingest tab and window events forwarded by the browser extension.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...api.schemas import BrowserEventIn
from ...telemetry.browser import apply_browser_event, parse_browser_event

router = APIRouter(prefix="/activity", tags=["activity"])


def _get_monitor(request: Request):
    """Dependency: resolved by the app lifespan state."""
    return request.app.state.monitor


def _get_engine(request: Request):
    return request.app.state.engine


def _to_payload(event: BrowserEventIn) -> dict:
    payload = {"type": event.type, "data": event.data}
    if event.timestamp is not None:
        payload["timestamp"] = event.timestamp
    return payload


@router.post("/event", status_code=status.HTTP_202_ACCEPTED)
async def ingest_event(
    event: BrowserEventIn,
    monitor=Depends(_get_monitor),
    engine=Depends(_get_engine),
):
    """Accept a single browser event and wait until the engine has applied it."""
    parsed = parse_browser_event(_to_payload(event))
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Unrecognised event type: {event.type!r}")

    apply_browser_event(monitor, parsed)
    await engine.join()
    return {"status": "accepted", "tracking": engine.state.value}


@router.post("/batch", status_code=status.HTTP_202_ACCEPTED)
async def ingest_batch(
    events: list[BrowserEventIn],
    monitor=Depends(_get_monitor),
    engine=Depends(_get_engine),
):
    """Accept a batch of events in emission order (used when the extension buffers)."""
    accepted = 0
    for event in events:
        parsed = parse_browser_event(_to_payload(event))
        if parsed:
            apply_browser_event(monitor, parsed)
            accepted += 1
    await engine.join()
    return {"accepted": accepted, "total": len(events)}
