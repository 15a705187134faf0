"""
Browser Event Receiver: accepts tab/window events POSTed by the browser
extension and replays them onto the ActivityMonitor.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..tracking.activity import ActivityMonitor

# Mapping from browser extension event names → internal event kinds
_EVENT_MAP: Dict[str, str] = {
    "INITIAL_STATE": "initial",
    "TAB_ACTIVATED": "tab_activated",
    "TAB_UPDATED": "tab_updated",
    "TAB_REMOVED": "tab_removed",
    "WINDOW_FOCUS_CHANGED": "focus_changed",
    "FOCUS_LOST": "focus_changed",
    "FOCUS_GAINED": "focus_changed",
}

# browser.windows.WINDOW_ID_NONE
WINDOW_ID_NONE = -1


@dataclass
class BrowserEvent:
    kind: str
    tab_id: Optional[int] = None
    url: Optional[str] = None
    is_focused: bool = True
    timestamp: float = field(default_factory=time.time)


def _tab_id(data: Dict[str, Any]) -> Optional[int]:
    raw = data.get("tabId")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _focused(raw_type: str, data: Dict[str, Any]) -> bool:
    if raw_type == "FOCUS_LOST":
        return False
    if raw_type == "FOCUS_GAINED":
        return True
    if "focused" in data:
        return bool(data["focused"])
    if "windowId" in data:
        return data["windowId"] != WINDOW_ID_NONE
    return True


def parse_browser_event(payload: Dict[str, Any]) -> BrowserEvent | None:
    """
    Parse a raw browser extension payload into a BrowserEvent.
    Returns None if the event type is unknown or a required tab id is missing.

    Expected payload shape:
    {
        "type": "TAB_ACTIVATED",
        "timestamp": 1700000000.123,   # optional, defaults to now
        "data": {"tabId": 12, "url": "https://example.com/"}
    }
    """
    raw_type = payload.get("type", "")
    kind = _EVENT_MAP.get(raw_type)
    if not kind:
        return None

    data = payload.get("data") or {}
    timestamp = float(payload.get("timestamp") or time.time())
    tab_id = _tab_id(data)
    url = data.get("url") or None

    if kind in ("tab_activated", "tab_updated", "tab_removed") and tab_id is None:
        return None

    return BrowserEvent(
        kind=kind,
        tab_id=tab_id,
        url=url,
        is_focused=_focused(raw_type, data),
        timestamp=timestamp,
    )


def apply_browser_event(monitor: ActivityMonitor, event: BrowserEvent) -> None:
    if event.kind == "initial":
        monitor.initialize(event.tab_id, event.url, event.is_focused)
    elif event.kind == "tab_activated":
        monitor.tab_activated(event.tab_id, event.url)
    elif event.kind == "tab_updated":
        monitor.tab_updated(event.tab_id, event.url)
    elif event.kind == "tab_removed":
        monitor.tab_removed(event.tab_id)
    elif event.kind == "focus_changed":
        monitor.focus_changed(event.is_focused)
