"""
Activity Monitor: tracks which tab is in the foreground and whether the
browser window has focus, and emits a normalized ActivitySignal on every
change.

It is fed by the raw browser events the extension forwards (see
telemetry/browser.py) and knows nothing about distracting sites.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..models import ActivityCallback, ActivitySignal

logger = logging.getLogger(__name__)


class ActivityMonitor:

    def __init__(self, is_focused: bool = True):
        self._tab_id: Optional[int] = None
        self._url: Optional[str] = None
        self._is_focused = is_focused
        self._listeners: List[ActivityCallback] = []

    # ------------------------------------------------------------------
    # Subscription
    # ------------------------------------------------------------------

    def subscribe(self, callback: ActivityCallback) -> None:
        """Register callback(signal), invoked synchronously on every change."""
        self._listeners.append(callback)

    def current(self) -> ActivitySignal:
        return ActivitySignal(tab_id=self._tab_id, url=self._url, is_focused=self._is_focused)

    # ------------------------------------------------------------------
    # Browser event handlers
    # ------------------------------------------------------------------

    def initialize(self, tab_id: Optional[int], url: Optional[str], is_focused: bool = True) -> None:
        """Seed state from the extension's startup query and announce it."""
        self._tab_id = tab_id
        self._url = url
        self._is_focused = is_focused
        logger.info("Initial activity: tab %s %s focused=%s", tab_id, url, is_focused)
        self._emit()

    def tab_activated(self, tab_id: int, url: Optional[str]) -> None:
        logger.debug("Tab activated: %s", tab_id)
        self._tab_id = tab_id
        self._url = url
        self._emit()

    def tab_updated(self, tab_id: int, url: Optional[str]) -> None:
        """URL change in some tab; only the foreground tab matters."""
        if tab_id != self._tab_id or not url or url == self._url:
            return
        logger.debug("Foreground tab %s navigated to %s", tab_id, url)
        self._url = url
        self._emit()

    def tab_removed(self, tab_id: int) -> None:
        if tab_id != self._tab_id:
            return
        logger.debug("Foreground tab %s closed", tab_id)
        self._tab_id = None
        self._url = None
        self._emit()

    def focus_changed(self, is_focused: bool) -> None:
        if is_focused == self._is_focused:
            return
        logger.debug("Window focus changed: focused=%s", is_focused)
        self._is_focused = is_focused
        self._emit()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _emit(self) -> None:
        signal = self.current()
        for listener in self._listeners:
            try:
                listener(signal)
            except Exception:
                logger.exception("Activity listener failed for %s", signal)
