"""
Enforcement Gate: redirects a tab to the interstitial page when the site it
is about to show is over its daily limit.

Called from the pre-navigation hook and whenever a tracking session starts.
Fails open: any error means "did not block".
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode

from ..models import BlockDecision, LimitType, Navigator
from ..tracking.classifier import SiteClassifier
from .evaluator import LimitEvaluator

logger = logging.getLogger(__name__)


def build_interstitial_url(base_url: str, blocked_url: str, decision: BlockDecision) -> str:
    query = urlencode(
        {
            "blockedUrl": blocked_url,
            "siteId": decision.site_id or "",
            "reason": decision.reason or "",
            "limitType": decision.limit_type.value if decision.limit_type else "",
        }
    )
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{query}"


@dataclass
class RedirectCommand:
    tab_id: int
    url: str
    issued_at: datetime = field(default_factory=datetime.now)


class RedirectOutbox:
    """
    Navigator for the local service: the extension performs the actual tab
    update, so redirects are parked here (latest per tab) until collected.
    """

    def __init__(self, max_pending: int = 100):
        self._pending: "OrderedDict[int, RedirectCommand]" = OrderedDict()
        self._max_pending = max_pending

    async def redirect(self, tab_id: int, url: str) -> None:
        self._pending.pop(tab_id, None)
        self._pending[tab_id] = RedirectCommand(tab_id=tab_id, url=url)
        while len(self._pending) > self._max_pending:
            self._pending.popitem(last=False)

    def peek(self, tab_id: int) -> Optional[RedirectCommand]:
        return self._pending.get(tab_id)

    def take(self, tab_id: int) -> Optional[RedirectCommand]:
        return self._pending.pop(tab_id, None)

    def drain(self) -> List[RedirectCommand]:
        commands = list(self._pending.values())
        self._pending.clear()
        return commands


class EnforcementGate:

    def __init__(
        self,
        classifier: SiteClassifier,
        evaluator: LimitEvaluator,
        navigator: Navigator,
        interstitial_url: str,
    ):
        self._classifier = classifier
        self._evaluator = evaluator
        self._navigator = navigator
        self.interstitial_url = interstitial_url

    async def maybe_block(
        self, tab_id: Optional[int], url: Optional[str], time_only: bool = False
    ) -> bool:
        """
        Redirect *tab_id* to the interstitial if *url* is over its limit.

        With *time_only*, an open ceiling alone does not redirect. A live
        session has already counted its own open, so only time can newly
        run out while it lasts.
        """
        if tab_id is None or not url:
            logger.warning("maybe_block called without tab/url: %r %r", tab_id, url)
            return False
        if url.startswith(self.interstitial_url):
            return False

        try:
            match = self._classifier.classify(url)
            if not match.is_match:
                return False

            decision = await self._evaluator.evaluate(match.site_id)
            if not decision.blocked:
                return False
            if time_only and decision.limit_type not in (LimitType.TIME, LimitType.BOTH):
                return False

            target = build_interstitial_url(self.interstitial_url, url, decision)
            await self._navigator.redirect(tab_id, target)
        except Exception:
            logger.exception("Redirect of tab %s away from %s failed; allowing the page", tab_id, url)
            return False

        logger.info(
            "Redirected tab %s from %s (%s limit)", tab_id, url, decision.limit_type.value
        )
        return True
