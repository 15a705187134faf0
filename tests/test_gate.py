"""Tests for the enforcement gate and redirect outbox."""

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

from limiter.limits.gate import (
    EnforcementGate,
    RedirectOutbox,
    build_interstitial_url,
)
from limiter.models import BlockDecision, LimitType

from conftest import INTERSTITIAL, FailingNavigator

TODAY = "2024-03-14"
YT = "https://www.youtube.com/watch?v=abc&t=10"


def _query(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class TestBuildInterstitialUrl:
    def test_encodes_all_parameters(self):
        decision = BlockDecision(
            blocked=True, limit_type=LimitType.OPENS, reason="Too many & more", site_id="s1"
        )
        url = build_interstitial_url(INTERSTITIAL, YT, decision)
        assert url.startswith(INTERSTITIAL + "?")
        params = _query(url)
        assert params == {
            "blockedUrl": YT,
            "siteId": "s1",
            "reason": "Too many & more",
            "limitType": "opens",
        }

    def test_appends_to_existing_query(self):
        decision = BlockDecision(blocked=True, limit_type=LimitType.TIME, reason="r", site_id="s")
        url = build_interstitial_url("http://127.0.0.1:8765/timeout?theme=dark", YT, decision)
        assert "?theme=dark&blockedUrl=" in url


class TestRedirectOutbox:
    async def test_latest_command_per_tab(self):
        outbox = RedirectOutbox()
        await outbox.redirect(1, "a")
        await outbox.redirect(1, "b")
        await outbox.redirect(2, "c")
        assert outbox.peek(1).url == "b"
        assert [c.url for c in outbox.drain()] == ["b", "c"]
        assert outbox.drain() == []

    async def test_take_removes(self):
        outbox = RedirectOutbox()
        await outbox.redirect(7, "x")
        assert outbox.take(7).url == "x"
        assert outbox.take(7) is None

    async def test_bounded(self):
        outbox = RedirectOutbox(max_pending=2)
        for tab in range(5):
            await outbox.redirect(tab, str(tab))
        assert [c.tab_id for c in outbox.drain()] == [3, 4]


class TestEnforcementGate:
    async def test_non_distracting_url_passes(self, gate, outbox):
        assert await gate.maybe_block(1, "https://docs.python.org/") is False
        assert outbox.drain() == []

    async def test_under_limit_passes(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=100, opens=1)
        assert await gate.maybe_block(1, YT) is False
        assert outbox.peek(1) is None

    async def test_over_limit_redirects_with_details(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=4000, opens=3)
        assert await gate.maybe_block(1, YT) is True
        params = _query(outbox.peek(1).url)
        assert params["blockedUrl"] == YT
        assert params["siteId"] == "yt"
        assert params["limitType"] == "time"
        assert "67" in params["reason"]

    async def test_time_only_ignores_open_ceiling(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=100, opens=5)
        assert await gate.maybe_block(1, YT, time_only=True) is False
        assert outbox.peek(1) is None
        assert await gate.maybe_block(1, YT) is True

    async def test_time_only_still_blocks_on_time(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=3600, opens=5)
        assert await gate.maybe_block(1, YT, time_only=True) is True
        assert _query(outbox.peek(1).url)["limitType"] == "both"

    async def test_navigation_failure_fails_open(self, classifier, evaluator, ledger):
        gate = EnforcementGate(classifier, evaluator, FailingNavigator(), INTERSTITIAL)
        ledger.set(TODAY, "yt", seconds=4000)
        assert await gate.maybe_block(1, YT) is False

    async def test_storage_failure_fails_open(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=4000)
        ledger.fail = True
        assert await gate.maybe_block(1, YT) is False
        assert outbox.peek(1) is None

    async def test_missing_tab_or_url(self, gate, ledger):
        ledger.set(TODAY, "yt", seconds=4000)
        assert await gate.maybe_block(None, YT) is False
        assert await gate.maybe_block(1, None) is False
        assert await gate.maybe_block(1, "") is False

    async def test_interstitial_itself_is_never_blocked(self, gate, ledger, outbox):
        ledger.set(TODAY, "yt", seconds=4000)
        interstitial = INTERSTITIAL + "?blockedUrl=https%3A%2F%2Fyoutube.com"
        assert await gate.maybe_block(1, interstitial) is False
        assert outbox.peek(1) is None
