"""
Shared pytest fixtures and configuration.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from limiter.api.app import create_app
from limiter.config import Config
from limiter.limits.evaluator import LimitEvaluator
from limiter.limits.gate import EnforcementGate, RedirectOutbox
from limiter.models import SiteRule, UsageDelta, UsageEntry
from limiter.tracking.classifier import SiteClassifier
from limiter.tracking.engine import UsageAccountingEngine

INTERSTITIAL = "moz-extension://limiter/ui/timeout/timeout.html"


class FakeClock:
    """Manually stepped clock; starts mid-morning so tests don't cross midnight by accident."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2024, 3, 14, 10, 0, 0)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


class MemoryRules:
    """In-memory RuleSource."""

    def __init__(self, rules: List[SiteRule]):
        self.rules = rules
        self.fail = False

    async def get_enabled_rules(self) -> List[SiteRule]:
        if self.fail:
            raise OSError("registry unavailable")
        return [r for r in self.rules if r.is_enabled]

    async def get_rule(self, site_id: str) -> Optional[SiteRule]:
        if self.fail:
            raise OSError("registry unavailable")
        return next((r for r in self.rules if r.id == site_id), None)


class MemoryLedger:
    """In-memory UsageLedger that records every accepted delta and can be made to fail."""

    def __init__(self):
        self.entries: Dict[Tuple[str, str], UsageEntry] = {}
        self.deltas: List[UsageDelta] = []
        self.fail = False

    async def get_usage_for_date(self, date_key: str) -> Dict[str, UsageEntry]:
        if self.fail:
            raise OSError("ledger unavailable")
        return {
            site: UsageEntry(e.time_spent_seconds, e.opens)
            for (day, site), e in self.entries.items()
            if day == date_key
        }

    async def add_usage_delta(self, delta: UsageDelta) -> None:
        if self.fail:
            raise OSError("ledger unavailable")
        entry = self.entries.setdefault((delta.date_key, delta.site_id), UsageEntry())
        entry.time_spent_seconds += delta.time_spent_seconds_delta
        entry.opens += delta.opens_delta
        self.deltas.append(delta)

    def set(self, date_key: str, site_id: str, seconds: int = 0, opens: int = 0) -> None:
        self.entries[(date_key, site_id)] = UsageEntry(seconds, opens)

    def seconds(self, site_id: str, date_key: Optional[str] = None) -> int:
        return sum(
            d.time_spent_seconds_delta
            for d in self.deltas
            if d.site_id == site_id and (date_key is None or d.date_key == date_key)
        )

    def opens(self, site_id: str) -> int:
        return sum(d.opens_delta for d in self.deltas if d.site_id == site_id)


class FailingNavigator:
    async def redirect(self, tab_id: int, url: str) -> None:
        raise RuntimeError("tab no longer exists")


# ── Core fixtures ────────────────────────────────────────────────────────────

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rules():
    return MemoryRules([
        SiteRule(id="yt", pattern="youtube.com", daily_time_limit_seconds=3600, daily_open_limit=5),
        SiteRule(id="rd", pattern="reddit.com", daily_time_limit_seconds=1800),
        SiteRule(id="off", pattern="twitter.com", daily_time_limit_seconds=60, is_enabled=False),
    ])


@pytest.fixture
def ledger():
    return MemoryLedger()


@pytest_asyncio.fixture
async def classifier(rules):
    c = SiteClassifier(rules)
    await c.reload_rules()
    return c


@pytest.fixture
def outbox():
    return RedirectOutbox()


@pytest.fixture
def evaluator(rules, ledger, clock):
    return LimitEvaluator(rules, ledger, clock=clock)


@pytest.fixture
def gate(classifier, evaluator, outbox):
    return EnforcementGate(classifier, evaluator, outbox, INTERSTITIAL)


@pytest_asyncio.fixture
async def engine(classifier, ledger, clock, gate):
    """Engine with a long checkpoint interval; tests drive checkpoints by hand."""
    e = UsageAccountingEngine(classifier, ledger, clock=clock, gate=gate, checkpoint_interval_s=3600)
    yield e
    await e.shutdown()


# ── API fixtures ─────────────────────────────────────────────────────────────

@pytest.fixture
def app_config(tmp_path):
    return Config(data_dir=tmp_path / "data", interstitial_url=INTERSTITIAL, checkpoint_interval_s=3600)


@pytest.fixture
def app(app_config, clock):
    """Create a fresh app instance per test, backed by temp databases."""
    return create_app(app_config, clock=clock)


@pytest_asyncio.fixture
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
