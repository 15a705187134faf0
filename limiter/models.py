"""
Domain types shared by the accounting and enforcement core, plus the
collaborator protocols the core depends on.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol


class LimitType(str, Enum):
    TIME = "time"
    OPENS = "opens"
    BOTH = "both"


class EngineState(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


@dataclass
class SiteRule:
    """A monitored hostname pattern with its daily ceilings (0 = no ceiling)."""
    id: str
    pattern: str
    daily_time_limit_seconds: int = 0
    daily_open_limit: int = 0
    is_enabled: bool = True

    @property
    def has_time_limit(self) -> bool:
        return (self.daily_time_limit_seconds or 0) > 0

    @property
    def has_open_limit(self) -> bool:
        return (self.daily_open_limit or 0) > 0


@dataclass
class UsageEntry:
    time_spent_seconds: int = 0
    opens: int = 0


@dataclass
class UsageDelta:
    """An additive change to one (date_key, site_id) ledger entry."""
    date_key: str
    site_id: str
    time_spent_seconds_delta: int = 0
    opens_delta: int = 0


@dataclass
class TrackingSession:
    site_id: str
    tab_id: int
    url: str
    started_at: datetime        # start of the current *unflushed* interval


@dataclass(frozen=True)
class ActivitySignal:
    """What the user is looking at right now. tab_id/url None = nothing browsable."""
    tab_id: Optional[int]
    url: Optional[str]
    is_focused: bool

    @property
    def is_foreground_page(self) -> bool:
        return self.is_focused and self.tab_id is not None and bool(self.url)


@dataclass(frozen=True)
class Classification:
    is_match: bool
    site_id: Optional[str] = None
    pattern: Optional[str] = None


NO_MATCH = Classification(is_match=False)


@dataclass
class BlockDecision:
    blocked: bool
    limit_type: Optional[LimitType] = None
    reason: Optional[str] = None
    site_id: Optional[str] = None


NOT_BLOCKED = BlockDecision(blocked=False)


@dataclass
class OpenLimitCheck:
    would_exceed: bool
    current_opens: int = 0
    limit: int = 0


@dataclass
class RemainingBudget:
    """Live-display numbers for a rule; None where the rule has no ceiling."""
    site_id: str
    time_spent_seconds: int = 0
    opens: int = 0
    remaining_seconds: Optional[int] = None
    remaining_opens: Optional[int] = None


# ---------------------------------------------------------------------------
# Collaborator protocols
# ---------------------------------------------------------------------------

class RuleSource(Protocol):
    async def get_enabled_rules(self) -> List[SiteRule]: ...

    async def get_rule(self, site_id: str) -> Optional[SiteRule]: ...


class UsageLedger(Protocol):
    async def get_usage_for_date(self, date_key: str) -> Dict[str, UsageEntry]: ...

    async def add_usage_delta(self, delta: UsageDelta) -> None: ...


class Navigator(Protocol):
    async def redirect(self, tab_id: int, url: str) -> None: ...


ActivityCallback = Callable[[ActivitySignal], None]
