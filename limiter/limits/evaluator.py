"""
Limit Evaluator: compares a rule's daily ceilings with today's usage.

Ceilings are inclusive: usage at or above a ceiling blocks. A ceiling of 0
means "no ceiling". Every call re-reads the rule and today's ledger bucket.
"""

from __future__ import annotations

import logging
from typing import Optional, Tuple

from ..clock import Clock, SystemClock, date_key
from ..models import (
    NOT_BLOCKED,
    BlockDecision,
    LimitType,
    OpenLimitCheck,
    RemainingBudget,
    RuleSource,
    SiteRule,
    UsageEntry,
    UsageLedger,
)

logger = logging.getLogger(__name__)


def _minutes(seconds: int) -> int:
    return int(seconds / 60 + 0.5)


def describe_block(
    rule: SiteRule, usage: UsageEntry, time_exceeded: bool, opens_exceeded: bool
) -> str:
    """Human-readable reason shown on the interstitial page."""
    spent = _minutes(usage.time_spent_seconds)
    allowed = _minutes(rule.daily_time_limit_seconds)
    if time_exceeded and opens_exceeded:
        return (
            f"You've exceeded both your time limit ({spent}/{allowed} minutes) and "
            f"open limit ({usage.opens}/{rule.daily_open_limit} opens) for this site today."
        )
    if time_exceeded:
        return (
            f"You've spent {spent} minutes on this site today, "
            f"exceeding your {allowed} minute limit."
        )
    if opens_exceeded:
        return (
            f"You've opened this site {usage.opens} times today, "
            f"exceeding your {rule.daily_open_limit} open limit."
        )
    return "Daily limit exceeded for this site."


def decide(rule: SiteRule, usage: UsageEntry) -> BlockDecision:
    """Pure decision for one rule and one day's usage."""
    if not rule.is_enabled:
        return BlockDecision(blocked=False, site_id=rule.id)

    time_exceeded = rule.has_time_limit and usage.time_spent_seconds >= rule.daily_time_limit_seconds
    opens_exceeded = rule.has_open_limit and usage.opens >= rule.daily_open_limit

    if time_exceeded and opens_exceeded:
        limit_type = LimitType.BOTH
    elif time_exceeded:
        limit_type = LimitType.TIME
    elif opens_exceeded:
        limit_type = LimitType.OPENS
    else:
        return BlockDecision(blocked=False, site_id=rule.id)

    return BlockDecision(
        blocked=True,
        limit_type=limit_type,
        reason=describe_block(rule, usage, time_exceeded, opens_exceeded),
        site_id=rule.id,
    )


class LimitEvaluator:

    def __init__(self, rules: RuleSource, ledger: UsageLedger, clock: Optional[Clock] = None):
        self._rules = rules
        self._ledger = ledger
        self._clock = clock or SystemClock()

    async def evaluate(self, site_id: Optional[str]) -> BlockDecision:
        if not site_id:
            return NOT_BLOCKED
        try:
            loaded = await self._load(site_id)
        except Exception:
            logger.exception("Could not evaluate limits for site %s", site_id)
            return NOT_BLOCKED
        if loaded is None:
            return NOT_BLOCKED
        decision = decide(*loaded)
        if decision.blocked:
            logger.info("Site %s blocked by %s limit", site_id, decision.limit_type.value)
        return decision

    async def would_exceed_open_limit(self, site_id: Optional[str]) -> OpenLimitCheck:
        """Whether one more open would go past the rule's open ceiling."""
        if not site_id:
            return OpenLimitCheck(would_exceed=False)
        try:
            loaded = await self._load(site_id)
        except Exception:
            logger.exception("Could not check open limit for site %s", site_id)
            return OpenLimitCheck(would_exceed=False)
        if loaded is None:
            return OpenLimitCheck(would_exceed=False)
        rule, usage = loaded
        if not rule.is_enabled or not rule.has_open_limit:
            return OpenLimitCheck(would_exceed=False, current_opens=usage.opens)
        return OpenLimitCheck(
            would_exceed=usage.opens + 1 > rule.daily_open_limit,
            current_opens=usage.opens,
            limit=rule.daily_open_limit,
        )

    async def remaining(self, site_id: Optional[str]) -> Optional[RemainingBudget]:
        """Budget left today, for live display. None for unknown sites or on error."""
        if not site_id:
            return None
        try:
            loaded = await self._load(site_id)
        except Exception:
            logger.exception("Could not compute remaining budget for site %s", site_id)
            return None
        if loaded is None:
            return None
        rule, usage = loaded
        return RemainingBudget(
            site_id=rule.id,
            time_spent_seconds=usage.time_spent_seconds,
            opens=usage.opens,
            remaining_seconds=(
                max(rule.daily_time_limit_seconds - usage.time_spent_seconds, 0)
                if rule.has_time_limit else None
            ),
            remaining_opens=(
                max(rule.daily_open_limit - usage.opens, 0) if rule.has_open_limit else None
            ),
        )

    async def _load(self, site_id: str) -> Optional[Tuple[SiteRule, UsageEntry]]:
        rule = await self._rules.get_rule(site_id)
        if rule is None:
            return None
        today = await self._ledger.get_usage_for_date(date_key(self._clock.now()))
        return rule, today.get(site_id) or UsageEntry()
