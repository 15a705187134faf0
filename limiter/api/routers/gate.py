"""
/gate: pre-navigation blocking check, limit evaluation and redirect commands.
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import (
    BlockDecisionOut,
    NavigationIn,
    NavigationOut,
    OpenLimitCheckOut,
    RedirectCommandOut,
)

router = APIRouter(prefix="/gate", tags=["gate"])


def _get_gate(request: Request):
    return request.app.state.gate


def _get_evaluator(request: Request):
    return request.app.state.evaluator


def _get_outbox(request: Request):
    return request.app.state.outbox


@router.post("/navigation", response_model=NavigationOut)
async def check_navigation(
    nav: NavigationIn,
    gate=Depends(_get_gate),
    outbox=Depends(_get_outbox),
):
    """
    Called from webNavigation.onBeforeNavigate. Only main-frame navigations
    are checked; iframes and sub-resources always pass.
    """
    if nav.frame_id != 0:
        return NavigationOut(redirected=False)
    redirected = await gate.maybe_block(nav.tab_id, nav.url)
    if not redirected:
        return NavigationOut(redirected=False)
    command = outbox.take(nav.tab_id)
    return NavigationOut(redirected=True, redirect_url=command.url if command else None)


@router.get("/evaluate/{site_id}", response_model=BlockDecisionOut)
async def evaluate_site(site_id: str, evaluator=Depends(_get_evaluator)):
    """Side-effect free limit check, with today's remaining budget for live display."""
    budget = await evaluator.remaining(site_id)
    if budget is None:
        raise HTTPException(status_code=404, detail="Site not found")
    decision = await evaluator.evaluate(site_id)
    return BlockDecisionOut(
        site_id=site_id,
        blocked=decision.blocked,
        limit_type=decision.limit_type.value if decision.limit_type else None,
        reason=decision.reason,
        time_spent_seconds=budget.time_spent_seconds,
        opens=budget.opens,
        remaining_seconds=budget.remaining_seconds,
        remaining_opens=budget.remaining_opens,
    )


@router.get("/open-check/{site_id}", response_model=OpenLimitCheckOut)
async def open_check(site_id: str, evaluator=Depends(_get_evaluator)):
    """Would opening the site once more go past its open ceiling?"""
    check = await evaluator.would_exceed_open_limit(site_id)
    return OpenLimitCheckOut(
        site_id=site_id,
        would_exceed=check.would_exceed,
        current_opens=check.current_opens,
        limit=check.limit,
    )


@router.get("/commands", response_model=List[RedirectCommandOut])
def drain_commands(outbox=Depends(_get_outbox)):
    """Collect redirects issued outside a navigation check (session start, checkpoints)."""
    return [
        RedirectCommandOut(tab_id=c.tab_id, url=c.url, issued_at=c.issued_at.isoformat())
        for c in outbox.drain()
    ]
