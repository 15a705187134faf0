"""
/usage: read the per-day usage ledger.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ...api.schemas import DailyUsageOut, UsageEntryOut
from ...clock import date_key, parse_date_key

router = APIRouter(prefix="/usage", tags=["usage"])


def _get_usage(request: Request):
    return request.app.state.usage


def _get_clock(request: Request):
    return request.app.state.clock


@router.get("", response_model=DailyUsageOut)
async def usage_for_day(
    date: Optional[str] = Query(default=None, description="YYYY-MM-DD; defaults to today"),
    usage=Depends(_get_usage),
    clock=Depends(_get_clock),
):
    if date is None:
        date = date_key(clock.now())
    else:
        try:
            parse_date_key(date)
        except ValueError:
            raise HTTPException(status_code=422, detail=f"Invalid date: {date!r}")
    entries = await usage.get_usage_for_date(date)
    return DailyUsageOut(
        date=date,
        entries=[
            UsageEntryOut(site_id=site_id, time_spent_seconds=e.time_spent_seconds, opens=e.opens)
            for site_id, e in sorted(entries.items())
        ],
    )


@router.get("/dates", response_model=List[str])
def recorded_dates(usage=Depends(_get_usage)):
    """Days that have at least one ledger entry, newest first."""
    return usage.dates()
