"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# ── Activity ───────────────────────────────────────────────────────────────

class BrowserEventIn(BaseModel):
    type: str = Field(..., description="TAB_ACTIVATED | TAB_UPDATED | TAB_REMOVED | WINDOW_FOCUS_CHANGED")
    timestamp: Optional[float] = None
    data: Dict[str, Any] = Field(default_factory=dict)


# ── Gate ───────────────────────────────────────────────────────────────────

class NavigationIn(BaseModel):
    """Pre-navigation hook payload (webNavigation.onBeforeNavigate details)."""
    model_config = ConfigDict(populate_by_name=True)

    tab_id: Optional[int] = Field(None, alias="tabId")
    url: Optional[str] = None
    frame_id: int = Field(0, alias="frameId")


class NavigationOut(BaseModel):
    redirected: bool
    redirect_url: Optional[str] = None


class BlockDecisionOut(BaseModel):
    site_id: str
    blocked: bool
    limit_type: Optional[str] = None
    reason: Optional[str] = None
    time_spent_seconds: int = 0
    opens: int = 0
    remaining_seconds: Optional[int] = None
    remaining_opens: Optional[int] = None


class OpenLimitCheckOut(BaseModel):
    site_id: str
    would_exceed: bool
    current_opens: int
    limit: int


class RedirectCommandOut(BaseModel):
    tab_id: int
    url: str
    issued_at: str


# ── Sites ──────────────────────────────────────────────────────────────────

class SiteIn(BaseModel):
    pattern: str
    daily_time_limit_seconds: int = Field(0, ge=0)
    daily_open_limit: int = Field(0, ge=0)
    is_enabled: bool = True


class SitePatch(BaseModel):
    pattern: Optional[str] = None
    daily_time_limit_seconds: Optional[int] = Field(None, ge=0)
    daily_open_limit: Optional[int] = Field(None, ge=0)
    is_enabled: Optional[bool] = None


class SiteOut(BaseModel):
    id: str
    pattern: str
    daily_time_limit_seconds: int
    daily_open_limit: int
    is_enabled: bool


# ── Usage ──────────────────────────────────────────────────────────────────

class UsageEntryOut(BaseModel):
    site_id: str
    time_spent_seconds: int
    opens: int


class DailyUsageOut(BaseModel):
    date: str
    entries: List[UsageEntryOut]


# ── Status ─────────────────────────────────────────────────────────────────

class TrackingStatusOut(BaseModel):
    state: str
    site_id: Optional[str] = None
    tab_id: Optional[int] = None
    url: Optional[str] = None
    interval_started_at: Optional[str] = None
    pending_deltas: int
    checkpoint_interval_s: float
    timestamp: str
