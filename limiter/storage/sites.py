"""
Site Registry: SQLite store of monitored site rules.

The accounting core only reads from it (get_enabled_rules / get_rule); the
CRUD methods serve the /sites API, which tells the classifier to reload after
every write.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlparse

from ..models import SiteRule

logger = logging.getLogger(__name__)


class SiteValidationError(ValueError):
    """Rejected registry input (empty pattern, negative or missing ceilings)."""


class SiteNotFoundError(KeyError):
    pass


_UPDATABLE = ("pattern", "daily_time_limit_seconds", "daily_open_limit", "is_enabled")


def normalize_pattern(raw: Any) -> str:
    """
    Reduce user input to a bare hostname fragment: 'https://www.YouTube.com/feed'
    becomes 'youtube.com'.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise SiteValidationError("pattern must be a non-empty string")
    value = raw.strip().lower()
    if "://" in value:
        value = urlparse(value).hostname or ""
    else:
        value = value.split("/", 1)[0]
    if value.startswith("www."):
        value = value[4:]
    if not value:
        raise SiteValidationError(f"pattern {raw!r} has no hostname")
    return value


def _validate_limit(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SiteValidationError(f"{name} must be a non-negative integer")
    return value


def _require_a_ceiling(rule: SiteRule) -> None:
    if not (rule.has_time_limit or rule.has_open_limit):
        raise SiteValidationError(
            "at least one of daily_time_limit_seconds / daily_open_limit must be positive"
        )


class SiteRegistry:
    """SQLite-backed rule store. Iteration order is insertion order."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add(
        self,
        pattern: str,
        daily_time_limit_seconds: int = 0,
        daily_open_limit: int = 0,
        is_enabled: bool = True,
    ) -> SiteRule:
        rule = SiteRule(
            id=uuid.uuid4().hex,
            pattern=normalize_pattern(pattern),
            daily_time_limit_seconds=_validate_limit(
                "daily_time_limit_seconds", daily_time_limit_seconds
            ),
            daily_open_limit=_validate_limit("daily_open_limit", daily_open_limit),
            is_enabled=bool(is_enabled),
        )
        _require_a_ceiling(rule)
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO sites
                    (id, pattern, daily_time_limit_seconds, daily_open_limit, is_enabled)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    rule.id,
                    rule.pattern,
                    rule.daily_time_limit_seconds,
                    rule.daily_open_limit,
                    int(rule.is_enabled),
                ),
            )
        logger.info("Added site rule %s for %r", rule.id, rule.pattern)
        return rule

    def update(self, site_id: str, updates: Dict[str, Any]) -> SiteRule:
        unknown = set(updates) - set(_UPDATABLE)
        if unknown:
            raise SiteValidationError(f"unknown fields: {sorted(unknown)}")
        if not updates:
            raise SiteValidationError("no fields to update")

        rule = self.get(site_id)
        if rule is None:
            raise SiteNotFoundError(site_id)

        if "pattern" in updates:
            rule.pattern = normalize_pattern(updates["pattern"])
        if "daily_time_limit_seconds" in updates:
            rule.daily_time_limit_seconds = _validate_limit(
                "daily_time_limit_seconds", updates["daily_time_limit_seconds"]
            )
        if "daily_open_limit" in updates:
            rule.daily_open_limit = _validate_limit(
                "daily_open_limit", updates["daily_open_limit"]
            )
        if "is_enabled" in updates:
            if not isinstance(updates["is_enabled"], bool):
                raise SiteValidationError("is_enabled must be a boolean")
            rule.is_enabled = updates["is_enabled"]
        _require_a_ceiling(rule)

        with self._conn() as conn:
            conn.execute(
                """
                UPDATE sites
                   SET pattern = ?, daily_time_limit_seconds = ?,
                       daily_open_limit = ?, is_enabled = ?
                 WHERE id = ?
                """,
                (
                    rule.pattern,
                    rule.daily_time_limit_seconds,
                    rule.daily_open_limit,
                    int(rule.is_enabled),
                    rule.id,
                ),
            )
        return rule

    def delete(self, site_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM sites WHERE id = ?", (site_id,))
            removed = cur.rowcount > 0
        if not removed:
            logger.warning("Site rule %s not found for deletion", site_id)
        return removed

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, site_id: str) -> Optional[SiteRule]:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM sites WHERE id = ?", (site_id,)
            ).fetchone()
        return _row_to_rule(row) if row else None

    def all(self, enabled_only: bool = False) -> List[SiteRule]:
        where = "WHERE is_enabled = 1" if enabled_only else ""
        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM sites {where} ORDER BY seq ASC"
            ).fetchall()
        return [_row_to_rule(r) for r in rows]

    # ------------------------------------------------------------------
    # Async collaborator interface (RuleSource)
    # ------------------------------------------------------------------

    async def get_enabled_rules(self) -> List[SiteRule]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: self.all(enabled_only=True))

    async def get_rule(self, site_id: str) -> Optional[SiteRule]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.get, site_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS sites (
                    seq                      INTEGER PRIMARY KEY AUTOINCREMENT,
                    id                       TEXT    NOT NULL UNIQUE,
                    pattern                  TEXT    NOT NULL,
                    daily_time_limit_seconds INTEGER NOT NULL DEFAULT 0,
                    daily_open_limit         INTEGER NOT NULL DEFAULT 0,
                    is_enabled               INTEGER NOT NULL DEFAULT 1
                )
                """
            )

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()


_COLUMNS = "id, pattern, daily_time_limit_seconds, daily_open_limit, is_enabled"


def _row_to_rule(row) -> SiteRule:
    return SiteRule(
        id=row[0],
        pattern=row[1],
        daily_time_limit_seconds=row[2],
        daily_open_limit=row[3],
        is_enabled=bool(row[4]),
    )
