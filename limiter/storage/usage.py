"""
Usage Ledger: per-day, per-site accumulators of seconds spent and opens.

The only mutation is an additive merge into the (date_key, site_id) row, done
inside SQLite so interleaved writers can never overwrite each other.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List

from ..models import UsageDelta, UsageEntry

logger = logging.getLogger(__name__)


class UsageStore:
    """SQLite-backed usage ledger."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._init_db()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add(self, delta: UsageDelta) -> None:
        if delta.time_spent_seconds_delta < 0 or delta.opens_delta < 0:
            raise ValueError(f"usage deltas are additive only: {delta}")
        if not (delta.time_spent_seconds_delta or delta.opens_delta):
            return
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO usage (date_key, site_id, time_spent_seconds, opens)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(date_key, site_id) DO UPDATE SET
                    time_spent_seconds = time_spent_seconds + excluded.time_spent_seconds,
                    opens              = opens + excluded.opens
                """,
                (
                    delta.date_key,
                    delta.site_id,
                    delta.time_spent_seconds_delta,
                    delta.opens_delta,
                ),
            )

    def prune_before(self, date_key: str) -> int:
        """Drop buckets for days strictly before *date_key*. Returns rows removed."""
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM usage WHERE date_key < ?", (date_key,))
            return cur.rowcount

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def for_date(self, date_key: str) -> Dict[str, UsageEntry]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT site_id, time_spent_seconds, opens FROM usage WHERE date_key = ?",
                (date_key,),
            ).fetchall()
        return {site_id: UsageEntry(spent, opens) for site_id, spent, opens in rows}

    def dates(self) -> List[str]:
        with self._conn() as conn:
            rows = conn.execute(
                "SELECT DISTINCT date_key FROM usage ORDER BY date_key DESC"
            ).fetchall()
        return [r[0] for r in rows]

    # ------------------------------------------------------------------
    # Async collaborator interface (UsageLedger)
    # ------------------------------------------------------------------

    async def get_usage_for_date(self, date_key: str) -> Dict[str, UsageEntry]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.for_date, date_key)

    async def add_usage_delta(self, delta: UsageDelta) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.add, delta)

    async def prune_before_async(self, date_key: str) -> int:
        loop = asyncio.get_running_loop()
        removed = await loop.run_in_executor(None, self.prune_before, date_key)
        if removed:
            logger.info("Pruned %d usage rows older than %s", removed, date_key)
        return removed

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS usage (
                    date_key           TEXT    NOT NULL,
                    site_id            TEXT    NOT NULL,
                    time_spent_seconds INTEGER NOT NULL DEFAULT 0,
                    opens              INTEGER NOT NULL DEFAULT 0,
                    PRIMARY KEY (date_key, site_id)
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
