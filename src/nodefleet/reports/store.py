"""SQLite implementation of the ReportsStore protocol."""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path

import aiosqlite

from nodefleet.models.errors import ReportsStoreError
from nodefleet.models.reports import BALANCE_FIELDS, COUNTER_FIELDS, DailyRow, Metrics, Summary

SCHEMA = """
-- One row per calendar day (UTC)
CREATE TABLE IF NOT EXISTS reports_daily (
    report_date TEXT PRIMARY KEY,
    forward_fee_revenue_sat INTEGER NOT NULL DEFAULT 0,
    forward_fee_revenue_msat INTEGER NOT NULL DEFAULT 0,
    rebalance_fee_cost_sat INTEGER NOT NULL DEFAULT 0,
    rebalance_fee_cost_msat INTEGER NOT NULL DEFAULT 0,
    net_routing_profit_sat INTEGER NOT NULL DEFAULT 0,
    net_routing_profit_msat INTEGER NOT NULL DEFAULT 0,
    forward_count INTEGER NOT NULL DEFAULT 0,
    rebalance_count INTEGER NOT NULL DEFAULT 0,
    routed_volume_sat INTEGER NOT NULL DEFAULT 0,
    routed_volume_msat INTEGER NOT NULL DEFAULT 0,
    onchain_balance_sat INTEGER,
    lightning_balance_sat INTEGER,
    total_balance_sat INTEGER,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

_COLUMNS = COUNTER_FIELDS + BALANCE_FIELDS

_UPSERT = (
    f"INSERT INTO reports_daily (report_date, {', '.join(_COLUMNS)}, created_at, updated_at)"
    f" VALUES ({', '.join(['?'] * (len(_COLUMNS) + 3))})"
    " ON CONFLICT(report_date) DO UPDATE SET "
    + ", ".join(f"{c}=excluded.{c}" for c in _COLUMNS)
    + ", updated_at=excluded.updated_at"
)

_SELECT = f"SELECT report_date, {', '.join(_COLUMNS)} FROM reports_daily"

_SUMS = ", ".join(f"COALESCE(SUM({c}), 0) AS {c}" for c in COUNTER_FIELDS)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_report_date(value: date | datetime) -> date:
    """Calendar day in UTC; aware datetimes are converted first."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    return value


class SQLiteReportsStore:
    """SQLite-backed daily reports sink.

    Upserts replace the day's counters rather than adding to them, so
    writing the same day twice leaves one row with the same totals.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    async def ping(self) -> bool:
        if self._db is None:
            return False
        async with self.db.execute("SELECT 1") as cur:
            return await cur.fetchone() is not None

    # ── Rows ───────────────────────────────────────────────

    async def upsert(self, report_date: date | datetime, metrics: Metrics) -> None:
        day = normalize_report_date(report_date)
        metrics = Metrics(**metrics.to_dict()).fill_msat_from_sat()
        now = _now()
        values = [getattr(metrics, c) for c in _COLUMNS]
        try:
            await self.db.execute(_UPSERT, (day.isoformat(), *values, now, now))
            await self.db.commit()
        except sqlite3.Error as exc:
            raise ReportsStoreError(f"upsert {day}: {exc}") from exc

    async def get_updated_at(self, report_date: date) -> str | None:
        async with self.db.execute(
            "SELECT updated_at FROM reports_daily WHERE report_date=?",
            (normalize_report_date(report_date).isoformat(),),
        ) as cur:
            row = await cur.fetchone()
            return row["updated_at"] if row else None

    async def fetch_range(self, start: date | datetime, end: date | datetime) -> list[DailyRow]:
        async with self.db.execute(
            f"{_SELECT} WHERE report_date >= ? AND report_date <= ? ORDER BY report_date",
            (normalize_report_date(start).isoformat(), normalize_report_date(end).isoformat()),
        ) as cur:
            return [_row_to_daily(row) async for row in cur]

    async def fetch_all(self) -> list[DailyRow]:
        async with self.db.execute(f"{_SELECT} ORDER BY report_date") as cur:
            return [_row_to_daily(row) async for row in cur]

    # ── Summaries ──────────────────────────────────────────

    async def summary(self, start: date | datetime, end: date | datetime) -> Summary:
        async with self.db.execute(
            f"SELECT COUNT(*) AS days, {_SUMS} FROM reports_daily"
            " WHERE report_date >= ? AND report_date <= ?",
            (normalize_report_date(start).isoformat(), normalize_report_date(end).isoformat()),
        ) as cur:
            return _row_to_summary(await cur.fetchone())

    async def summary_all(self) -> Summary:
        async with self.db.execute(f"SELECT COUNT(*) AS days, {_SUMS} FROM reports_daily") as cur:
            return _row_to_summary(await cur.fetchone())


def _row_to_daily(row: aiosqlite.Row) -> DailyRow:
    metrics = Metrics(**{c: row[c] for c in _COLUMNS})
    return DailyRow(
        report_date=date.fromisoformat(row["report_date"]),
        metrics=metrics.fill_msat_from_sat(),
    )


def _row_to_summary(row: aiosqlite.Row | None) -> Summary:
    if row is None:
        return Summary()
    days = row["days"] or 0
    totals = Metrics(**{c: row[c] for c in COUNTER_FIELDS}).fill_msat_from_sat()
    return Summary(days=days, totals=totals, averages=totals.averaged(days))
