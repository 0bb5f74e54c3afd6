"""ReportsStore protocol - daily metrics sink keyed by calendar day."""

from __future__ import annotations

from datetime import date
from typing import Protocol

from nodefleet.models.reports import DailyRow, Metrics, Summary


class ReportsStore(Protocol):
    """Idempotent daily-metric upserts plus range queries."""

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    async def ping(self) -> bool:
        """True if the store answers a trivial query."""
        ...

    # ── Rows ───────────────────────────────────────────────

    async def upsert(self, report_date: date, metrics: Metrics) -> None:
        ...

    async def fetch_range(self, start: date, end: date) -> list[DailyRow]:
        ...

    async def fetch_all(self) -> list[DailyRow]:
        ...

    # ── Summaries ──────────────────────────────────────────

    async def summary(self, start: date, end: date) -> Summary:
        ...

    async def summary_all(self) -> Summary:
        ...
