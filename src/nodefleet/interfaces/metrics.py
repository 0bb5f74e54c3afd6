"""MetricsSource protocol - produces one day's routing and balance figures."""

from __future__ import annotations

from datetime import date
from typing import Protocol

from nodefleet.models.reports import Metrics


class MetricsSource(Protocol):
    async def collect(self, report_date: date) -> Metrics:
        """Totals for report_date (UTC) plus current balances."""
        ...
