"""Daily routing and balance reports."""

from nodefleet.reports.feed import LncliMetricsSource, ReportsFeed
from nodefleet.reports.store import SQLiteReportsStore

__all__ = ["LncliMetricsSource", "ReportsFeed", "SQLiteReportsStore"]
