"""Reports feed - samples lnd once per day and upserts the daily row."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone

from nodefleet.health.collector import HealthCollector, safe_to_sample
from nodefleet.interfaces.executor import CommandExecutor
from nodefleet.interfaces.metrics import MetricsSource
from nodefleet.interfaces.store import ReportsStore
from nodefleet.models.config import ManagerConfig
from nodefleet.models.errors import MetricsUnavailable, ParseFailure
from nodefleet.models.records import RunAs
from nodefleet.models.reports import DailyRow, Metrics
from nodefleet.models.snapshots import DaemonKind
from nodefleet.probes.specs import lncli_args, parse_json

log = logging.getLogger(__name__)

MAX_EVENTS = 50000  # lncli fwdinghistory page size


def yesterday_utc(now: datetime | None = None) -> date:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).date() - timedelta(days=1)


def day_bounds(day: date) -> tuple[int, int]:
    """Unix [start, end) of a UTC calendar day."""
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return int(start.timestamp()), int((start + timedelta(days=1)).timestamp())


def _amount(doc: dict, key: str) -> int:
    # lncli renders 64-bit amounts as JSON strings
    value = doc.get(key)
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ParseFailure(f"{key}: expected an amount, got bool")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ParseFailure(f"{key}: expected an amount, got {value!r}") from exc


class LncliMetricsSource:
    """Daily routing totals and current balances read through lncli."""

    def __init__(self, cfg: ManagerConfig, executor: CommandExecutor) -> None:
        self._cfg = cfg
        self._executor = executor

    async def _query(self, *args: str) -> dict:
        paths = self._cfg.lnd
        timeout = self._cfg.command_timeout
        result = await self._executor.run(
            timeout,
            paths.cli,
            [*lncli_args(paths, timeout), *args],
            run_as=RunAs(user=paths.user, group=paths.group, working_dir=paths.data_dir),
        )
        if not result.success:
            raise MetricsUnavailable(f"lncli {args[0]}: {result.error}")
        return parse_json(result.stdout)

    async def collect(self, report_date: date) -> Metrics:
        metrics = Metrics()
        await self._collect_forwards(report_date, metrics)
        await self._collect_balances(metrics)
        return metrics.fill_msat_from_sat()

    async def _collect_forwards(self, report_date: date, metrics: Metrics) -> None:
        start, end = day_bounds(report_date)
        offset = 0
        while True:
            doc = await self._query(
                "fwdinghistory",
                f"--start_time={start}",
                f"--end_time={end}",
                f"--index_offset={offset}",
                f"--max_events={MAX_EVENTS}",
            )
            events = doc.get("forwarding_events") or []
            for event in events:
                metrics.forward_fee_revenue_sat += _amount(event, "fee")
                metrics.forward_fee_revenue_msat += _amount(event, "fee_msat")
                metrics.routed_volume_sat += _amount(event, "amt_out")
                metrics.routed_volume_msat += _amount(event, "amt_out_msat")
            metrics.forward_count += len(events)

            if len(events) < MAX_EVENTS:
                break
            offset = _amount(doc, "last_offset_index")

        # No rebalance source yet, so profit is the fee revenue
        metrics.net_routing_profit_sat = metrics.forward_fee_revenue_sat - metrics.rebalance_fee_cost_sat
        metrics.net_routing_profit_msat = metrics.forward_fee_revenue_msat - metrics.rebalance_fee_cost_msat

    async def _collect_balances(self, metrics: Metrics) -> None:
        """Balances are optional; a failed query leaves them unset."""
        try:
            wallet = await self._query("walletbalance")
            channels = await self._query("channelbalance")
        except (MetricsUnavailable, ParseFailure) as exc:
            log.warning("Balances not sampled: %s", exc)
            return

        local = channels.get("local_balance")
        if isinstance(local, dict):
            lightning = _amount(local, "sat")
        else:
            lightning = _amount(channels, "balance")
        onchain = _amount(wallet, "total_balance")

        metrics.onchain_balance_sat = onchain
        metrics.lightning_balance_sat = lightning
        metrics.total_balance_sat = onchain + lightning


class ReportsFeed:
    """One-shot daily sampler, safe to run repeatedly for the same day."""

    def __init__(
        self,
        collector: HealthCollector,
        source: MetricsSource,
        store: ReportsStore,
    ) -> None:
        self._collector = collector
        self._source = source
        self._store = store

    async def run_once(self, report_date: date | None = None) -> DailyRow | None:
        day = report_date or yesterday_utc()

        outcomes = await self._collector.probe_all([DaemonKind.LND])
        health = self._collector.fold(outcomes)
        if not safe_to_sample(health):
            log.info("Reports for %s skipped: lnd not running or RPC unavailable", day)
            return None

        metrics = await self._source.collect(day)
        await self._store.upsert(day, metrics)
        log.info(
            "Reports for %s stored: %d forwards, %d sat fees",
            day, metrics.forward_count, metrics.forward_fee_revenue_sat,
        )
        return DailyRow(report_date=day, metrics=metrics)
