"""Daily reports: store semantics, lncli metrics source, feed gating."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from nodefleet.health.collector import HealthCollector
from nodefleet.models.errors import MetricsUnavailable
from nodefleet.models.reports import Metrics
from nodefleet.models.snapshots import DaemonKind
from nodefleet.reports import store as store_module
from nodefleet.reports.feed import LncliMetricsSource, ReportsFeed, day_bounds, yesterday_utc
from nodefleet.reports.store import SQLiteReportsStore, normalize_report_date
from tests.factories import forwarding_event, make_snapshot, make_stopped
from tests.mocks import MockExecutor, MockMetricsSource, MockProbe, exit_status, json_ok

DAY = date(2024, 3, 1)


# ── Store ─────────────────────────────────────────────────────────


async def test_upsert_is_idempotent(store):
    metrics = Metrics(forward_fee_revenue_sat=120, forward_count=7, routed_volume_sat=5_000_000)
    await store.upsert(DAY, metrics)
    await store.upsert(DAY, metrics)

    rows = await store.fetch_all()
    assert len(rows) == 1
    summary = await store.summary_all()
    assert summary.days == 1
    assert summary.totals.forward_fee_revenue_sat == 120
    assert summary.totals.forward_count == 7


async def test_rewrite_refreshes_updated_at_only(store, monkeypatch):
    monkeypatch.setattr(store_module, "_now", lambda: "2024-03-02T01:00:00+00:00")
    await store.upsert(DAY, Metrics(forward_count=4))
    monkeypatch.setattr(store_module, "_now", lambda: "2024-03-02T07:30:00+00:00")
    await store.upsert(DAY, Metrics(forward_count=4))

    async with store.db.execute(
        "SELECT created_at, updated_at FROM reports_daily WHERE report_date=?", (DAY.isoformat(),),
    ) as cur:
        row = await cur.fetchone()
    assert row["created_at"] == "2024-03-02T01:00:00+00:00"
    assert row["updated_at"] == "2024-03-02T07:30:00+00:00"
    assert await store.get_updated_at(DAY) == "2024-03-02T07:30:00+00:00"
    [stored] = await store.fetch_all()
    assert stored.metrics.forward_count == 4


async def test_upsert_replaces_counters(store):
    await store.upsert(DAY, Metrics(forward_count=3))
    await store.upsert(DAY, Metrics(forward_count=5, onchain_balance_sat=1000))
    [row] = await store.fetch_all()
    assert row.metrics.forward_count == 5
    assert row.metrics.onchain_balance_sat == 1000


async def test_msat_filled_from_sat(store):
    await store.upsert(DAY, Metrics(forward_fee_revenue_sat=42, routed_volume_sat=7))
    [row] = await store.fetch_all()
    assert row.metrics.forward_fee_revenue_msat == 42_000
    assert row.metrics.routed_volume_msat == 7_000


async def test_explicit_msat_is_kept(store):
    await store.upsert(DAY, Metrics(forward_fee_revenue_sat=1, forward_fee_revenue_msat=1_234))
    [row] = await store.fetch_all()
    assert row.metrics.forward_fee_revenue_msat == 1_234


async def test_caller_metrics_not_mutated(store):
    metrics = Metrics(forward_fee_revenue_sat=5)
    await store.upsert(DAY, metrics)
    assert metrics.forward_fee_revenue_msat == 0


async def test_empty_summary_is_zero(store):
    summary = await store.summary(DAY, DAY + timedelta(days=30))
    assert summary.days == 0
    assert summary.totals == Metrics()
    assert summary.averages == Metrics()


async def test_summary_averages_use_integer_division(store):
    await store.upsert(DAY, Metrics(forward_fee_revenue_sat=10, forward_count=1))
    await store.upsert(DAY + timedelta(days=1), Metrics(forward_fee_revenue_sat=5, forward_count=2))
    await store.upsert(DAY + timedelta(days=10), Metrics(forward_fee_revenue_sat=1000))

    summary = await store.summary(DAY, DAY + timedelta(days=1))
    assert summary.days == 2
    assert summary.totals.forward_fee_revenue_sat == 15
    assert summary.averages.forward_fee_revenue_sat == 7
    assert summary.averages.forward_count == 1


async def test_fetch_range_is_inclusive_and_ordered(store):
    for offset in (2, 0, 1, 5):
        await store.upsert(DAY + timedelta(days=offset), Metrics(forward_count=offset))
    rows = await store.fetch_range(DAY, DAY + timedelta(days=2))
    assert [r.report_date for r in rows] == [DAY, DAY + timedelta(days=1), DAY + timedelta(days=2)]


def test_aware_datetimes_normalize_to_utc_day():
    late_evening = datetime(2024, 3, 1, 22, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert normalize_report_date(late_evening) == date(2024, 3, 2)
    assert normalize_report_date(DAY) == DAY


async def test_store_on_disk_survives_reopen(tmp_path):
    path = str(tmp_path / "sub" / "reports.db")
    first = SQLiteReportsStore(path)
    await first.initialize()
    await first.upsert(DAY, Metrics(forward_count=9))
    await first.close()

    second = SQLiteReportsStore(path)
    await second.initialize()
    try:
        [row] = await second.fetch_all()
        assert row.metrics.forward_count == 9
        assert await second.get_updated_at(DAY) is not None
    finally:
        await second.close()


# ── lncli metrics source ──────────────────────────────────────────


def _lncli(events, wallet=None, channels=None) -> MockExecutor:
    executor = MockExecutor().on(
        "fwdinghistory",
        result=json_ok({"forwarding_events": events, "last_offset_index": len(events)}),
    )
    executor.on("walletbalance", result=json_ok(wallet or {"total_balance": "250000"}))
    executor.on("channelbalance", result=json_ok(channels or {"local_balance": {"sat": "750000"}}))
    return executor


async def test_lncli_totals_for_the_day(test_config):
    executor = _lncli([forwarding_event(fee=2, amt_out=100_000),
                       forwarding_event(fee=3, amt_out=50_000, fee_msat=3_500)])
    metrics = await LncliMetricsSource(test_config, executor).collect(DAY)

    assert metrics.forward_count == 2
    assert metrics.forward_fee_revenue_sat == 5
    assert metrics.forward_fee_revenue_msat == 5_500
    assert metrics.routed_volume_sat == 150_000
    assert metrics.net_routing_profit_sat == 5
    assert metrics.rebalance_fee_cost_sat == 0
    assert metrics.onchain_balance_sat == 250_000
    assert metrics.lightning_balance_sat == 750_000
    assert metrics.total_balance_sat == 1_000_000

    start, end = day_bounds(DAY)
    call = executor.calls_with("fwdinghistory")[0]
    assert f"--start_time={start}" in call.args
    assert f"--end_time={end}" in call.args
    assert call.run_as.user == "lnd"


async def test_forwarding_failure_raises(test_config):
    executor = MockExecutor().on("fwdinghistory", result=exit_status(1, stderr="rpc error: unavailable"))
    with pytest.raises(MetricsUnavailable):
        await LncliMetricsSource(test_config, executor).collect(DAY)


async def test_balance_failure_leaves_balances_unset(test_config):
    executor = MockExecutor().on(
        "fwdinghistory", result=json_ok({"forwarding_events": [], "last_offset_index": 0}),
    )
    metrics = await LncliMetricsSource(test_config, executor).collect(DAY)
    assert metrics.forward_count == 0
    assert metrics.onchain_balance_sat is None
    assert metrics.total_balance_sat is None


def test_day_bounds_cover_one_utc_day():
    start, end = day_bounds(DAY)
    assert end - start == 86400
    assert datetime.fromtimestamp(start, timezone.utc) == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_yesterday_is_utc():
    now = datetime(2024, 3, 2, 0, 30, tzinfo=timezone(timedelta(hours=2)))
    # 2024-03-01 22:30 UTC, so yesterday is Feb 29
    assert yesterday_utc(now) == date(2024, 2, 29)


# ── Feed ──────────────────────────────────────────────────────────


async def test_feed_skips_when_lnd_down(test_config, store):
    probe = MockProbe().set(make_stopped(DaemonKind.LND))
    source = MockMetricsSource(Metrics(forward_count=1))
    feed = ReportsFeed(HealthCollector(test_config, probe), source, store)

    assert await feed.run_once(DAY) is None
    assert source.dates == []
    assert await store.fetch_all() == []


async def test_feed_stores_row(test_config, store):
    probe = MockProbe().set(make_snapshot(DaemonKind.LND))
    source = MockMetricsSource(Metrics(forward_fee_revenue_sat=9, forward_count=2))
    feed = ReportsFeed(HealthCollector(test_config, probe), source, store)

    row = await feed.run_once(DAY)
    assert row.report_date == DAY
    assert source.dates == [DAY]
    [stored] = await store.fetch_all()
    assert stored.metrics.forward_fee_revenue_msat == 9_000
    # Only lnd matters for sampling
    assert probe.calls == [DaemonKind.LND]


async def test_feed_defaults_to_yesterday(test_config, store):
    probe = MockProbe().set(make_snapshot(DaemonKind.LND))
    source = MockMetricsSource(Metrics())
    feed = ReportsFeed(HealthCollector(test_config, probe), source, store)
    row = await feed.run_once()
    assert row.report_date == yesterday_utc()
