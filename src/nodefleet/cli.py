"""CLI entry point for the nodefleet manager."""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
import httpx

from nodefleet.config import load_config
from nodefleet.health.collector import HealthCollector
from nodefleet.manager import run_manager
from nodefleet.models.config import ManagerConfig
from nodefleet.models.errors import ConfigError, NodefleetError
from nodefleet.models.health import HealthLevel
from nodefleet.models.records import StorageMode
from nodefleet.models.snapshots import DaemonKind, MainchainSource
from nodefleet.probes.daemon import DaemonProbe
from nodefleet.reports.feed import LncliMetricsSource, ReportsFeed
from nodefleet.reports.store import SQLiteReportsStore
from nodefleet.system.executor import HostCommandExecutor
from nodefleet.system.services import SystemdStateResolver

# Health exit codes, nagios style
_EXIT_CODES = {HealthLevel.OK: 0, HealthLevel.WARN: 1, HealthLevel.ERR: 2}


def _load(ctx: click.Context) -> ManagerConfig:
    try:
        cfg = load_config(ctx.obj["config_path"])
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    if not ctx.obj["verbose"]:
        logging.getLogger().setLevel(cfg.log_level.upper())
    return cfg


def _require_reports(cfg: ManagerConfig) -> None:
    """Exit with error if the reports store is disabled."""
    if not cfg.reports.enabled:
        click.echo("Error: Reports are disabled.", err=True)
        click.echo("Set [reports] dsn in config or NODEFLEET_REPORTS_DSN.", err=True)
        sys.exit(1)


def _base_url(cfg: ManagerConfig) -> str:
    return f"http://{cfg.host}:{cfg.port}"


def _call(cfg: ManagerConfig, method: str, path: str, payload: dict | None = None) -> tuple[int, dict]:
    """One request to the running manager's API."""

    async def _request():
        # Transitions wait on a probe plus a restart request
        timeout = cfg.probe_timeout + cfg.restart_timeout + 5
        async with httpx.AsyncClient(base_url=_base_url(cfg), timeout=timeout) as client:
            resp = await client.request(method, path, json=payload)
            return resp.status_code, resp.json()

    try:
        status, body = asyncio.run(_request())
    except httpx.ConnectError:
        click.echo(f"Error: manager not reachable at {_base_url(cfg)}", err=True)
        click.echo("Start it with 'nodefleet run'.", err=True)
        sys.exit(1)
    except (httpx.HTTPError, ValueError) as exc:
        click.echo(f"Error: request to manager failed: {exc}", err=True)
        sys.exit(1)

    if isinstance(body, dict) and "error" in body:
        click.echo(f"Error: {body['error']} (HTTP {status})", err=True)
        sys.exit(1)
    return status, body


def _echo_json(body) -> None:
    click.echo(json.dumps(body, indent=2, sort_keys=True))


def _echo_transition(status: int, body: dict) -> None:
    if body.get("success"):
        click.echo(f"{body['daemon']}: {body['message']} [{body['state']}]")
        return
    click.echo(f"{body['daemon']}: {body['state']}: {body['message']}", err=True)
    if body.get("config_changed"):
        click.echo("  Config was changed; retry with 'nodefleet restart "
                   f"{body['daemon']}' once the cause is fixed.", err=True)
        for key, value in body.get("applied", {}).items():
            click.echo(f"  {key} = {value}", err=True)
    sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """nodefleet - supervise bitcoind, elementsd and lnd on one host."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


# ── Manager ────────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the manager and its HTTP API."""
    cfg = _load(ctx)
    click.echo(f"Starting nodefleet manager on {_base_url(cfg)}")
    asyncio.run(run_manager(cfg))


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show manager configuration."""
    cfg = _load(ctx)
    click.echo(f"API:        {_base_url(cfg)}")
    click.echo(f"Daemons:    {', '.join(k.value for k in cfg.enabled_daemons)}")
    click.echo(f"Sudo:       {cfg.use_sudo}")
    for kind in DaemonKind:
        paths = cfg.paths(kind)
        click.echo(f"{kind.value + ':':11s} unit={paths.unit} conf={paths.conf} user={paths.user}")
    local, remote = cfg.mainchain.local, cfg.mainchain.remote
    click.echo(f"Local RPC:  {local.host}:{local.port} "
               f"({'credentials set' if local.user and local.password else 'no credentials'})")
    click.echo(f"Remote RPC: {remote.host}:{remote.port} "
               f"({'credentials set' if remote.user and remote.password else 'no credentials'})")
    click.echo(f"Min prune:  {cfg.min_prune_gb:.2f} GB")
    click.echo(f"Reports:    {cfg.reports.dsn if cfg.reports.enabled else '(disabled)'}")


# ── Health ─────────────────────────────────────────────


@cli.command()
@click.option("--local", "in_process", is_flag=True, help="Probe in-process instead of asking the manager")
@click.option("--json", "as_json", is_flag=True, help="Print the raw JSON verdict")
@click.pass_context
def health(ctx: click.Context, in_process: bool, as_json: bool) -> None:
    """Show the fleet health verdict (exit 0 OK, 1 WARN, 2 ERR)."""
    cfg = _load(ctx)

    if in_process:
        async def _collect():
            executor = HostCommandExecutor(use_sudo=cfg.use_sudo)
            resolver = SystemdStateResolver(
                executor, timeout=cfg.status_timeout, restart_timeout=cfg.restart_timeout,
            )
            collector = HealthCollector(cfg, DaemonProbe(cfg, executor, resolver))
            return (await collector.collect()).verdict.to_dict()

        body = asyncio.run(_collect())
    else:
        _, body = _call(cfg, "GET", "/api/health")

    if as_json:
        _echo_json(body)
    else:
        click.echo(f"Status: {body['status']}")
        for issue in body.get("issues", []):
            click.echo(f"  [{issue['level']:4s}] {issue['component']}: {issue['message']}")
    sys.exit(_EXIT_CODES.get(HealthLevel(body["status"]), 2))


@cli.command()
@click.argument("kind", type=click.Choice([k.value for k in DaemonKind]))
@click.pass_context
def restart(ctx: click.Context, kind: str) -> None:
    """Request a restart of one daemon (no config change)."""
    cfg = _load(ctx)
    _echo_transition(*_call(cfg, "POST", f"/api/daemons/{kind}/restart"))


# ── Mainchain ──────────────────────────────────────────


@cli.group()
def mainchain():
    """Which bitcoin backend elementsd uses."""
    pass


@mainchain.command("show")
@click.pass_context
def mainchain_show(ctx: click.Context) -> None:
    """Show the current mainchain source."""
    cfg = _load(ctx)
    _, body = _call(cfg, "GET", "/api/elements/mainchain")
    click.echo(f"Source:      {body['source']}")
    click.echo(f"RPC:         {body['rpchost']}:{body['rpcport']}")
    click.echo(f"Local ready: {body['local_ready']}")


@mainchain.command("set")
@click.argument("source", type=click.Choice([s.value for s in MainchainSource]))
@click.pass_context
def mainchain_set(ctx: click.Context, source: str) -> None:
    """Point elementsd at the local or remote bitcoin node and restart it."""
    cfg = _load(ctx)
    _echo_transition(*_call(cfg, "POST", "/api/elements/mainchain", {"source": source}))


# ── Storage ────────────────────────────────────────────


@cli.group()
def storage():
    """bitcoind full or pruned storage."""
    pass


@storage.command("show")
@click.pass_context
def storage_show(ctx: click.Context) -> None:
    """Show the configured storage mode."""
    cfg = _load(ctx)
    _, body = _call(cfg, "GET", "/api/bitcoin/storage")
    click.echo(f"Mode:      {body['mode']}")
    if body.get("prune_size_gb") is not None:
        click.echo(f"Size:      {body['prune_size_gb']} GB")
    elif body["mode"] == StorageMode.PRUNED.value:
        click.echo("Size:      (manual pruning)")
    click.echo(f"Min prune: {body['min_prune_gb']} GB")


@storage.command("set")
@click.argument("mode", type=click.Choice([m.value for m in StorageMode]))
@click.option("--size-gb", type=float, default=None, help="Prune target in GB (pruned mode)")
@click.option("--defer", is_flag=True, help="Only write the config; apply on next restart")
@click.pass_context
def storage_set(ctx: click.Context, mode: str, size_gb: float | None, defer: bool) -> None:
    """Switch bitcoind between full and pruned storage."""
    cfg = _load(ctx)
    if mode == StorageMode.FULL.value and size_gb is not None:
        click.echo("Error: --size-gb only applies to pruned mode.", err=True)
        sys.exit(1)
    payload = {"mode": mode, "prune_size_gb": size_gb, "apply_now": not defer}
    _echo_transition(*_call(cfg, "POST", "/api/bitcoin/storage", payload))


# ── Reports ────────────────────────────────────────────


@cli.group()
def reports():
    """Daily routing and balance reports."""
    pass


@reports.command("collect")
@click.option("--date", "report_date", type=click.DateTime(["%Y-%m-%d"]), default=None,
              help="Day to sample (UTC, default yesterday)")
@click.pass_context
def reports_collect(ctx: click.Context, report_date) -> None:
    """Sample lnd once and store the day's row."""
    cfg = _load(ctx)
    _require_reports(cfg)

    async def _collect():
        executor = HostCommandExecutor(use_sudo=cfg.use_sudo)
        resolver = SystemdStateResolver(
            executor, timeout=cfg.status_timeout, restart_timeout=cfg.restart_timeout,
        )
        store = SQLiteReportsStore(cfg.reports.dsn)
        await store.initialize()
        try:
            collector = HealthCollector(cfg, DaemonProbe(cfg, executor, resolver), store)
            feed = ReportsFeed(collector, LncliMetricsSource(cfg, executor), store)
            return await feed.run_once(report_date.date() if report_date else None)
        finally:
            await store.close()

    try:
        row = asyncio.run(_collect())
    except NodefleetError as exc:
        click.echo(f"Collection failed: {exc}", err=True)
        sys.exit(1)

    if row is None:
        click.echo("Skipped: lnd is not running or not answering.")
        sys.exit(1)
    m = row.metrics
    click.echo(f"{row.report_date}: {m.forward_count} forwards, "
               f"{m.forward_fee_revenue_sat} sat fees, {m.routed_volume_sat} sat routed")


@reports.command("summary")
@click.option("--start", type=click.DateTime(["%Y-%m-%d"]), default=None, help="First day (inclusive)")
@click.option("--end", type=click.DateTime(["%Y-%m-%d"]), default=None, help="Last day (inclusive)")
@click.pass_context
def reports_summary(ctx: click.Context, start, end) -> None:
    """Totals and per-day averages over a date range (default: all days)."""
    cfg = _load(ctx)
    _require_reports(cfg)
    if (start is None) != (end is None):
        click.echo("Error: --start and --end must be given together.", err=True)
        sys.exit(1)

    async def _summary():
        store = SQLiteReportsStore(cfg.reports.dsn)
        await store.initialize()
        try:
            if start is None:
                return await store.summary_all()
            return await store.summary(start.date(), end.date())
        finally:
            await store.close()

    summary = asyncio.run(_summary())
    if summary.days == 0:
        click.echo("No report days recorded.")
        return

    t, a = summary.totals, summary.averages
    click.echo(f"Days:            {summary.days}")
    click.echo(f"Fee revenue:     {t.forward_fee_revenue_sat} sat (avg {a.forward_fee_revenue_sat}/day)")
    click.echo(f"Rebalance cost:  {t.rebalance_fee_cost_sat} sat (avg {a.rebalance_fee_cost_sat}/day)")
    click.echo(f"Net profit:      {t.net_routing_profit_sat} sat (avg {a.net_routing_profit_sat}/day)")
    click.echo(f"Forwards:        {t.forward_count} (avg {a.forward_count}/day)")
    click.echo(f"Routed volume:   {t.routed_volume_sat} sat (avg {a.routed_volume_sat}/day)")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
