"""Manager process - wires all components together and serves the API."""

from __future__ import annotations

import asyncio
import logging
import signal

from aiohttp import web

from nodefleet.api.server import FleetAPI
from nodefleet.health.collector import HealthCollector
from nodefleet.models.config import ManagerConfig
from nodefleet.probes.daemon import DaemonProbe
from nodefleet.reconfig.orchestrator import ReconfigurationOrchestrator
from nodefleet.reports.feed import LncliMetricsSource, ReportsFeed
from nodefleet.reports.store import SQLiteReportsStore
from nodefleet.system.executor import HostCommandExecutor
from nodefleet.system.services import SystemdStateResolver

log = logging.getLogger(__name__)

# Back-off after an unexpected reports loop error
ERROR_BACKOFF = 60


class FleetManager:
    """Supervises bitcoind, elementsd and lnd on this host.

    Owns the shared executor, probe, orchestrator and (optional) reports
    store, and exposes them over the HTTP API. Polling is driven by API
    callers; the only background task is the optional reports timer.
    """

    def __init__(self, cfg: ManagerConfig) -> None:
        self._cfg = cfg
        self._stop_event = asyncio.Event()
        self._reports_task: asyncio.Task | None = None
        self._runner: web.AppRunner | None = None

        # Core components
        self.executor = HostCommandExecutor(use_sudo=cfg.use_sudo)
        self.services = SystemdStateResolver(
            self.executor, timeout=cfg.status_timeout, restart_timeout=cfg.restart_timeout,
        )
        self.probe = DaemonProbe(cfg, self.executor, self.services)
        self.orchestrator = ReconfigurationOrchestrator(cfg, self.probe, self.services)

        # Reports (optional - disabled when no DSN is configured)
        self.store: SQLiteReportsStore | None = None
        if cfg.reports.enabled:
            self.store = SQLiteReportsStore(cfg.reports.dsn)

        self.collector = HealthCollector(cfg, self.probe, self.store)

        self.feed: ReportsFeed | None = None
        if self.store is not None:
            self.feed = ReportsFeed(
                self.collector, LncliMetricsSource(cfg, self.executor), self.store,
            )

        self.api = FleetAPI(self.collector, self.orchestrator, self.store)

    async def start(self) -> None:
        """Initialize components, serve the API and wait for stop()."""
        log.info("Starting nodefleet manager")
        log.info("  Daemons: %s", ", ".join(k.value for k in self._cfg.enabled_daemons))
        log.info("  API: http://%s:%d", self._cfg.host, self._cfg.port)
        log.info("  Reports: %s", self._cfg.reports.dsn if self.store else "disabled")

        if self.store is not None:
            await self.store.initialize()

        self._runner = web.AppRunner(self.api.build_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._cfg.host, self._cfg.port)
        await site.start()
        log.info("HTTP API listening on %s:%d", self._cfg.host, self._cfg.port)

        if self.feed is not None and self._cfg.reports.interval > 0:
            self._reports_task = asyncio.create_task(self._reports_loop())

        try:
            await self._stop_event.wait()
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Signal the manager to stop gracefully."""
        log.info("Stop requested")
        self._stop_event.set()

    async def _shutdown(self) -> None:
        if self._reports_task is not None:
            self._reports_task.cancel()
            try:
                await self._reports_task
            except asyncio.CancelledError:
                pass
            self._reports_task = None
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        if self.store is not None:
            await self.store.close()
        log.info("Manager shut down cleanly")

    async def _reports_loop(self) -> None:
        """Runs the reports feed every [reports] interval seconds."""
        interval = self._cfg.reports.interval
        log.info("Reports timer every %ds", interval)
        while not self._stop_event.is_set():
            try:
                await self.feed.run_once()
                await asyncio.sleep(interval)
            except asyncio.CancelledError:
                log.info("Reports loop cancelled")
                break
            except Exception as exc:
                log.error("Reports loop error: %s", exc, exc_info=True)
                await asyncio.sleep(min(interval, ERROR_BACKOFF))


async def run_manager(cfg: ManagerConfig) -> None:
    """Entry point for running the manager."""
    manager = FleetManager(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(manager.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await manager.start()
