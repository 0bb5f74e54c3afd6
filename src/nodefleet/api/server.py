"""HTTP API - JSON views over health, reconfiguration and reports."""

from __future__ import annotations

import logging
import math
from datetime import date

from aiohttp import web

from nodefleet.health.collector import HealthCollector
from nodefleet.interfaces.store import ReportsStore
from nodefleet.models.errors import NodefleetError
from nodefleet.models.health import ProbeFailure
from nodefleet.models.records import StorageMode, TransitionFailure, TransitionResult
from nodefleet.models.snapshots import DaemonKind, MainchainSource
from nodefleet.reconfig.orchestrator import ReconfigurationOrchestrator

log = logging.getLogger(__name__)

_FAILURE_STATUS = {
    TransitionFailure.PRECONDITION_NOT_MET: 409,
    TransitionFailure.BELOW_MINIMUM: 409,
    TransitionFailure.NOT_INSTALLED: 409,
    TransitionFailure.CONFIG_WRITE_FAILED: 500,
    TransitionFailure.RESTART_FAILED: 502,
}


def transition_status(result: TransitionResult) -> int:
    if result.success:
        return 200
    return _FAILURE_STATUS.get(result.failure, 500)


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except NodefleetError as exc:
        log.error("%s %s failed: %s", request.method, request.path, exc)
        body = {"error": str(exc)}
        if exc.kind is not None:
            body["kind"] = exc.kind.value
        return web.json_response(body, status=500)
    except Exception as exc:
        log.error("%s %s crashed: %s", request.method, request.path, exc, exc_info=True)
        return _error("internal error", 500)


class FleetAPI:
    """Request handlers bound to the manager's components."""

    def __init__(
        self,
        collector: HealthCollector,
        orchestrator: ReconfigurationOrchestrator,
        store: ReportsStore | None = None,
    ) -> None:
        self._collector = collector
        self._orchestrator = orchestrator
        self._store = store

    def build_app(self) -> web.Application:
        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/api/health", self.handle_health)
        app.router.add_get("/api/daemons", self.handle_daemons)
        app.router.add_get("/api/daemons/{kind}", self.handle_daemon)
        app.router.add_post("/api/daemons/{kind}/restart", self.handle_restart)
        app.router.add_get("/api/elements/mainchain", self.handle_get_mainchain)
        app.router.add_post("/api/elements/mainchain", self.handle_set_mainchain)
        app.router.add_get("/api/bitcoin/storage", self.handle_get_storage)
        app.router.add_post("/api/bitcoin/storage", self.handle_set_storage)
        app.router.add_get("/api/reports/range", self.handle_reports_range)
        app.router.add_get("/api/reports/summary", self.handle_reports_summary)
        return app

    # ── Health ─────────────────────────────────────────────

    async def handle_health(self, request: web.Request) -> web.Response:
        health = await self._collector.collect()
        return web.json_response(health.verdict.to_dict())

    async def handle_daemons(self, request: web.Request) -> web.Response:
        health = await self._collector.collect()
        return web.json_response(health.to_dict())

    async def handle_daemon(self, request: web.Request) -> web.Response:
        kind = _parse_kind(request.match_info["kind"])
        if kind is None:
            return _error(f"unknown daemon: {request.match_info['kind']}", 404)
        outcomes = await self._collector.probe_all([kind])
        outcome = outcomes[0]
        if isinstance(outcome, ProbeFailure):
            return web.json_response(
                {"kind": kind.value, "probe_failed": True, "error": outcome.error},
                status=504,
            )
        return web.json_response(outcome.to_dict())

    # ── Reconfiguration ────────────────────────────────────

    async def handle_restart(self, request: web.Request) -> web.Response:
        kind = _parse_kind(request.match_info["kind"])
        if kind is None:
            return _error(f"unknown daemon: {request.match_info['kind']}", 404)
        result = await self._orchestrator.retry_restart(kind)
        return web.json_response(result.to_dict(), status=transition_status(result))

    async def handle_get_mainchain(self, request: web.Request) -> web.Response:
        linkage = await self._orchestrator.get_mainchain()
        return web.json_response(linkage.to_dict())

    async def handle_set_mainchain(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        if body is None:
            return _error("expected a JSON object", 400)
        try:
            source = MainchainSource(str(body.get("source", "")).strip().lower())
        except ValueError:
            return _error("source must be 'local' or 'remote'", 400)
        result = await self._orchestrator.switch_mainchain(source)
        return web.json_response(result.to_dict(), status=transition_status(result))

    async def handle_get_storage(self, request: web.Request) -> web.Response:
        storage = self._orchestrator.get_storage()
        return web.json_response(storage.to_dict())

    async def handle_set_storage(self, request: web.Request) -> web.Response:
        body = await _json_body(request)
        if body is None:
            return _error("expected a JSON object", 400)
        try:
            mode = StorageMode(str(body.get("mode", "")).strip().lower())
        except ValueError:
            return _error("mode must be 'full' or 'pruned'", 400)

        size = body.get("prune_size_gb")
        if size is not None:
            if isinstance(size, bool) or not isinstance(size, (int, float)):
                return _error("prune_size_gb must be a number", 400)
            size = float(size)
            if not math.isfinite(size):
                return _error("prune_size_gb must be a finite number", 400)
        if mode == StorageMode.FULL:
            size = None

        apply_now = body.get("apply_now", True)
        if not isinstance(apply_now, bool):
            return _error("apply_now must be a boolean", 400)

        result = await self._orchestrator.set_storage(mode, size, apply_now)
        return web.json_response(result.to_dict(), status=transition_status(result))

    # ── Reports ────────────────────────────────────────────

    async def handle_reports_range(self, request: web.Request) -> web.Response:
        if self._store is None:
            return _error("reports are disabled", 503)
        try:
            start, end = _date_range(request)
        except ValueError as exc:
            return _error(str(exc), 400)
        if start is None or end is None:
            rows = await self._store.fetch_all()
        else:
            rows = await self._store.fetch_range(start, end)
        return web.json_response({"rows": [r.to_dict() for r in rows]})

    async def handle_reports_summary(self, request: web.Request) -> web.Response:
        if self._store is None:
            return _error("reports are disabled", 503)
        try:
            start, end = _date_range(request)
        except ValueError as exc:
            return _error(str(exc), 400)
        if start is None or end is None:
            summary = await self._store.summary_all()
        else:
            summary = await self._store.summary(start, end)
        return web.json_response(summary.to_dict())


def _parse_kind(value: str) -> DaemonKind | None:
    try:
        return DaemonKind(value.lower())
    except ValueError:
        return None


async def _json_body(request: web.Request) -> dict | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def _date_range(request: web.Request) -> tuple[date | None, date | None]:
    """start/end query params as dates; both or neither."""
    raw_start = request.query.get("start")
    raw_end = request.query.get("end")
    if not raw_start and not raw_end:
        return None, None
    if not raw_start or not raw_end:
        raise ValueError("start and end must be given together")
    start, end = date.fromisoformat(raw_start), date.fromisoformat(raw_end)
    if start > end:
        raise ValueError("start must not be after end")
    return start, end
