"""Health collector - runs all probes concurrently, then folds them."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from nodefleet.health.aggregator import ProbeOutcome, aggregate
from nodefleet.interfaces.probe import Probe
from nodefleet.interfaces.store import ReportsStore
from nodefleet.models.config import ManagerConfig
from nodefleet.models.health import Check, HealthLevel, HealthVerdict, ProbeFailure
from nodefleet.models.snapshots import DaemonKind, DaemonSnapshot, ServiceState
from nodefleet.probes.linkage import local_ready

log = logging.getLogger(__name__)

# Slack on top of the probe's own budget before we give up on it
PROBE_GRACE = 0.5


@dataclass
class FleetHealth:
    verdict: HealthVerdict
    outcomes: list[ProbeOutcome] = field(default_factory=list)

    def snapshot(self, kind: DaemonKind) -> DaemonSnapshot | None:
        for outcome in self.outcomes:
            if outcome.kind == kind and isinstance(outcome, DaemonSnapshot):
                return outcome
        return None

    def to_dict(self) -> dict:
        out = self.verdict.to_dict()
        out["daemons"] = {
            o.kind.value: (
                o.to_dict() if isinstance(o, DaemonSnapshot)
                else {"probe_failed": True, "error": o.error}
            )
            for o in self.outcomes
        }
        return out


class HealthCollector:
    """Gathers every configured daemon's snapshot plus self-checks.

    Probes run concurrently, each under its own deadline, so the wall-clock
    bound is the slowest probe rather than the sum. A probe that raises or
    overruns becomes a ProbeFailure; it never aborts the others.
    """

    def __init__(
        self,
        cfg: ManagerConfig,
        probe: Probe,
        store: ReportsStore | None = None,
    ) -> None:
        self._cfg = cfg
        self._probe = probe
        self._store = store

    async def _guarded_probe(self, kind: DaemonKind) -> ProbeOutcome:
        timeout = self._cfg.probe_timeout + PROBE_GRACE
        try:
            return await asyncio.wait_for(self._probe.probe(kind), timeout=timeout)
        except asyncio.TimeoutError:
            log.warning("%s probe exceeded %.1fs", kind.value, timeout)
            return ProbeFailure(kind, f"timed out after {timeout:.1f}s", self._installed(kind))
        except Exception as exc:
            log.error("%s probe failed: %s", kind.value, exc, exc_info=True)
            return ProbeFailure(kind, str(exc) or type(exc).__name__, self._installed(kind))

    def _installed(self, kind: DaemonKind) -> bool:
        return Path(self._cfg.paths(kind).binary).exists()

    async def probe_all(self, kinds: list[DaemonKind] | None = None) -> list[ProbeOutcome]:
        kinds = kinds if kinds is not None else self._cfg.enabled_daemons
        outcomes = list(await asyncio.gather(*(self._guarded_probe(k) for k in kinds)))

        base = next(
            (o for o in outcomes if o.kind == DaemonKind.BITCOIN and isinstance(o, DaemonSnapshot)),
            None,
        )
        for outcome in outcomes:
            if isinstance(outcome, DaemonSnapshot) and outcome.mainchain is not None:
                outcome.mainchain.local_ready = local_ready(base)
        return outcomes

    async def self_checks(self) -> list[Check]:
        checks: list[Check] = []
        if self._store is not None:
            try:
                ok = await self._store.ping()
                message = "" if ok else "reports store not responding"
            except Exception as exc:
                log.warning("Reports store check failed: %s", exc)
                ok, message = False, f"reports store error: {exc}"
            checks.append(Check("reports", ok, HealthLevel.ERR, message))
        return checks

    def fold(self, outcomes: list[ProbeOutcome], checks: list[Check] | None = None) -> FleetHealth:
        verdict = aggregate(outcomes, checks or ())
        if verdict.issues:
            log.debug(
                "Health %s: %s", verdict.overall.value,
                "; ".join(f"{i.component}: {i.message}" for i in verdict.issues),
            )
        return FleetHealth(verdict=verdict, outcomes=outcomes)

    async def collect(self) -> FleetHealth:
        outcomes, checks = await asyncio.gather(self.probe_all(), self.self_checks())
        return self.fold(outcomes, checks)


def safe_to_sample(health: FleetHealth) -> bool:
    """True when lnd is up and answering, so its metrics are meaningful."""
    snap = health.snapshot(DaemonKind.LND)
    return (
        snap is not None
        and snap.service_state == ServiceState.RUNNING
        and snap.rpc_ok
    )
