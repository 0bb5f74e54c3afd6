"""Daemon probe - snapshots bitcoind, elementsd or lnd through their CLIs."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from nodefleet.interfaces.executor import CommandExecutor
from nodefleet.interfaces.services import ServiceStateResolver
from nodefleet.models.config import ManagerConfig
from nodefleet.models.errors import ParseFailure
from nodefleet.models.records import RunAs
from nodefleet.models.snapshots import DaemonKind, DaemonSnapshot, ServiceState
from nodefleet.probes.linkage import read_linkage
from nodefleet.probes.specs import PROBE_SPECS, ProbeSpec, parse_json

log = logging.getLogger(__name__)


class DaemonProbe:
    """Builds a fresh DaemonSnapshot per call.

    Steps:
    1. Binary missing -> not installed, nothing else is attempted
    2. Service not running -> return without touching RPC
    3. Two read-only queries under one probe budget; a failure or
       malformed answer keeps whatever was already extracted
    4. Both succeed -> rpc_ok
    """

    def __init__(
        self,
        cfg: ManagerConfig,
        executor: CommandExecutor,
        resolver: ServiceStateResolver,
        specs: dict[DaemonKind, ProbeSpec] | None = None,
    ) -> None:
        self._cfg = cfg
        self._executor = executor
        self._resolver = resolver
        self._specs = specs or PROBE_SPECS

    async def probe(self, kind: DaemonKind) -> DaemonSnapshot:
        paths = self._cfg.paths(kind)
        snap = DaemonSnapshot(kind=kind)

        if kind == DaemonKind.ELEMENTS:
            snap.mainchain = read_linkage(paths.conf, self._cfg.mainchain)

        if not Path(paths.binary).exists():
            log.debug("%s not installed (%s missing)", kind.value, paths.binary)
            return snap
        snap.installed = True

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._cfg.probe_timeout

        snap.service_state = await self._resolver.resolve(paths.unit)
        if snap.service_state != ServiceState.RUNNING:
            return snap

        spec = self._specs[kind]
        run_as = RunAs(user=paths.user, group=paths.group, working_dir=paths.data_dir)
        for query, extract in zip(spec.queries, spec.extractors):
            remaining = deadline - loop.time()
            if remaining <= 0:
                snap.error = f"{query[0]}: probe budget exhausted"
                log.warning("%s probe: %s", kind.value, snap.error)
                return snap

            timeout = min(self._cfg.command_timeout, remaining)
            result = await self._executor.run(
                timeout,
                paths.cli,
                [*spec.build_args(paths, timeout), *query],
                run_as=run_as,
            )
            if not result.success:
                snap.error = f"{query[0]}: {result.error}"
                log.warning("%s probe: %s", kind.value, snap.error)
                return snap

            try:
                extract(parse_json(result.stdout), snap)
            except ParseFailure as exc:
                snap.error = f"{query[0]}: {exc}"
                log.warning("%s probe: unexpected output, %s", kind.value, exc)
                return snap

        snap.rpc_ok = True
        return snap
