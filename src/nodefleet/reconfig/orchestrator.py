"""Reconfiguration orchestrator - guarded config transitions with restarts.

Every transition follows the same path:

    Idle -> PreconditionCheck -> Rejected
                              -> ConfigWrite -> WriteFailed
                                             -> RestartRequest -> RestartFailed
                                                               -> Requested

Transitions on the same daemon are serialized by a per-daemon lock held
from the precondition check through the restart request. Different daemons
do not block each other. Restarts are requested with --no-block: a
successful result means "accepted", and convergence shows up in later
probes.
"""

from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path

from nodefleet.interfaces.probe import Probe
from nodefleet.interfaces.services import ServiceStateResolver
from nodefleet.models.config import MIB_PER_GB, ManagerConfig
from nodefleet.models.errors import ConfigFileError
from nodefleet.models.records import (
    StorageConfig,
    StorageMode,
    TransitionFailure,
    TransitionResult,
    TransitionState,
)
from nodefleet.models.snapshots import DaemonKind, MainchainLinkage, MainchainSource
from nodefleet.probes.linkage import (
    HOST_KEY,
    PASSWORD_KEY,
    PORT_KEY,
    USER_KEY,
    endpoint_for,
    load_sidechain_conf,
    local_ready,
    read_linkage,
)
from nodefleet.system.conffile import ConfFile

log = logging.getLogger(__name__)

PRUNE_KEY = "prune"


class ReconfigurationOrchestrator:
    """Mainchain-source and storage-mode switches for the node fleet."""

    def __init__(
        self,
        cfg: ManagerConfig,
        probe: Probe,
        services: ServiceStateResolver,
    ) -> None:
        self._cfg = cfg
        self._probe = probe
        self._services = services
        self._locks: dict[DaemonKind, asyncio.Lock] = {kind: asyncio.Lock() for kind in DaemonKind}

    def lock_for(self, kind: DaemonKind) -> asyncio.Lock:
        return self._locks[kind]

    # ── Reads ──────────────────────────────────────────────

    async def get_mainchain(self) -> MainchainLinkage:
        """Current linkage with local_ready from a fresh base-chain probe."""
        linkage = read_linkage(self._cfg.elements.conf, self._cfg.mainchain)
        linkage.local_ready = local_ready(await self._probe.probe(DaemonKind.BITCOIN))
        return linkage

    def get_storage(self) -> StorageConfig:
        conf = ConfFile.load(self._cfg.bitcoin.conf)
        return storage_from_conf(conf, self._cfg.min_prune_gb)

    # ── Mainchain source switch ────────────────────────────

    async def switch_mainchain(self, source: MainchainSource) -> TransitionResult:
        kind = DaemonKind.ELEMENTS
        async with self._locks[kind]:
            log.info("Mainchain switch to %s requested", source.value)
            if (rejected := self._require_installed(kind)) is not None:
                return rejected

            if source == MainchainSource.LOCAL:
                # Always a fresh probe: a stale "synced" could point the
                # sidechain at a backend that is behind
                base = await self._probe.probe(DaemonKind.BITCOIN)
                if not local_ready(base):
                    reason = "local bitcoin node is not ready"
                    if base.error:
                        reason += f" ({base.error})"
                    elif base.installed and base.rpc_ok:
                        reason += " (still syncing)"
                    log.info("Mainchain switch rejected: %s", reason)
                    return TransitionResult(
                        success=False,
                        kind=kind,
                        state=TransitionState.REJECTED,
                        failure=TransitionFailure.PRECONDITION_NOT_MET,
                        message=reason,
                    )

            endpoint = endpoint_for(source, self._cfg.mainchain)
            applied: dict = {HOST_KEY: endpoint.host, PORT_KEY: endpoint.port}
            try:
                conf = load_sidechain_conf(self._cfg.elements.conf)
                conf.set(HOST_KEY, endpoint.host)
                conf.set(PORT_KEY, endpoint.port)
                if endpoint.user and endpoint.password:
                    conf.set(USER_KEY, endpoint.user)
                    conf.set(PASSWORD_KEY, endpoint.password)
                    applied[USER_KEY] = endpoint.user
                else:
                    # Credentials of the other backend must not leak to this one
                    conf.remove(USER_KEY)
                    conf.remove(PASSWORD_KEY)
                conf.save()
            except ConfigFileError as exc:
                log.error("Mainchain switch: config write failed: %s", exc)
                return TransitionResult(
                    success=False,
                    kind=kind,
                    state=TransitionState.WRITE_FAILED,
                    failure=TransitionFailure.CONFIG_WRITE_FAILED,
                    message=str(exc),
                )

            applied["source"] = source.value
            return await self._request_restart(
                kind, applied, f"elements now uses {source.value} bitcoin; restart requested",
            )

    # ── Storage mode switch ────────────────────────────────

    async def set_storage(
        self,
        mode: StorageMode,
        prune_size_gb: float | None = None,
        apply_now: bool = True,
    ) -> TransitionResult:
        kind = DaemonKind.BITCOIN
        async with self._locks[kind]:
            log.info(
                "Storage switch to %s (size=%s GB, apply_now=%s) requested",
                mode.value, prune_size_gb, apply_now,
            )
            if (rejected := self._require_installed(kind)) is not None:
                return rejected
            min_gb = self._cfg.min_prune_gb

            if mode == StorageMode.PRUNED:
                if (prune_size_gb is None or not math.isfinite(prune_size_gb)
                        or prune_size_gb < min_gb):
                    message = f"prune size must be at least {min_gb:.2f} GB"
                    log.info("Storage switch rejected: %s (got %s)", message, prune_size_gb)
                    return TransitionResult(
                        success=False,
                        kind=kind,
                        state=TransitionState.REJECTED,
                        failure=TransitionFailure.BELOW_MINIMUM,
                        message=message,
                    )

            try:
                conf = ConfFile.load(self._cfg.bitcoin.conf)
                if mode == StorageMode.PRUNED:
                    prune_mib = gb_to_mib(prune_size_gb)
                    conf.set(PRUNE_KEY, prune_mib)
                    applied = {"mode": mode.value, "prune_size_gb": prune_size_gb, PRUNE_KEY: prune_mib}
                else:
                    conf.remove(PRUNE_KEY)
                    applied = {"mode": mode.value}
                conf.save()
            except ConfigFileError as exc:
                log.error("Storage switch: config write failed: %s", exc)
                return TransitionResult(
                    success=False,
                    kind=kind,
                    state=TransitionState.WRITE_FAILED,
                    failure=TransitionFailure.CONFIG_WRITE_FAILED,
                    message=str(exc),
                )

            if not apply_now:
                log.info("Storage config persisted; takes effect on next restart")
                return TransitionResult(
                    success=True,
                    kind=kind,
                    state=TransitionState.PERSISTED,
                    message="saved; takes effect on next restart",
                    applied=applied,
                )

            return await self._request_restart(kind, applied, "storage config saved; restart requested")

    # ── Restarts ───────────────────────────────────────────

    async def retry_restart(self, kind: DaemonKind) -> TransitionResult:
        """Restart only, for callers recovering from RESTART_FAILED."""
        async with self._locks[kind]:
            if (rejected := self._require_installed(kind)) is not None:
                return rejected
            return await self._request_restart(kind, {}, "restart requested")

    def _require_installed(self, kind: DaemonKind) -> TransitionResult | None:
        binary = self._cfg.paths(kind).binary
        if Path(binary).exists():
            return None
        log.info("%s transition rejected: %s not installed", kind.value, binary)
        return TransitionResult(
            success=False,
            kind=kind,
            state=TransitionState.REJECTED,
            failure=TransitionFailure.NOT_INSTALLED,
            message=f"{kind.value} is not installed",
        )

    async def _request_restart(self, kind: DaemonKind, applied: dict, message: str) -> TransitionResult:
        unit = self._cfg.paths(kind).unit
        accepted, error = await self._services.restart(unit)
        if not accepted:
            log.error("%s: config applied but restart failed: %s", kind.value, error)
            return TransitionResult(
                success=False,
                kind=kind,
                state=TransitionState.RESTART_FAILED,
                failure=TransitionFailure.RESTART_FAILED,
                message=error or "restart request failed",
                applied=applied,
            )
        log.info("%s: %s", kind.value, message)
        return TransitionResult(
            success=True,
            kind=kind,
            state=TransitionState.REQUESTED,
            message=message,
            applied=applied,
        )


def gb_to_mib(size_gb: float) -> int:
    return int(round(size_gb * MIB_PER_GB))


def storage_from_conf(conf: ConfFile, min_prune_gb: float) -> StorageConfig:
    """prune absent or 0 -> full; 1 -> manual pruning with no target size."""
    prune = conf.get_int(PRUNE_KEY)
    if not prune:
        return StorageConfig(mode=StorageMode.FULL, min_prune_gb=min_prune_gb)
    if prune == 1:
        return StorageConfig(mode=StorageMode.PRUNED, min_prune_gb=min_prune_gb)
    return StorageConfig(
        mode=StorageMode.PRUNED,
        prune_size_gb=round(prune / MIB_PER_GB, 2),
        min_prune_gb=min_prune_gb,
    )
