"""Per-poll snapshot models for the supervised daemons."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class DaemonKind(str, Enum):
    """The fixed set of supervised daemons, in component enumeration order."""

    BITCOIN = "bitcoin"  # base chain
    ELEMENTS = "elements"  # sidechain
    LND = "lnd"  # lightning

    @property
    def order(self) -> int:
        return list(DaemonKind).index(self)


class ServiceState(str, Enum):
    NOT_INSTALLED = "not_installed"
    STOPPED = "stopped"
    UNKNOWN = "unknown"
    RUNNING = "running"


class MainchainSource(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


@dataclass
class MainchainLinkage:
    """The sidechain's configured base-chain backend."""

    source: MainchainSource
    rpc_host: str
    rpc_port: int
    local_ready: bool = False

    def to_dict(self) -> dict:
        return {
            "source": self.source.value,
            "rpchost": self.rpc_host,
            "rpcport": self.rpc_port,
            "local_ready": self.local_ready,
        }


@dataclass
class DaemonSnapshot:
    """What one probe learned about one daemon.

    Optional fields stay None when the probe did not reach the point of
    filling them; None is not the same as zero.
    """

    kind: DaemonKind
    installed: bool = False
    service_state: ServiceState = ServiceState.NOT_INSTALLED
    rpc_ok: bool = False

    chain_name: str | None = None
    block_height: int | None = None
    header_height: int | None = None
    verification_progress: float | None = None  # raw, not clamped
    in_initial_block_download: bool | None = None
    peer_count: int | None = None
    version: int | None = None
    version_string: str | None = None
    disk_bytes_used: int | None = None

    # Base chain only
    pruned: bool | None = None
    prune_height: int | None = None
    prune_target_size: int | None = None

    # Sidechain only
    mainchain: MainchainLinkage | None = None

    error: str | None = None

    @property
    def fully_synced(self) -> bool:
        if not self.rpc_ok or self.in_initial_block_download:
            return False
        if self.block_height is None or self.header_height is None:
            return False
        return self.block_height >= self.header_height

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            out[key] = value
        if self.mainchain is not None:
            out["mainchain"] = self.mainchain.to_dict()
        out["status"] = self.service_state.value
        return out
