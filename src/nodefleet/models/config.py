"""Configuration models for the manager."""

from __future__ import annotations

from dataclasses import dataclass, field

from nodefleet.models.snapshots import DaemonKind

MIN_PRUNE_MIB = 550  # bitcoind rejects smaller prune targets
MIB_PER_GB = 1024


@dataclass
class DaemonPaths:
    """Where one daemon lives on the host and how to reach its CLI."""

    binary: str
    cli: str
    conf: str
    data_dir: str
    unit: str
    user: str
    group: str | None = None
    network: str = "mainnet"  # only used by lncli


def _bitcoin_paths() -> DaemonPaths:
    return DaemonPaths(
        binary="/usr/local/bin/bitcoind",
        cli="/usr/local/bin/bitcoin-cli",
        conf="/data/bitcoin/bitcoin.conf",
        data_dir="/data/bitcoin",
        unit="bitcoind",
        user="bitcoin",
    )


def _elements_paths() -> DaemonPaths:
    return DaemonPaths(
        binary="/opt/elements/bin/elementsd",
        cli="/opt/elements/bin/elements-cli",
        conf="/data/elements/elements.conf",
        data_dir="/data/elements",
        unit="elementsd",
        user="elements",
    )


def _lnd_paths() -> DaemonPaths:
    return DaemonPaths(
        binary="/opt/lnd/lnd",
        cli="/opt/lnd/lncli",
        conf="/data/lnd/lnd.conf",
        data_dir="/data/lnd",
        unit="lnd",
        user="lnd",
    )


@dataclass
class RPCEndpoint:
    host: str
    port: int
    user: str = ""
    password: str = ""


@dataclass
class MainchainConfig:
    """Base-chain backends the sidechain can be pointed at."""

    local: RPCEndpoint = field(default_factory=lambda: RPCEndpoint("127.0.0.1", 8332))
    remote: RPCEndpoint = field(default_factory=lambda: RPCEndpoint("bitcoin.remote.invalid", 8332))


@dataclass
class ReportsConfig:
    enabled: bool = True
    dsn: str = "~/.nodefleet/reports.db"  # SQLite path
    interval: int = 0  # seconds between feed runs; 0 = driven externally


@dataclass
class ManagerConfig:
    """Complete manager configuration, built once at startup."""

    # Manager
    host: str = "127.0.0.1"
    port: int = 8443
    log_level: str = "info"
    use_sudo: bool = True
    honor_placeholders: bool = False
    enabled_daemons: list[DaemonKind] = field(default_factory=lambda: list(DaemonKind))

    # Timeouts (seconds)
    probe_timeout: float = 6.0  # whole-probe budget
    command_timeout: float = 5.0  # single CLI query
    status_timeout: float = 3.0  # systemctl is-active / is-enabled
    restart_timeout: float = 15.0  # systemctl restart --no-block

    # Daemons
    bitcoin: DaemonPaths = field(default_factory=_bitcoin_paths)
    elements: DaemonPaths = field(default_factory=_elements_paths)
    lnd: DaemonPaths = field(default_factory=_lnd_paths)

    mainchain: MainchainConfig = field(default_factory=MainchainConfig)
    min_prune_gb: float = MIN_PRUNE_MIB / MIB_PER_GB

    reports: ReportsConfig = field(default_factory=ReportsConfig)

    def paths(self, kind: DaemonKind) -> DaemonPaths:
        return getattr(self, kind.value)
