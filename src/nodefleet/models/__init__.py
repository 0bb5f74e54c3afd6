"""Data models for the nodefleet manager."""

from nodefleet.models.snapshots import (
    DaemonKind,
    DaemonSnapshot,
    MainchainLinkage,
    MainchainSource,
    ServiceState,
)
from nodefleet.models.health import Check, HealthIssue, HealthLevel, HealthVerdict, ProbeFailure
from nodefleet.models.records import (
    CommandFailure,
    CommandResult,
    RunAs,
    StorageConfig,
    StorageMode,
    TransitionFailure,
    TransitionResult,
    TransitionState,
)
from nodefleet.models.config import (
    DaemonPaths,
    MainchainConfig,
    ManagerConfig,
    ReportsConfig,
    RPCEndpoint,
)
from nodefleet.models.reports import DailyRow, Metrics, Summary
from nodefleet.models.errors import ErrorKind

__all__ = [
    "DaemonKind", "DaemonSnapshot", "MainchainLinkage", "MainchainSource", "ServiceState",
    "Check", "HealthIssue", "HealthLevel", "HealthVerdict", "ProbeFailure",
    "CommandFailure", "CommandResult", "RunAs",
    "StorageConfig", "StorageMode",
    "TransitionFailure", "TransitionResult", "TransitionState",
    "DaemonPaths", "MainchainConfig", "ManagerConfig", "ReportsConfig", "RPCEndpoint",
    "DailyRow", "Metrics", "Summary",
    "ErrorKind",
]
