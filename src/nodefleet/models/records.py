"""Operation result types for commands and guarded transitions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from nodefleet.models.snapshots import DaemonKind


class CommandFailure(str, Enum):
    TIMEOUT = "timeout"
    EXIT_STATUS = "exit_status"  # ran, but exited non-zero
    SPAWN = "spawn"  # could not be started at all


@dataclass(frozen=True)
class RunAs:
    """Constrained execution context for a command."""

    user: str
    group: str | None = None
    working_dir: str | None = None


@dataclass
class CommandResult:
    """Result of a single external command invocation."""

    success: bool
    stdout: str = ""
    stderr: str = ""
    returncode: int | None = None
    failure: CommandFailure | None = None
    duration_ms: int = 0

    @property
    def error(self) -> str:
        if self.success:
            return ""
        if self.failure == CommandFailure.TIMEOUT:
            return f"timed out after {self.duration_ms}ms"
        detail = (self.stderr or self.stdout).strip()
        if self.failure == CommandFailure.EXIT_STATUS:
            return f"exit status {self.returncode}: {detail}" if detail else f"exit status {self.returncode}"
        return detail or "command failed"


class StorageMode(str, Enum):
    FULL = "full"
    PRUNED = "pruned"


@dataclass
class StorageConfig:
    """Base-chain storage mode as persisted in bitcoin.conf."""

    mode: StorageMode
    prune_size_gb: float | None = None
    min_prune_gb: float = 550 / 1024

    def __post_init__(self) -> None:
        if self.mode == StorageMode.FULL and self.prune_size_gb is not None:
            raise ValueError("prune_size_gb must be absent in full mode")

    def to_dict(self) -> dict:
        out = {"mode": self.mode.value, "min_prune_gb": round(self.min_prune_gb, 2)}
        if self.prune_size_gb is not None:
            out["prune_size_gb"] = self.prune_size_gb
        return out


class TransitionState(str, Enum):
    REQUESTED = "requested"  # config written and restart accepted
    PERSISTED = "persisted"  # config written, restart deferred
    REJECTED = "rejected"
    WRITE_FAILED = "write_failed"
    RESTART_FAILED = "restart_failed"


class TransitionFailure(str, Enum):
    PRECONDITION_NOT_MET = "precondition_not_met"
    BELOW_MINIMUM = "below_minimum"
    NOT_INSTALLED = "not_installed"
    CONFIG_WRITE_FAILED = "config_write_failed"
    RESTART_FAILED = "restart_failed"


@dataclass
class TransitionResult:
    """Outcome of a guarded reconfiguration.

    ``applied`` holds the directives now on disk whenever the config write
    happened, so a RESTART_FAILED caller can retry the restart alone.
    """

    success: bool
    kind: DaemonKind
    state: TransitionState
    failure: TransitionFailure | None = None
    message: str = ""
    applied: dict = field(default_factory=dict)

    @property
    def config_changed(self) -> bool:
        return self.state in (
            TransitionState.REQUESTED,
            TransitionState.PERSISTED,
            TransitionState.RESTART_FAILED,
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "daemon": self.kind.value,
            "state": self.state.value,
            "failure": self.failure.value if self.failure else None,
            "message": self.message,
            "config_changed": self.config_changed,
            "applied": self.applied,
        }
