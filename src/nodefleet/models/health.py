"""Health verdict models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from nodefleet.models.snapshots import DaemonKind


class HealthLevel(str, Enum):
    OK = "OK"
    WARN = "WARN"
    ERR = "ERR"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]


_SEVERITY = {HealthLevel.OK: 0, HealthLevel.WARN: 1, HealthLevel.ERR: 2}


def worst(levels) -> HealthLevel:
    """Worst-of reduction; an empty input is OK."""
    result = HealthLevel.OK
    for level in levels:
        if level.severity > result.severity:
            result = level
    return result


@dataclass(frozen=True)
class HealthIssue:
    component: str
    level: HealthLevel
    message: str

    def to_dict(self) -> dict:
        return {"component": self.component, "level": self.level.value, "message": self.message}


@dataclass
class HealthVerdict:
    """Overall status plus issues ordered by component, not by severity."""

    overall: HealthLevel = HealthLevel.OK
    issues: list[HealthIssue] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": self.overall.value,
            "issues": [i.to_dict() for i in self.issues],
        }


@dataclass(frozen=True)
class ProbeFailure:
    """Stands in for a snapshot when the probe itself raised or timed out."""

    kind: DaemonKind
    error: str
    installed: bool | None = None


@dataclass(frozen=True)
class Check:
    """Result of a non-daemon check (self-checks, stores)."""

    component: str
    ok: bool
    level: HealthLevel = HealthLevel.ERR
    message: str = ""
