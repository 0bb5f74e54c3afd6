"""Health aggregation - a pure fold over already-gathered probe results."""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from nodefleet.models.health import (
    Check,
    HealthIssue,
    HealthLevel,
    HealthVerdict,
    ProbeFailure,
    worst,
)
from nodefleet.models.snapshots import DaemonSnapshot, ServiceState

ProbeOutcome = Union[DaemonSnapshot, ProbeFailure]


def _format_progress(value: float | None) -> str:
    if value is None:
        return "?"
    return f"{min(100.0, max(0.0, value * 100)):.2f}%"


def assess(outcome: ProbeOutcome) -> HealthIssue | None:
    """At most one issue per daemon; the first matching rule wins."""
    component = outcome.kind.value

    if isinstance(outcome, ProbeFailure):
        # A daemon known to be absent cannot be in error
        level = HealthLevel.WARN if outcome.installed is False else HealthLevel.ERR
        return HealthIssue(component, level, f"probe failed: {outcome.error}")

    snap = outcome
    if not snap.installed:
        return HealthIssue(component, HealthLevel.WARN, "not installed")
    if snap.service_state == ServiceState.UNKNOWN:
        return HealthIssue(component, HealthLevel.WARN, "service state unknown")
    if snap.service_state != ServiceState.RUNNING:
        return HealthIssue(component, HealthLevel.WARN, "installed but not running")
    if not snap.rpc_ok:
        detail = f" ({snap.error})" if snap.error else ""
        return HealthIssue(component, HealthLevel.WARN, f"running but RPC unreachable{detail}")
    if snap.in_initial_block_download:
        return HealthIssue(
            component, HealthLevel.WARN,
            f"syncing ({_format_progress(snap.verification_progress)})",
        )
    return None


def aggregate(
    outcomes: Sequence[ProbeOutcome],
    extra_checks: Iterable[Check] = (),
) -> HealthVerdict:
    """Fold probe outcomes and extra checks into one verdict.

    Issues come out in DaemonKind order, then extra checks in the order
    given. Overall is the worst level seen; a single ERR dominates.
    """
    issues: list[HealthIssue] = []
    for outcome in sorted(outcomes, key=lambda o: o.kind.order):
        issue = assess(outcome)
        if issue is not None:
            issues.append(issue)

    for check in extra_checks:
        if not check.ok:
            level = check.level if check.level != HealthLevel.OK else HealthLevel.WARN
            issues.append(HealthIssue(check.component, level, check.message or "check failed"))

    return HealthVerdict(overall=worst(i.level for i in issues), issues=issues)
