"""CommandExecutor protocol - runs administrative commands on the host."""

from __future__ import annotations

from typing import Protocol, Sequence

from nodefleet.models.records import CommandResult, RunAs


class CommandExecutor(Protocol):
    """Runs one external command per call, bounded by the caller's timeout."""

    async def run(
        self,
        timeout: float,
        program: str,
        args: Sequence[str] = (),
        *,
        run_as: RunAs | None = None,
    ) -> CommandResult:
        """Run program with args; never raises for command-level failures."""
        ...
