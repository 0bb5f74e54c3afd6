"""systemd service-state resolver and restart requests."""

from __future__ import annotations

import logging

from nodefleet.interfaces.executor import CommandExecutor
from nodefleet.models.records import CommandFailure
from nodefleet.models.snapshots import ServiceState

log = logging.getLogger(__name__)

# is-enabled answers that still mean "unit file exists but is not usable"
_UNUSABLE = {"", "masked", "masked-runtime", "not-found", "bad"}


class SystemdStateResolver:
    """Maps ``systemctl is-active`` / ``is-enabled`` onto ServiceState.

    active                      -> running
    inactive, unit file present -> stopped
    anything else               -> unknown

    Transport failures (timeouts, sudo refusing, missing systemctl) also map
    to unknown: this is a best-effort signal, never a hard dependency.
    """

    def __init__(
        self,
        executor: CommandExecutor,
        systemctl: str = "systemctl",
        timeout: float = 3.0,
        restart_timeout: float = 15.0,
    ) -> None:
        self._executor = executor
        self._systemctl = systemctl
        self._timeout = timeout
        self._restart_timeout = restart_timeout

    async def resolve(self, unit: str) -> ServiceState:
        active = await self._query("is-active", unit)
        if active is None:
            return ServiceState.UNKNOWN
        if active == "active":
            return ServiceState.RUNNING

        enabled = await self._query("is-enabled", unit)
        if enabled is None or enabled in _UNUSABLE:
            return ServiceState.UNKNOWN
        return ServiceState.STOPPED

    async def _query(self, verb: str, unit: str) -> str | None:
        """Answer word from systemctl, or None if systemctl could not answer."""
        result = await self._executor.run(self._timeout, self._systemctl, [verb, unit])
        # Non-zero exit is how systemctl says "inactive"/"disabled"
        if result.failure in (CommandFailure.TIMEOUT, CommandFailure.SPAWN):
            log.debug("systemctl %s %s unavailable: %s", verb, unit, result.error)
            return None
        lines = result.stdout.strip().splitlines()
        if not lines:
            log.debug("systemctl %s %s gave no answer: %s", verb, unit, result.stderr.strip())
            return None
        return lines[0].strip()

    async def restart(self, unit: str) -> tuple[bool, str]:
        """Ask systemd to restart unit without waiting for it to come back."""
        result = await self._executor.run(
            self._restart_timeout, self._systemctl, ["restart", "--no-block", unit],
        )
        if result.success:
            log.info("Restart requested for %s", unit)
            return True, ""
        log.error("Restart request for %s failed: %s", unit, result.error)
        return False, result.error
