"""Host command executor - runs administrative commands via subprocesses."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Sequence

from nodefleet.models.records import CommandFailure, CommandResult, RunAs

log = logging.getLogger(__name__)

SYSTEMD_RUN_BASE = ("--quiet", "--wait", "--pipe", "--collect")


class HostCommandExecutor:
    """Runs one external command per call with a hard timeout.

    Plain calls run ``[sudo -n] program args``. Calls with ``run_as`` go
    through ``systemd-run`` so the target runs as a dedicated user, in a
    fixed working directory, with piped output and no TTY.

    There are no retries here; callers own their retry policy.
    """

    def __init__(
        self,
        use_sudo: bool = True,
        sudo: str = "sudo",
        systemd_run: str = "systemd-run",
    ) -> None:
        self._use_sudo = use_sudo
        self._sudo = sudo
        self._systemd_run = systemd_run

    def build_argv(
        self, program: str, args: Sequence[str], run_as: RunAs | None = None,
    ) -> list[str]:
        argv: list[str] = []
        if self._use_sudo:
            argv += [self._sudo, "-n"]
        if run_as is not None:
            argv += [self._systemd_run, *SYSTEMD_RUN_BASE, "--uid", run_as.user]
            argv += ["--gid", run_as.group or run_as.user]
            if run_as.working_dir:
                argv.append(f"--property=WorkingDirectory={run_as.working_dir}")
        argv.append(program)
        argv.extend(args)
        return argv

    async def run(
        self,
        timeout: float,
        program: str,
        args: Sequence[str] = (),
        *,
        run_as: RunAs | None = None,
    ) -> CommandResult:
        argv = self.build_argv(program, args, run_as)
        log.debug("exec (timeout=%.1fs): %s", timeout, " ".join(argv))
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            duration = int((time.monotonic() - start) * 1000)
            log.warning("Could not start %s: %s", argv[0], exc)
            return CommandResult(
                success=False,
                stderr=str(exc),
                failure=CommandFailure.SPAWN,
                duration_ms=duration,
            )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            duration = int((time.monotonic() - start) * 1000)
            # Stop waiting; the child may outlive us
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            log.warning("Command timed out after %dms: %s", duration, program)
            return CommandResult(
                success=False,
                failure=CommandFailure.TIMEOUT,
                duration_ms=duration,
            )

        duration = int((time.monotonic() - start) * 1000)
        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            log.debug("%s exited %s: %s", program, proc.returncode, err.strip()[:200])
            return CommandResult(
                success=False,
                stdout=out,
                stderr=err,
                returncode=proc.returncode,
                failure=CommandFailure.EXIT_STATUS,
                duration_ms=duration,
            )

        return CommandResult(
            success=True,
            stdout=out,
            stderr=err,
            returncode=0,
            duration_ms=duration,
        )
