"""Host command executor: real subprocesses, no sudo."""

from __future__ import annotations

import time

import pytest

from nodefleet.models.records import CommandFailure, RunAs
from nodefleet.system.executor import HostCommandExecutor


@pytest.fixture
def executor():
    return HostCommandExecutor(use_sudo=False)


# ── Outcomes ──────────────────────────────────────────────────────


async def test_success_captures_stdout(executor):
    result = await executor.run(5, "echo", ["hello"])
    assert result.success
    assert result.stdout == "hello\n"
    assert result.returncode == 0
    assert result.failure is None


async def test_nonzero_exit_keeps_stdout(executor):
    """systemctl answers through exit codes, so stdout must survive."""
    result = await executor.run(5, "sh", ["-c", "echo inactive; echo oops >&2; exit 3"])
    assert not result.success
    assert result.failure == CommandFailure.EXIT_STATUS
    assert result.returncode == 3
    assert result.stdout == "inactive\n"
    assert "oops" in result.stderr
    assert result.error.startswith("exit status 3")


async def test_timeout_is_bounded(executor):
    start = time.monotonic()
    result = await executor.run(0.2, "sleep", ["5"])
    elapsed = time.monotonic() - start
    assert not result.success
    assert result.failure == CommandFailure.TIMEOUT
    assert elapsed < 2
    assert "timed out" in result.error


async def test_missing_binary_is_spawn_failure(executor, tmp_path):
    result = await executor.run(5, str(tmp_path / "no-such-cli"))
    assert not result.success
    assert result.failure == CommandFailure.SPAWN
    assert result.returncode is None


# ── Argument construction ─────────────────────────────────────────


def test_plain_call_with_sudo():
    executor = HostCommandExecutor(use_sudo=True)
    argv = executor.build_argv("systemctl", ["is-active", "lnd"])
    assert argv == ["sudo", "-n", "systemctl", "is-active", "lnd"]


def test_run_as_goes_through_systemd_run():
    executor = HostCommandExecutor(use_sudo=True)
    argv = executor.build_argv(
        "/opt/elements/bin/elements-cli",
        ["getblockchaininfo"],
        RunAs(user="elements", group="elements", working_dir="/data/elements"),
    )
    assert argv == [
        "sudo", "-n", "systemd-run",
        "--quiet", "--wait", "--pipe", "--collect",
        "--uid", "elements", "--gid", "elements",
        "--property=WorkingDirectory=/data/elements",
        "/opt/elements/bin/elements-cli", "getblockchaininfo",
    ]


def test_run_as_group_defaults_to_user():
    executor = HostCommandExecutor(use_sudo=False)
    argv = executor.build_argv("lncli", ["getinfo"], RunAs(user="lnd"))
    assert argv[:7] == ["systemd-run", "--quiet", "--wait", "--pipe", "--collect", "--uid", "lnd"]
    assert argv[7:9] == ["--gid", "lnd"]
    assert not any(a.startswith("--property=") for a in argv)
