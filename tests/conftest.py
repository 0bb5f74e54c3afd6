"""Shared fixtures for nodefleet tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from nodefleet.health.collector import HealthCollector
from nodefleet.models.config import ManagerConfig, MainchainConfig, RPCEndpoint
from nodefleet.models.snapshots import DaemonKind
from nodefleet.reconfig.orchestrator import ReconfigurationOrchestrator
from nodefleet.reports.store import SQLiteReportsStore

from tests.mocks import MockExecutor, MockProbe, MockResolver

REMOTE_HOST = "bitcoin.example.net"
REMOTE_PORT = 8332


def make_test_config(
    tmp_path: Path,
    installed: tuple[DaemonKind, ...] = tuple(DaemonKind),
    **overrides,
) -> ManagerConfig:
    """Build a ManagerConfig whose daemons live under tmp_path.

    Kinds listed in ``installed`` get a placeholder binary on disk, which is
    all the probe and orchestrator look at to decide "installed".
    """
    defaults = dict(
        use_sudo=False,
        probe_timeout=2.0,
        command_timeout=1.0,
        status_timeout=1.0,
        restart_timeout=1.0,
        mainchain=MainchainConfig(
            local=RPCEndpoint("127.0.0.1", 8332),
            remote=RPCEndpoint(REMOTE_HOST, REMOTE_PORT, "remoteuser", "remotepass"),
        ),
    )
    defaults.update(overrides)
    cfg = ManagerConfig(**defaults)
    for kind in DaemonKind:
        root = tmp_path / kind.value
        root.mkdir(parents=True, exist_ok=True)
        paths = cfg.paths(kind)
        paths.binary = str(root / f"{kind.value}d")
        paths.cli = str(root / f"{kind.value}-cli")
        paths.conf = str(root / f"{kind.value}.conf")
        paths.data_dir = str(root)
        if kind in installed:
            Path(paths.binary).touch()
    cfg.reports.dsn = ":memory:"
    return cfg


def write_conf(cfg: ManagerConfig, kind: DaemonKind, text: str) -> Path:
    path = Path(cfg.paths(kind).conf)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def test_config(tmp_path):
    """ManagerConfig with all three daemons installed under tmp_path."""
    return make_test_config(tmp_path)


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteReportsStore."""
    s = SQLiteReportsStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def mock_executor():
    return MockExecutor()


@pytest.fixture
def mock_resolver():
    return MockResolver()


@pytest.fixture
def mock_probe():
    return MockProbe()


@pytest.fixture
def orchestrator(test_config, mock_probe, mock_resolver):
    return ReconfigurationOrchestrator(test_config, mock_probe, mock_resolver)


@pytest.fixture
def collector(test_config, mock_probe):
    return HealthCollector(test_config, mock_probe)
