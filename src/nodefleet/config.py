"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import logging
import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from nodefleet.models.config import DaemonPaths, ManagerConfig, RPCEndpoint
from nodefleet.models.errors import ConfigError
from nodefleet.models.snapshots import DaemonKind

log = logging.getLogger(__name__)

PLACEHOLDER_MARKER = "CHANGE_ME"


def is_placeholder(value: str | None) -> bool:
    """True for values an installer left unfilled."""
    if value is None:
        return True
    value = value.strip()
    return not value or PLACEHOLDER_MARKER in value


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "NODEFLEET_",
) -> ManagerConfig:
    """Load manager configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (NODEFLEET_PORT, etc.)
        2. TOML config file
        3. Defaults from ManagerConfig
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                try:
                    raw = tomllib.load(f)
                except tomllib.TOMLDecodeError as exc:
                    raise ConfigError(f"{p}: {exc}") from exc

    cfg = ManagerConfig()

    # ── Manager section ────────────────────────────────────
    manager = raw.get("manager", {})
    if v := manager.get("host"):
        cfg.host = str(v)
    if v := manager.get("port"):
        cfg.port = int(v)
    if v := manager.get("log_level"):
        cfg.log_level = str(v)
    if "use_sudo" in manager:
        cfg.use_sudo = bool(manager["use_sudo"])
    if "honor_placeholders" in manager:
        cfg.honor_placeholders = bool(manager["honor_placeholders"])
    if "daemons" in manager:
        cfg.enabled_daemons = _parse_daemons(manager["daemons"])
    for name in ("probe_timeout", "command_timeout", "status_timeout", "restart_timeout"):
        if v := manager.get(name):
            setattr(cfg, name, float(v))

    # ── Daemon sections ────────────────────────────────────
    for kind in DaemonKind:
        _apply_paths(cfg.paths(kind), raw.get(kind.value, {}))

    # ── Mainchain section ──────────────────────────────────
    mainchain = raw.get("mainchain", {})
    _apply_endpoint(cfg.mainchain.local, mainchain.get("local", {}))
    _apply_endpoint(cfg.mainchain.remote, mainchain.get("remote", {}))

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("min_prune_gb"):
        cfg.min_prune_gb = float(v)

    # ── Reports section ────────────────────────────────────
    reports = raw.get("reports", {})
    if "enabled" in reports:
        cfg.reports.enabled = bool(reports["enabled"])
    if v := reports.get("dsn"):
        cfg.reports.dsn = str(v)
    if v := reports.get("interval"):
        cfg.reports.interval = int(v)

    # ── Environment variable overrides (highest priority) ──
    if host := os.environ.get(f"{env_prefix}HOST"):
        cfg.host = host
    if port := os.environ.get(f"{env_prefix}PORT"):
        cfg.port = int(port)
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level
    if dsn := os.environ.get(f"{env_prefix}REPORTS_DSN"):
        cfg.reports.dsn = dsn
    if user := os.environ.get(f"{env_prefix}MAINCHAIN_REMOTE_USER"):
        cfg.mainchain.remote.user = user
    if password := os.environ.get(f"{env_prefix}MAINCHAIN_REMOTE_PASSWORD"):
        cfg.mainchain.remote.password = password
    if user := os.environ.get(f"{env_prefix}MAINCHAIN_LOCAL_USER"):
        cfg.mainchain.local.user = user
    if password := os.environ.get(f"{env_prefix}MAINCHAIN_LOCAL_PASSWORD"):
        cfg.mainchain.local.password = password

    _resolve_placeholders(cfg)

    if cfg.reports.dsn:
        cfg.reports.dsn = str(Path(cfg.reports.dsn).expanduser())
    else:
        cfg.reports.enabled = False

    return cfg


def _parse_daemons(values) -> list[DaemonKind]:
    try:
        kinds = {DaemonKind(str(v)) for v in values}
    except ValueError as exc:
        raise ConfigError(f"unknown daemon in [manager] daemons: {exc}") from exc
    # Keep enumeration order regardless of how the file lists them
    return [k for k in DaemonKind if k in kinds]


def _apply_paths(paths: DaemonPaths, section: dict) -> None:
    for name in ("binary", "cli", "conf", "data_dir", "unit", "user", "group", "network"):
        if v := section.get(name):
            setattr(paths, name, str(v))


def _apply_endpoint(endpoint: RPCEndpoint, section: dict) -> None:
    if v := section.get("host"):
        endpoint.host = str(v)
    if v := section.get("port"):
        endpoint.port = int(v)
    if v := section.get("user"):
        endpoint.user = str(v)
    if v := section.get("password"):
        endpoint.password = str(v)


def _resolve_placeholders(cfg: ManagerConfig) -> None:
    """Blank out values an installer left as placeholders.

    With honor_placeholders set, the operator's literal values are kept.
    """
    if cfg.honor_placeholders:
        return

    if cfg.reports.dsn and is_placeholder(cfg.reports.dsn):
        log.warning("Reports DSN looks like a placeholder; reports disabled")
        cfg.reports.dsn = ""

    for label, endpoint in (("local", cfg.mainchain.local), ("remote", cfg.mainchain.remote)):
        if endpoint.user and is_placeholder(endpoint.user):
            log.warning("Mainchain %s RPC user looks like a placeholder; ignoring", label)
            endpoint.user = ""
        if endpoint.password and is_placeholder(endpoint.password):
            log.warning("Mainchain %s RPC password looks like a placeholder; ignoring", label)
            endpoint.password = ""
