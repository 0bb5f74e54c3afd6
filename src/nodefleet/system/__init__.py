"""Host integration: command execution, systemd state, daemon config files."""

from nodefleet.system.conffile import ConfFile, atomic_write
from nodefleet.system.executor import HostCommandExecutor
from nodefleet.system.services import SystemdStateResolver

__all__ = ["ConfFile", "atomic_write", "HostCommandExecutor", "SystemdStateResolver"]
