"""Protocol interfaces for all nodefleet components."""

from nodefleet.interfaces.executor import CommandExecutor
from nodefleet.interfaces.services import ServiceStateResolver
from nodefleet.interfaces.probe import Probe
from nodefleet.interfaces.store import ReportsStore
from nodefleet.interfaces.metrics import MetricsSource

__all__ = [
    "CommandExecutor",
    "ServiceStateResolver",
    "Probe",
    "ReportsStore",
    "MetricsSource",
]
