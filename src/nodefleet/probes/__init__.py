"""Daemon probes and sidechain linkage resolution."""

from nodefleet.probes.daemon import DaemonProbe
from nodefleet.probes.linkage import local_ready, read_linkage
from nodefleet.probes.specs import PROBE_SPECS, ProbeSpec

__all__ = ["DaemonProbe", "local_ready", "read_linkage", "PROBE_SPECS", "ProbeSpec"]
