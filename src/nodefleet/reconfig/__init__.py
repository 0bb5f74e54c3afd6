"""Guarded reconfiguration of supervised daemons."""

from nodefleet.reconfig.orchestrator import ReconfigurationOrchestrator, storage_from_conf

__all__ = ["ReconfigurationOrchestrator", "storage_from_conf"]
