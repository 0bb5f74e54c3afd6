"""HTTP API served by the manager."""

from nodefleet.api.server import FleetAPI, transition_status

__all__ = ["FleetAPI", "transition_status"]
