"""Health aggregation and collection."""

from nodefleet.health.aggregator import aggregate, assess
from nodefleet.health.collector import FleetHealth, HealthCollector, safe_to_sample

__all__ = ["aggregate", "assess", "FleetHealth", "HealthCollector", "safe_to_sample"]
