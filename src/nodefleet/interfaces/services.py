"""ServiceStateResolver protocol - classifies a unit's service-manager state."""

from __future__ import annotations

from typing import Protocol

from nodefleet.models.snapshots import ServiceState


class ServiceStateResolver(Protocol):
    """Best-effort service state lookup. Never raises."""

    async def resolve(self, unit: str) -> ServiceState:
        ...

    async def restart(self, unit: str) -> tuple[bool, str]:
        """Request a non-blocking restart. Returns (accepted, error)."""
        ...
