"""Probe protocol - snapshots one daemon."""

from __future__ import annotations

from typing import Protocol

from nodefleet.models.snapshots import DaemonKind, DaemonSnapshot


class Probe(Protocol):
    """Builds a fresh DaemonSnapshot for one daemon kind."""

    async def probe(self, kind: DaemonKind) -> DaemonSnapshot:
        ...
