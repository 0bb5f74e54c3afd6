"""Synthetic snapshot and daemon-output factories for testing."""

from __future__ import annotations

from nodefleet.models.snapshots import DaemonKind, DaemonSnapshot, ServiceState


def make_snapshot(kind: DaemonKind = DaemonKind.BITCOIN, **overrides) -> DaemonSnapshot:
    """A healthy, fully synced snapshot."""
    fields = dict(
        installed=True,
        service_state=ServiceState.RUNNING,
        rpc_ok=True,
        chain_name="main",
        block_height=850_000,
        header_height=850_000,
        verification_progress=0.9999987,
        in_initial_block_download=False,
        peer_count=10,
    )
    fields.update(overrides)
    return DaemonSnapshot(kind=kind, **fields)


def make_not_installed(kind: DaemonKind = DaemonKind.BITCOIN) -> DaemonSnapshot:
    return DaemonSnapshot(kind=kind)


def make_stopped(kind: DaemonKind = DaemonKind.BITCOIN) -> DaemonSnapshot:
    return DaemonSnapshot(kind=kind, installed=True, service_state=ServiceState.STOPPED)


def make_syncing(
    kind: DaemonKind = DaemonKind.BITCOIN,
    blocks: int = 500_000,
    headers: int = 850_000,
    progress: float = 0.4231,
) -> DaemonSnapshot:
    return make_snapshot(
        kind,
        block_height=blocks,
        header_height=headers,
        verification_progress=progress,
        in_initial_block_download=True,
    )


# ── CLI output documents ───────────────────────────────


def blockchain_info(**overrides) -> dict:
    doc = {
        "chain": "main",
        "blocks": 850_000,
        "headers": 850_000,
        "verificationprogress": 0.9999987,
        "initialblockdownload": False,
        "size_on_disk": 650_000_000_000,
        "pruned": False,
    }
    doc.update(overrides)
    return doc


def network_info(**overrides) -> dict:
    doc = {"version": 270000, "subversion": "/Satoshi:27.0.0/", "connections": 10}
    doc.update(overrides)
    return doc


def lnd_getinfo(**overrides) -> dict:
    doc = {
        "version": "0.18.0-beta commit=v0.18.0-beta",
        "block_height": 850_000,
        "synced_to_chain": True,
        "num_peers": 4,
        "chains": [{"chain": "bitcoin", "network": "mainnet"}],
    }
    doc.update(overrides)
    return doc


def lnd_listpeers(count: int = 4) -> dict:
    return {"peers": [{"pub_key": f"02{i:064x}"} for i in range(count)]}


def forwarding_event(fee: int = 1, amt_out: int = 100_000, fee_msat: int | None = None) -> dict:
    # lncli prints 64-bit integers as strings
    return {
        "fee": str(fee),
        "fee_msat": str(fee * 1000 if fee_msat is None else fee_msat),
        "amt_in": str(amt_out + fee),
        "amt_out": str(amt_out),
        "amt_out_msat": str(amt_out * 1000),
    }
