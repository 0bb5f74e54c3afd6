"""Per-kind probe table: which two queries to issue and how to read them.

The three daemons share one probe shape; they differ only in the CLI
invocation, the two read-only queries, and the fields extracted. That is
data, so it lives in PROBE_SPECS rather than in subclasses.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable

from nodefleet.models.config import DaemonPaths
from nodefleet.models.errors import ParseFailure
from nodefleet.models.snapshots import DaemonKind, DaemonSnapshot

Extractor = Callable[[dict, DaemonSnapshot], None]
ArgsBuilder = Callable[[DaemonPaths, float], list[str]]


@dataclass(frozen=True)
class ProbeSpec:
    build_args: ArgsBuilder
    queries: tuple[tuple[str, ...], tuple[str, ...]]  # (chain/sync, network/peers)
    extractors: tuple[Extractor, Extractor]


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_json(text: str) -> dict:
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseFailure(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(doc, dict):
        raise ParseFailure(f"expected a JSON object, got {type(doc).__name__}")
    return doc


def _get(doc: dict, key: str, types: type | tuple[type, ...]) -> Any:
    """Optional typed field; absent or null -> None, wrong type -> ParseFailure."""
    value = doc.get(key)
    if value is None:
        return None
    # bool is an int subclass; never accept it for numeric fields
    if isinstance(value, bool) and bool not in (types if isinstance(types, tuple) else (types,)):
        raise ParseFailure(f"{key}: expected {types}, got bool")
    if not isinstance(value, types):
        raise ParseFailure(f"{key}: expected {types}, got {type(value).__name__}")
    return value


def _float(doc: dict, key: str) -> float | None:
    value = _get(doc, key, (int, float))
    return float(value) if value is not None else None


# ---------------------------------------------------------------------------
# bitcoind / elementsd
# ---------------------------------------------------------------------------


def bitcoin_cli_args(paths: DaemonPaths, timeout: float) -> list[str]:
    return [
        f"-conf={paths.conf}",
        f"-datadir={paths.data_dir}",
        "-rpcwait",
        f"-rpcwaittimeout={max(1, int(timeout))}",
    ]


def extract_blockchain_info(doc: dict, snap: DaemonSnapshot) -> None:
    snap.chain_name = _get(doc, "chain", str)
    snap.block_height = _get(doc, "blocks", int)
    snap.header_height = _get(doc, "headers", int)
    snap.verification_progress = _float(doc, "verificationprogress")
    snap.in_initial_block_download = _get(doc, "initialblockdownload", bool)
    snap.disk_bytes_used = _get(doc, "size_on_disk", int)
    if snap.kind == DaemonKind.BITCOIN:
        snap.pruned = _get(doc, "pruned", bool)
        snap.prune_height = _get(doc, "pruneheight", int)
        snap.prune_target_size = _get(doc, "prune_target_size", int)


def extract_network_info(doc: dict, snap: DaemonSnapshot) -> None:
    snap.version = _get(doc, "version", int)
    snap.version_string = _get(doc, "subversion", str)
    snap.peer_count = _get(doc, "connections", int)


# ---------------------------------------------------------------------------
# lnd
# ---------------------------------------------------------------------------


def lncli_args(paths: DaemonPaths, timeout: float) -> list[str]:
    return [f"--lnddir={paths.data_dir}", f"--network={paths.network}"]


def extract_lnd_info(doc: dict, snap: DaemonSnapshot) -> None:
    chains = _get(doc, "chains", list) or []
    if chains and isinstance(chains[0], dict):
        snap.chain_name = _get(chains[0], "network", str)
    snap.block_height = _get(doc, "block_height", int)
    synced = _get(doc, "synced_to_chain", bool)
    if synced is not None:
        snap.in_initial_block_download = not synced
    snap.version_string = _get(doc, "version", str)
    snap.peer_count = _get(doc, "num_peers", int)


def extract_lnd_peers(doc: dict, snap: DaemonSnapshot) -> None:
    peers = _get(doc, "peers", list)
    snap.peer_count = len(peers) if peers is not None else 0


PROBE_SPECS: dict[DaemonKind, ProbeSpec] = {
    DaemonKind.BITCOIN: ProbeSpec(
        build_args=bitcoin_cli_args,
        queries=(("getblockchaininfo",), ("getnetworkinfo",)),
        extractors=(extract_blockchain_info, extract_network_info),
    ),
    DaemonKind.ELEMENTS: ProbeSpec(
        build_args=bitcoin_cli_args,
        queries=(("getblockchaininfo",), ("getnetworkinfo",)),
        extractors=(extract_blockchain_info, extract_network_info),
    ),
    DaemonKind.LND: ProbeSpec(
        build_args=lncli_args,
        queries=(("getinfo",), ("listpeers",)),
        extractors=(extract_lnd_info, extract_lnd_peers),
    ),
}
