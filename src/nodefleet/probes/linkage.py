"""Sidechain mainchain linkage, read from elements.conf."""

from __future__ import annotations

import logging

from nodefleet.models.config import MainchainConfig, RPCEndpoint
from nodefleet.models.errors import ConfigFileError
from nodefleet.models.snapshots import DaemonSnapshot, MainchainLinkage, MainchainSource
from nodefleet.system.conffile import ConfFile

log = logging.getLogger(__name__)

HOST_KEY = "mainchainrpchost"
PORT_KEY = "mainchainrpcport"
USER_KEY = "mainchainrpcuser"
PASSWORD_KEY = "mainchainrpcpassword"

LOOPBACK_HOSTS = {"127.0.0.1", "localhost", "::1"}

# What elementsd assumes when the directive is missing
ELEMENTSD_DEFAULT_HOST = "127.0.0.1"
ELEMENTSD_DEFAULT_CHAIN = "liquidv1"


def classify_source(host: str, port: int, mainchain: MainchainConfig) -> MainchainSource:
    local_hosts = LOOPBACK_HOSTS | {mainchain.local.host}
    if host in local_hosts and port == mainchain.local.port:
        return MainchainSource.LOCAL
    return MainchainSource.REMOTE


def endpoint_for(source: MainchainSource, mainchain: MainchainConfig) -> RPCEndpoint:
    return mainchain.local if source == MainchainSource.LOCAL else mainchain.remote


def load_sidechain_conf(conf_path: str) -> ConfFile:
    """elements.conf with liquidv1 as the section in force when chain= is absent."""
    return ConfFile.load(conf_path, default_section=ELEMENTSD_DEFAULT_CHAIN)


def read_linkage(conf_path: str, mainchain: MainchainConfig) -> MainchainLinkage:
    """Linkage as configured on disk; local_ready is filled in by callers."""
    try:
        conf = load_sidechain_conf(conf_path)
    except ConfigFileError as exc:
        log.warning("Cannot read sidechain config: %s", exc)
        conf = ConfFile(conf_path, default_section=ELEMENTSD_DEFAULT_CHAIN)

    host = conf.get(HOST_KEY) or ELEMENTSD_DEFAULT_HOST
    port = conf.get_int(PORT_KEY)
    if port is None:
        # No explicit port: assume the default of whichever backend the host names
        guess = classify_source(host, mainchain.local.port, mainchain)
        port = endpoint_for(guess, mainchain).port
    source = classify_source(host, port, mainchain)
    return MainchainLinkage(source=source, rpc_host=host, rpc_port=port)


def local_ready(base: DaemonSnapshot | None) -> bool:
    """True when the local base-chain node can serve as a sidechain backend."""
    return base is not None and base.installed and base.fully_synced
