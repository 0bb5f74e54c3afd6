"""nodefleet - control plane for a bitcoind, elementsd and lnd host."""

__version__ = "0.1.0"
