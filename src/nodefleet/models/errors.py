"""Error taxonomy and exception types."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_INSTALLED = "not_installed"  # legitimate absence
    UNREACHABLE = "unreachable"  # soft
    TIMEOUT = "timeout"  # soft, retryable
    PRECONDITION_NOT_MET = "precondition_not_met"  # user-correctable
    CONFIG_WRITE_FAILED = "config_write_failed"
    RESTART_FAILED = "restart_failed"
    PARSE_FAILURE = "parse_failure"


class NodefleetError(Exception):
    """Base class for manager errors."""

    kind: ErrorKind | None = None


class ConfigError(NodefleetError):
    """The manager's own configuration is invalid."""


class ConfigFileError(NodefleetError):
    """A daemon config file could not be read or replaced."""

    kind = ErrorKind.CONFIG_WRITE_FAILED


class ParseFailure(NodefleetError):
    """A daemon returned output that did not have the expected shape."""

    kind = ErrorKind.PARSE_FAILURE


class ReportsStoreError(NodefleetError):
    """The reports sink rejected an operation."""


class MetricsUnavailable(NodefleetError):
    """A metrics source could not produce the day's figures."""

    kind = ErrorKind.UNREACHABLE
