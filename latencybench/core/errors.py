"""
Error taxonomy and user-facing classification.

Configuration and connectivity errors abort a run before any measurement;
query errors abort the remaining iterations; cleanup errors are logged and
never reach the caller.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

import asyncpg


class LatencyBenchError(Exception):
    """Base class for errors raised by the benchmark service."""


class ConfigurationError(LatencyBenchError):
    """
    The connection descriptor is missing or unusable.

    ``is_override`` marks a descriptor supplied by the caller rather than the
    server's own DATABASE_URL; only the former is a client error.
    """

    def __init__(self, message: str = "", *, is_override: bool = False):
        super().__init__(message)
        self.is_override = is_override


class MissingConfigurationError(ConfigurationError):
    pass


class InvalidConnectionStringError(ConfigurationError):
    pass


class MissingCredentialError(ConfigurationError):
    pass


class ConnectivityError(LatencyBenchError):
    """Network, authentication or TLS failure while opening connections."""


class QueryError(LatencyBenchError):
    """A statement failed while the benchmark was running."""


class CleanupError(LatencyBenchError):
    """Benchmark rows could not be removed. Internal only."""


class ProgressChannelClosed(LatencyBenchError):
    """The consumer of a progress stream has gone away."""


class ErrorKind(str, Enum):
    MISSING_CONFIGURATION = "missing_configuration"
    INVALID_CONNECTION_STRING = "invalid_connection_string"
    MISSING_CREDENTIAL = "missing_credential"
    CONNECTIVITY = "connectivity"
    QUERY = "query"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


# Driver messages seen when the password is absent or not passed as a string.
_CREDENTIAL_SIGNATURE = re.compile(
    r"client password must be a string"
    r"|password is required"
    r"|no password supplied"
    r"|empty password",
    re.IGNORECASE,
)

CREDENTIAL_HINT = (
    "Invalid Postgres credentials: password is missing or not a string. "
    "Check connection string and URL-encode special characters."
)


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    kind: ErrorKind
    message: str
    status_code: int = 500


def _config_status(exc: ConfigurationError) -> int:
    return 400 if exc.is_override else 500


def _kind_and_status(exc: BaseException) -> tuple[ErrorKind, int]:
    if isinstance(exc, MissingConfigurationError):
        return ErrorKind.MISSING_CONFIGURATION, 500
    if isinstance(exc, InvalidConnectionStringError):
        return ErrorKind.INVALID_CONNECTION_STRING, _config_status(exc)
    if isinstance(exc, MissingCredentialError):
        return ErrorKind.MISSING_CREDENTIAL, _config_status(exc)
    if isinstance(exc, ConnectivityError):
        return ErrorKind.CONNECTIVITY, 503
    if isinstance(exc, ProgressChannelClosed):
        return ErrorKind.CANCELLED, 499
    if isinstance(exc, (QueryError, asyncpg.PostgresError)):
        return ErrorKind.QUERY, 500
    if isinstance(exc, (OSError, asyncpg.InterfaceError)):
        return ErrorKind.CONNECTIVITY, 503
    return ErrorKind.INTERNAL, 500


def friendly_message(exc: BaseException) -> str:
    """
    Message to show for ``exc``.

    The known credential-format failure is rewritten into an actionable hint;
    everything else passes through verbatim.
    """
    msg = str(exc) or exc.__class__.__name__
    if _CREDENTIAL_SIGNATURE.search(msg):
        return CREDENTIAL_HINT
    return msg


def classify_error(exc: BaseException) -> ClassifiedError:
    kind, status_code = _kind_and_status(exc)
    return ClassifiedError(
        kind=kind, message=friendly_message(exc), status_code=status_code
    )
