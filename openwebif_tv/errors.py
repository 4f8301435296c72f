"""Exception hierarchy for the OpenWebIf bridge.

Transport errors (``Unreachable``, ``HttpError``, ``ParseError``) are raised
by the API client and handled at the scheduler's task boundary or returned to
command callers. ``ConfigError`` is fatal at startup. ``ReconciliationWarning``
is never raised out of reconciliation; it is published as a warning event.
"""

from __future__ import annotations


class OpenWebIfError(Exception):
    """Base class for all bridge errors."""


class Unreachable(OpenWebIfError):
    """The TCP pre-check failed: device off or network down.

    Attributes:
        host: Device host that was probed
        port: Device port that was probed
    """

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        super().__init__(f"Device {host}:{port} is not reachable")


class HttpError(OpenWebIfError):
    """The device answered with a failure status or the transport broke.

    Attributes:
        path: API path requested
        status_code: HTTP status, ``None`` for transport failures
    """

    def __init__(self, path: str, reason: str, status_code: int | None = None) -> None:
        self.path = path
        self.status_code = status_code
        self.reason = reason
        if status_code is None:
            super().__init__(f"Request {path} failed: {reason}")
        else:
            super().__init__(f"Request {path} failed with HTTP {status_code}: {reason}")


class ParseError(OpenWebIfError):
    """The device answered with a body that is not valid JSON (or not the expected shape)."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid response from {path}: {reason}")


class ConfigError(OpenWebIfError):
    """Missing or invalid configuration, or required device data unavailable."""


class ReconciliationWarning(UserWarning):
    """A bouquet or channel entry was skipped during input reconciliation."""
