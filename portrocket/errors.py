"""Exceptions raised by the scanners."""

from __future__ import annotations


class ScannerError(Exception):
    """Base class for every scanner-specific error."""

    default_message = "scanner error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidOptionsError(ScannerError):
    """Invalid scan options were provided."""

    default_message = "invalid scan options"


class InvalidPortRangeError(ScannerError):
    """An invalid port range was provided."""

    default_message = "invalid port range"


class InvalidTargetError(ScannerError):
    """An invalid target was provided."""

    default_message = "invalid target"


class InvalidPortsError(ScannerError):
    """Invalid ports were provided."""

    default_message = "invalid ports"


class RootRequiredError(ScannerError):
    """Root privileges are required for the operation."""

    default_message = "root privileges required"


class ScanTimeoutError(ScannerError):
    """A scan operation timed out."""

    default_message = "scan timeout"


class ScanCancelledError(ScannerError):
    """A scan was cancelled."""

    default_message = "scan cancelled"


class ScanInterruptedError(ScannerError):
    """A scan was interrupted."""

    default_message = "scan interrupted"


class InvalidConfigError(ScannerError):
    """The scanner configuration is invalid."""

    default_message = "invalid scanner configuration"


class RateLimitExceededError(ScannerError):
    """The rate limit was exceeded."""

    default_message = "rate limit exceeded"


class ConnectionFailedError(ScannerError):
    """A connection attempt failed."""

    default_message = "connection failed"


class InvalidProtocolError(ScannerError):
    """An invalid protocol was specified."""

    default_message = "invalid protocol"


class InvalidTimeoutError(ScannerError):
    """An invalid timeout value was provided."""

    default_message = "invalid timeout value"


class InvalidConcurrencyError(ScannerError):
    """An invalid concurrency value was provided."""

    default_message = "invalid concurrency value"


def is_scanner_error(err: BaseException | None) -> bool:
    """Return True if ``err`` is one of the scanner-specific errors."""
    return isinstance(err, ScannerError)