import pytest

from portrocket.errors import (
    ConnectionFailedError,
    InvalidConcurrencyError,
    InvalidConfigError,
    InvalidOptionsError,
    InvalidPortRangeError,
    InvalidPortsError,
    InvalidProtocolError,
    InvalidTargetError,
    InvalidTimeoutError,
    RateLimitExceededError,
    RootRequiredError,
    ScanCancelledError,
    ScanInterruptedError,
    ScannerError,
    ScanTimeoutError,
    is_scanner_error,
)

ALL = [
    (InvalidOptionsError, "invalid scan options"),
    (InvalidPortRangeError, "invalid port range"),
    (InvalidTargetError, "invalid target"),
    (InvalidPortsError, "invalid ports"),
    (RootRequiredError, "root privileges required"),
    (ScanTimeoutError, "scan timeout"),
    (ScanCancelledError, "scan cancelled"),
    (ScanInterruptedError, "scan interrupted"),
    (InvalidConfigError, "invalid scanner configuration"),
    (RateLimitExceededError, "rate limit exceeded"),
    (ConnectionFailedError, "connection failed"),
    (InvalidProtocolError, "invalid protocol"),
    (InvalidTimeoutError, "invalid timeout value"),
    (InvalidConcurrencyError, "invalid concurrency value"),
]


@pytest.mark.parametrize("cls,message", ALL)
def test_default_messages(cls, message):
    err = cls()
    assert str(err) == message
    assert is_scanner_error(err) is True


@pytest.mark.parametrize("cls,_message", ALL)
def test_all_are_scanner_errors(cls, _message):
    assert is_scanner_error(cls()) is True


@pytest.mark.parametrize("err", [ValueError("x"), RuntimeError("invalid target"), None])
def test_other_errors_are_not_scanner_errors(err):
    assert is_scanner_error(err) is False


def test_custom_message_kept():
    err = InvalidTargetError("bad host")
    assert str(err) == "bad host"
    assert is_scanner_error(err) is True
    with pytest.raises(ScannerError):
        raise err