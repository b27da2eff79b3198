import ipaddress

import pytest

from portrocket.netutils import parse_port_range, resolve_host


@pytest.mark.parametrize(
    "text,expected",
    [
        ("80", [80]),
        ("80-82", [80, 81, 82]),
        ("80,443,8080", [80, 443, 8080]),
        ("80-82,443,8080-8081", [80, 81, 82, 443, 8080, 8081]),
        ("80 - 82", [80, 81, 82]),
    ],
)
def test_parse_port_range(text, expected):
    assert parse_port_range(text) == expected


@pytest.mark.parametrize("text", ["abc", "80-", "82-80", "0", "65536"])
def test_parse_port_range_errors(text):
    with pytest.raises(ValueError):
        parse_port_range(text)


def test_resolve_ip_returned_unchanged():
    assert resolve_host("127.0.0.1") == "127.0.0.1"


def test_resolve_localhost():
    got = resolve_host("localhost")
    assert ipaddress.ip_address(got).is_loopback


@pytest.mark.parametrize("host", ["invalid.host.name", ""])
def test_resolve_errors(host):
    with pytest.raises(OSError):
        resolve_host(host)