"""Helpers for port lists and host names."""

from __future__ import annotations

import ipaddress
import re
import socket

_INT_RE = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    return int(text)


def parse_port_range(ports_str: str) -> list[int]:
    """Parse ``"1-1000"`` or ``"22,80,443"`` into a list of ports.

    Every port must lie in 1-65535; otherwise ValueError is raised.
    """
    ports: list[int] = []
    for part in (p.strip() for p in ports_str.split(",")):
        if "-" in part:
            bounds = part.split("-")
            if len(bounds) != 2:
                raise ValueError(f"invalid port range format: {part}")
            try:
                start = _atoi(bounds[0].strip())
            except ValueError as exc:
                raise ValueError(f"invalid start port in range {part}: {exc}") from None
            try:
                end = _atoi(bounds[1].strip())
            except ValueError as exc:
                raise ValueError(f"invalid end port in range {part}: {exc}") from None
            if start > end:
                raise ValueError(
                    f"start port cannot be greater than end port in range {part}"
                )
            if start < 1 or end > 65535:
                raise ValueError(f"ports must be between 1 and 65535 in range {part}")
            ports.extend(range(start, end + 1))
        else:
            try:
                port = _atoi(part)
            except ValueError:
                raise ValueError(f"invalid port number: {part}") from None
            if port < 1 or port > 65535:
                raise ValueError(f"port {port} is out of range (1-65535)")
            ports.append(port)
    return ports


def resolve_host(host: str) -> str:
    """Return ``host`` if it is an IP address, else its first resolved address.

    Raises OSError when the name cannot be resolved.
    """
    try:
        ipaddress.ip_address(host)
        return host
    except ValueError:
        pass
    if not host:
        raise OSError("failed to resolve host: empty host name")
    try:
        infos = socket.getaddrinfo(host, None)
    except (OSError, UnicodeError) as exc:
        raise OSError(f"failed to resolve host {host}: {exc}") from exc
    if not infos:
        raise OSError(f"no IP addresses found for host {host}")
    return str(infos[0][4][0])