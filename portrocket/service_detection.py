"""Service name lookup and banner/probe based service detection."""

from __future__ import annotations

import re
import socket
import time
from dataclasses import dataclass

from .types import ServiceInfo

COMMON_SERVICES: dict[int, str] = dict(
    [
        (21, "FTP"), (22, "SSH"), (23, "Telnet"), (25, "SMTP"), (53, "DNS"),
        (80, "HTTP"), (110, "POP3"), (111, "RPC"), (135, "RPC"), (139, "NetBIOS"),
        (143, "IMAP"), (443, "HTTPS"), (445, "SMB"), (993, "IMAPS"), (995, "POP3S"),
        (1723, "PPTP"), (3306, "MySQL"), (3389, "RDP"), (5900, "VNC"),
        (8080, "HTTP-Proxy"),
    ]
)

_DESCRIPTION_GROUPS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("网页服务器", ("HTTP",)),
    ("加密网页服务器", ("HTTPS",)),
    ("安全远程登录", ("SSH",)),
    ("文件传输服务", ("FTP",)),
    ("电子邮件发送服务", ("SMTP",)),
    ("电子邮件接收服务", ("POP3", "IMAP")),
    ("域名服务", ("DNS",)),
    ("数据库服务", ("MySQL", "PostgreSQL", "MongoDB")),
    ("缓存服务", ("Redis", "Memcached")),
    ("远程桌面服务", ("RDP", "VNC")),
    ("远程登录服务", ("Telnet",)),
    ("文件共享服务", ("SMB",)),
    ("网络文件系统", ("NFS",)),
    ("目录访问服务", ("LDAP",)),
    ("网络管理服务", ("SNMP",)),
)

SERVICE_DESCRIPTIONS: dict[str, str] = {
    label.lower(): f"{label} {text}"
    for text, labels in _DESCRIPTION_GROUPS
    for label in labels
}

UNKNOWN_SERVICE = "未知服务"


@dataclass
class ServiceDetectionOptions:
    """Options for service detection. Timeout is in seconds."""

    enable_version_detection: bool = True
    version_intensity: int = 5
    enable_os_detection: bool = False
    banner_grab: bool = True
    timeout: float = 5.0


@dataclass(frozen=True)
class ServiceProbe:
    """A request to send and a pattern to match in the reply."""

    service_name: str
    request: bytes
    match_pattern: re.Pattern[str]


_MONGO_REQUEST = b"\x3f" + bytes(11) + b"\xd4\x07" + bytes(18)
_PG_REQUEST = bytes([0, 0, 0, 8, 4, 0xD2, 0x16, 0x2F])

_PROBES: tuple[ServiceProbe, ...] = tuple(
    ServiceProbe(name, request, re.compile(pattern))
    for name, request, pattern in (
        ("http", b"HEAD / HTTP/1.0\r\n\r\n", r"Server: ([^\r\n]+)"),
        ("ssh", b"", r"SSH-([0-9.]+)-([^\r\n]+)"),
        ("ftp", b"", r"([^\r\n]+) FTP"),
        ("smtp", b"EHLO localhost\r\n", r"([^\r\n]+) ESMTP"),
        ("mysql", b"", r"([0-9.]+)-MariaDB"),
        ("redis", b"INFO\r\n", r"redis_version:([0-9.]+)"),
        ("mongodb", _MONGO_REQUEST, r"mongodb([0-9.]+)"),
        ("postgresql", _PG_REQUEST, r"PostgreSQL ([0-9.]+)"),
        ("telnet", b"", r"([^\r\n]+) telnet"),
        ("https", b"", r"TLS ([0-9.]+)"),
    )
)

_VERSION_PATTERNS = tuple(
    re.compile(p)
    for p in (
        r"([a-zA-Z]+)[/ ]([0-9.]+)",
        r"version[: ]([0-9.]+)",
        r"([0-9]+\.[0-9]+\.[0-9]+)",
    )
)


def get_service_description(service_name: str) -> str:
    """Return the description of a service, case-insensitively."""
    return SERVICE_DESCRIPTIONS.get(service_name.lower(), UNKNOWN_SERVICE)


def get_service_probes(service_name: str, intensity: int) -> list[ServiceProbe]:
    """Return the first ``intensity`` probes; the service name does not filter them."""
    if intensity < 0:
        raise ValueError(f"version intensity must not be negative: {intensity}")
    return list(_PROBES[:intensity])


def parse_version_from_banner(info: ServiceInfo) -> None:
    """Fill ``info.product`` and ``info.version`` from ``info.full_banner``."""
    if not info.full_banner:
        return
    for pattern in _VERSION_PATTERNS:
        match = pattern.search(info.full_banner)
        if match is None:
            continue
        if not info.product and pattern.groups >= 2:
            info.product = match.group(1) or ""
            info.version = match.group(2) or ""
        else:
            info.version = match.group(1) or ""
        return


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _read_line(sock: socket.socket, timeout: float) -> bytes | None:
    """Read up to and including a newline; None on timeout, error or EOF."""
    deadline = time.monotonic() + timeout
    buf = bytearray()
    try:
        while b"\n" not in buf:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            sock.settimeout(remaining)
            chunk = sock.recv(4096)
            if not chunk:
                return None
            buf += chunk
    except OSError:
        return None
    return bytes(buf[: buf.index(b"\n") + 1])


def detect_service(
    target: str, port: int, opts: ServiceDetectionOptions
) -> ServiceInfo:
    """Connect to ``target:port`` and identify the service by banner and probes.

    Raises OSError if the connection cannot be made.
    """
    info = ServiceInfo(name=COMMON_SERVICES.get(port, ""), port=port)

    with socket.create_connection((target, port), timeout=opts.timeout or None) as conn:
        if opts.banner_grab:
            line = _read_line(conn, opts.timeout)
            if line is not None:
                info.full_banner = _decode(line).strip()
                parse_version_from_banner(info)

        if opts.enable_version_detection:
            for probe in get_service_probes(info.name, opts.version_intensity):
                try:
                    conn.settimeout(opts.timeout)
                    conn.sendall(probe.request)
                    data = conn.recv(1024)
                except OSError:
                    continue
                if not data:
                    continue
                match = probe.match_pattern.search(_decode(data))
                if match is not None and probe.match_pattern.groups >= 1:
                    info.product = match.group(1) or ""
                    if probe.match_pattern.groups >= 2:
                        info.version = match.group(2) or ""
                    break

    return info