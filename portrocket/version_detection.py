"""Protocol-aware version detection for common TCP services."""

from __future__ import annotations

import re
import socket

from .errors import ConnectionFailedError
from .types import ServiceInfo

_HTTP_SERVER_RE = re.compile(r"(?i)Server: ([^\r\n]+)")
_SSH_VERSION_RE = re.compile(r"^SSH-(\d+\.\d+)-(\S+)", re.ASCII)
_FTP_VERSION_RE = re.compile(r"^220[ -]([^\r\n]+)")
_SMTP_VERSION_RE = re.compile(r"^220[ -]([^\r\n]+)")
_MYSQL_VERSION_RE = re.compile(r"([.\d]+)", re.ASCII)


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _connect(target: str, port: int, timeout: float, what: str) -> socket.socket:
    try:
        return socket.create_connection((target, port), timeout=timeout or None)
    except OSError as exc:
        raise ConnectionFailedError(f"{what} connection failed: {exc}") from exc


def _read(sock: socket.socket, size: int, timeout: float) -> bytes:
    """Read once from ``sock``; EOFError if the peer closed without data."""
    sock.settimeout(timeout or None)
    data = sock.recv(size)
    if not data:
        raise EOFError("connection closed by peer")
    return data


def _read_line(sock: socket.socket, timeout: float) -> bytes:
    """Read up to and including the first newline."""
    sock.settimeout(timeout or None)
    buf = bytearray()
    while b"\n" not in buf:
        chunk = sock.recv(4096)
        if not chunk:
            raise EOFError("connection closed before end of line")
        buf += chunk
    return bytes(buf[: buf.index(b"\n") + 1])


def detect_service_version(target: str, port: int, timeout: float) -> ServiceInfo:
    """Pick a detector by well-known port, falling back to banner grabbing."""
    if port == 22:
        return detect_ssh(target, port, timeout)
    if port == 21:
        return detect_ftp(target, port, timeout)
    if port in (25, 587):
        return detect_smtp(target, port, timeout)
    if port in (80, 443, 8080, 8443):
        return detect_http(target, port, timeout)
    if port == 3306:
        return detect_mysql(target, port, timeout)
    return grab_banner(target, port, timeout)


def grab_banner(target: str, port: int, timeout: float) -> ServiceInfo:
    """Read whatever the service sends on connect and guess its name."""
    info = ServiceInfo(name="unknown")
    with _connect(target, port, timeout, "banner") as conn:
        try:
            data = _read(conn, 4096, timeout)
        except (OSError, EOFError):
            return info

    banner = _decode(data)
    info.full_banner = banner
    info.fingerprint = data.hex()
    first_line = banner.split("\n")[0].strip()
    if first_line:
        info.extra_info = first_line
        for marker, name in (("SSH", "ssh"), ("FTP", "ftp"), ("SMTP", "smtp"), ("HTTP", "http")):
            if marker in first_line:
                info.name = name
                break
    return info


def detect_http(target: str, port: int, timeout: float) -> ServiceInfo:
    """Send a HEAD request and parse the Server header."""
    request = (
        f"HEAD / HTTP/1.1\r\nHost: {target}\r\n"
        "User-Agent: Go-Port-Rocket/1.0\r\nConnection: close\r\n\r\n"
    )
    with _connect(target, port, timeout, "HTTP") as conn:
        try:
            conn.settimeout(timeout or None)
            conn.sendall(request.encode())
        except OSError as exc:
            raise ConnectionFailedError(f"failed to send HTTP request: {exc}") from exc
        try:
            data = _read(conn, 4096, timeout)
        except (OSError, EOFError) as exc:
            raise ConnectionFailedError(f"failed to read HTTP response: {exc}") from exc

    response = _decode(data)
    info = ServiceInfo(name="http", full_banner=response)
    match = _HTTP_SERVER_RE.search(response)
    if match:
        server = match.group(1)
        info.version = server
        parts = server.split(" ")
        info.product = parts[0]
        if len(parts) > 1:
            info.extra_info = " ".join(parts[1:])
    return info


def detect_ssh(target: str, port: int, timeout: float) -> ServiceInfo:
    """Read the SSH identification string."""
    with _connect(target, port, timeout, "SSH") as conn:
        try:
            data = _read(conn, 1024, timeout)
        except (OSError, EOFError) as exc:
            raise ConnectionFailedError(f"failed to read SSH banner: {exc}") from exc

    banner = _decode(data)
    info = ServiceInfo(name="ssh", full_banner=banner)
    match = _SSH_VERSION_RE.search(banner)
    if match:
        info.version = match.group(1)
        info.product = match.group(2)
    return info


def _detect_220_greeting(
    target: str, port: int, timeout: float, name: str, label: str, pattern: re.Pattern[str]
) -> ServiceInfo:
    with _connect(target, port, timeout, label) as conn:
        try:
            line = _read_line(conn, timeout)
        except (OSError, EOFError) as exc:
            raise ConnectionFailedError(f"failed to read {label} banner: {exc}") from exc

    banner = _decode(line)
    info = ServiceInfo(name=name, full_banner=banner)
    match = pattern.search(banner)
    if match:
        server = match.group(1)
        info.extra_info = server
        fields = server.split()
        if fields:
            info.product = fields[0]
            if len(fields) > 1:
                info.version = fields[1]
    return info


def detect_ftp(target: str, port: int, timeout: float) -> ServiceInfo:
    """Parse the FTP 220 greeting."""
    return _detect_220_greeting(target, port, timeout, "ftp", "FTP", _FTP_VERSION_RE)


def detect_smtp(target: str, port: int, timeout: float) -> ServiceInfo:
    """Parse the SMTP 220 greeting."""
    return _detect_220_greeting(target, port, timeout, "smtp", "SMTP", _SMTP_VERSION_RE)


def detect_mysql(target: str, port: int, timeout: float) -> ServiceInfo:
    """Parse the server version from the MySQL handshake packet."""
    with _connect(target, port, timeout, "MySQL") as conn:
        try:
            data = _read(conn, 1024, timeout)
        except (OSError, EOFError) as exc:
            raise ConnectionFailedError(f"failed to read MySQL handshake: {exc}") from exc

    info = ServiceInfo(name="mysql", full_banner=data.hex())
    if len(data) > 5:
        protocol_version = data[4]
        version_bytes = data[5:]
        null_index = version_bytes.find(b"\x00")
        if null_index > 0:
            version = _decode(version_bytes[:null_index])
            info.version = version
            match = _MYSQL_VERSION_RE.search(version)
            if match:
                info.version = match.group(1)
            info.extra_info = f"Protocol: {protocol_version}"
    return info