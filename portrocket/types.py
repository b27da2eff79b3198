"""Core data types shared by the scanners."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .service_detection import ServiceDetectionOptions

_INT_RE = re.compile(r"[+-]?[0-9]+")


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    return int(text)


class ScanType(str, Enum):
    """Kind of port scan."""

    TCP = "tcp"
    SYN = "syn"
    FIN = "fin"
    NULL = "null"
    XMAS = "xmas"
    ACK = "ack"
    UDP = "udp"
    MAIMON = "maimon"

    def __str__(self) -> str:
        return self.value


class PortState(str, Enum):
    """State of a scanned port."""

    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass
class Service:
    """A service identified on a port."""

    name: str = ""
    product: str = ""
    version: str = ""
    protocol: str = ""
    device_type: str = ""
    banner: str = ""
    confidence: float = 0.0
    cpe: list[str] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class OSInfo:
    """An operating system guess for a host."""

    name: str = ""
    family: str = ""
    version: str = ""
    confidence: float = 0.0
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ScanOptions:
    """Options for a port scan. Timeouts are in seconds."""

    target: str = ""
    ports: str = ""
    scan_type: ScanType = ScanType.TCP
    timeout: float = 0.0
    workers: int = 0
    enable_os: bool = False
    enable_service: bool = False
    service_probe: bool = False
    banner_probe: bool = False
    rate_limit: int = 0
    retries: int = 0
    verbose: bool = False
    version_intensity: int = 0
    guess_os: bool = False
    limit_os_scan: bool = False
    service: ServiceDetectionOptions | None = None
    output_file: str = ""


@dataclass
class ScanResult:
    """Result of scanning one port."""

    port: int = 0
    state: PortState = PortState.UNKNOWN
    service: Service | None = None
    os: OSInfo | None = None
    banner: str = ""
    version: str = ""
    service_name: str = ""
    open: bool = False
    type: ScanType | None = None
    ttl: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class ScanConfig:
    """Simple scan configuration: target, ports, workers and timeout."""

    target: str = ""
    ports: list[int] = field(default_factory=list)
    workers: int = 0
    timeout: float = 0.0


@dataclass
class ServiceInfo:
    """Details gathered about a service."""

    name: str = ""
    port: int = 0
    version: str = ""
    product: str = ""
    extra_info: str = ""
    full_banner: str = ""
    fingerprint: str = ""
    cpe: list[str] = field(default_factory=list)
    ttl: int = 0


@dataclass
class ScanStats:
    """Counters collected while a scan runs."""

    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    total_ports: int = 0
    open_ports: int = 0
    closed_ports: int = 0
    filtered_ports: int = 0
    errors: int = 0
    scan_rate: float = 0.0


@dataclass
class ScanError:
    """An error raised while scanning a port."""

    port: int
    error: BaseException


@dataclass
class RawScanResult:
    """Result of a raw packet scan."""

    port: int = 0
    state: PortState = PortState.UNKNOWN
    ttl: int = 0
    os: str = ""
    banner: str = ""
    service: str = ""
    version: str = ""
    tcp_seq: int = 0
    tcp_ack: int = 0
    flags: int = 0
    type: ScanType | None = None


def parse_ports(ports_str: str) -> list[int]:
    """Parse a port list such as ``"22,80-90"``.

    Entries are not trimmed. Ports outside 1-65535 are silently dropped;
    a ValueError is raised on malformed input or when no port remains.
    """
    ports: list[int] = []
    for entry in ports_str.split(","):
        if "-" in entry:
            bounds = entry.split("-")
            if len(bounds) != 2:
                raise ValueError(f"invalid port range: {entry}")
            try:
                start = _atoi(bounds[0])
            except ValueError:
                raise ValueError(f"invalid start port: {bounds[0]}") from None
            try:
                end = _atoi(bounds[1])
            except ValueError:
                raise ValueError(f"invalid end port: {bounds[1]}") from None
            if start > end:
                raise ValueError(f"start port greater than end port: {start} > {end}")
            ports.extend(p for p in range(start, end + 1) if 0 < p < 65536)
        else:
            try:
                port = _atoi(entry)
            except ValueError:
                raise ValueError(f"invalid port: {entry}") from None
            if 0 < port < 65536:
                ports.append(port)
    if not ports:
        raise ValueError("no valid ports")
    return ports


def service_info_to_service(info: ServiceInfo | None) -> Service | None:
    """Convert gathered service details to a Service record."""
    if info is None:
        return None
    metadata: dict[str, str] = {}
    if info.extra_info:
        metadata["extra_info"] = info.extra_info
    if info.fingerprint:
        metadata["fingerprint"] = info.fingerprint
    if info.full_banner:
        metadata["full_banner"] = info.full_banner
    return Service(
        name=info.name,
        version=info.version,
        product=info.product,
        protocol="tcp",
        banner=info.full_banner,
        confidence=100.0,
        cpe=list(info.cpe),
        metadata=metadata,
    )


def service_to_service_info(service: Service | None) -> ServiceInfo | None:
    """Convert a Service record back to service details."""
    if service is None:
        return None
    metadata = service.metadata or {}
    return ServiceInfo(
        name=service.name,
        version=service.version,
        product=service.product,
        full_banner=service.banner,
        cpe=list(service.cpe),
        extra_info=metadata.get("extra_info", ""),
        fingerprint=metadata.get("fingerprint", ""),
    )