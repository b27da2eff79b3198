"""Connect-based port scanner, OS guessing helpers and scan dispatch."""

from __future__ import annotations

import logging
import re
import socket
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from .base_scanner import _parse_port_spec
from .raw_scanner import ack_scan, fin_scan, null_scan, syn_scan, xmas_scan
from .service_detection import (
    COMMON_SERVICES,
    ServiceDetectionOptions,
    detect_service,
)
from .types import (
    OSInfo,
    PortState,
    ScanConfig,
    ScanOptions,
    ScanResult,
    ScanType,
    Service,
    ServiceInfo,
    service_info_to_service,
)
from .udp_scanner import execute_udp_scan

logger = logging.getLogger(__name__)

_TTL_PATTERNS = (
    re.compile(r"ttl=(\d+)"),
    re.compile(r"TTL=(\d+)"),
    re.compile(r"time to live=(\d+)"),
    re.compile(r"\sttl\s*=\s*(\d+)"),
    re.compile(r"[Tt][Tt][Ll][=:](\d+)"),
)

_TTL_GUESS_CONFIDENCE = 60.0


def parse_port_spec(ports_str: str) -> list[int]:
    """Parse a port list such as ``"22, 80-90"``; spaces and empty entries are allowed.

    Ports outside 1-65535 are dropped. ValueError on malformed input or when
    no port remains.
    """
    return _parse_port_spec(ports_str)


def parse_os_family(os_name: str) -> str:
    """Map an operating system name to its family."""
    name = os_name.lower()
    if "windows" in name:
        return "Windows"
    if "linux" in name:
        return "Linux"
    if "mac" in name or "macos" in name or "osx" in name:
        return "MacOS"
    if any(bsd in name for bsd in ("freebsd", "openbsd", "netbsd")):
        return "BSD"
    if "ios" in name:
        return "iOS"
    if "android" in name:
        return "Android"
    if "unix" in name:
        return "Unix"
    if "solaris" in name or "sunos" in name:
        return "Solaris"
    return "Unknown"


def guess_os_from_ttl(ttl: int) -> str:
    """Guess the operating system from an observed TTL."""
    if ttl <= 64:
        return "Linux/Unix"
    if ttl <= 128:
        return "Windows"
    if ttl <= 255:
        return "Cisco/Network Device"
    return "Unknown"


def extract_ttl(output: str) -> int:
    """Find the TTL in ping output; ValueError if there is none."""
    for pattern in _TTL_PATTERNS:
        match = pattern.search(output)
        if match:
            return int(match.group(1))
    raise ValueError("could not extract a TTL value from ping output")


def get_ttl_value(ip_address: str) -> int:
    """Ping ``ip_address`` once and return the TTL of the reply.

    Raises OSError if ping fails and ValueError if no TTL is found.
    """
    completed = subprocess.run(
        ["ping", "-c", "1", ip_address],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
    )
    if completed.returncode != 0:
        raise OSError(f"ping {ip_address} exited with status {completed.returncode}")
    return extract_ttl(completed.stdout.decode("utf-8", errors="replace"))


def get_hostname(ip_address: str) -> str:
    """Reverse-resolve ``ip_address``; OSError if it has no name."""
    try:
        hostname, _, _ = socket.gethostbyaddr(ip_address)
    except (OSError, UnicodeError) as exc:
        raise OSError(f"could not resolve host name of {ip_address}") from exc
    if not hostname:
        raise OSError(f"could not resolve host name of {ip_address}")
    return hostname


_UNIX_HOSTNAME_HINTS = (
    ("ubuntu", "Ubuntu Linux", None),
    ("debian", "Debian Linux", None),
    ("centos", "CentOS Linux", None),
    ("fedora", "Fedora Linux", None),
    ("darwin", "MacOS", "Darwin"),
    ("mac", "MacOS", "Darwin"),
    ("freebsd", "FreeBSD", None),
)


def refine_os_info(os_info: OSInfo, remote_ip: str) -> None:
    """Sharpen ``os_info`` using the host name (Unix) or the TTL (Windows)."""
    if os_info.family == "Unix":
        try:
            hostname = get_hostname(remote_ip).lower()
        except OSError:
            hostname = ""
        if hostname:
            for hint, name, family in _UNIX_HOSTNAME_HINTS:
                if hint in hostname:
                    os_info.name = name
                    if family is not None:
                        os_info.family = family
                    os_info.confidence += 15.0
                    break
    elif os_info.family == "Windows" and "ttl" in os_info.metadata:
        try:
            ttl = int(os_info.metadata["ttl"])
        except ValueError:
            ttl = 0
        if ttl == 128:
            os_info.name = "Windows 10/11"
            os_info.confidence += 10.0
        elif ttl == 127:
            os_info.name = "Windows 7/8"
            os_info.confidence += 10.0
        elif ttl == 64:
            os_info.name = "Windows Server (Custom TTL)"
            os_info.confidence -= 10.0
    os_info.confidence = min(os_info.confidence, 100.0)


class Scanner:
    """Scans the ports of ``opts`` by connecting with the socket type of its scan type."""

    def __init__(self, opts: ScanOptions | None) -> None:
        if opts is None:
            raise ValueError("scan options must not be None")
        try:
            self._ports = parse_port_spec(opts.ports)
        except ValueError as exc:
            raise ValueError(f"failed to parse port range: {exc}") from exc
        self.opts = opts
        self._results: list[ScanResult] = []
        self._progress = 0.0
        self._lock = threading.Lock()

    @property
    def ports(self) -> list[int]:
        """The ports this scanner will probe."""
        return list(self._ports)

    def scan(self, cancel: threading.Event | None = None) -> list[ScanResult]:
        """Scan every port; once ``cancel`` is set, remaining ports are skipped."""
        with self._lock:
            self._results = []
            self._progress = 0.0
        if self.opts.workers <= 0:
            return []

        def job(port: int) -> ScanResult | None:
            if cancel is not None and cancel.is_set():
                return None
            return self.scan_port(port)

        with ThreadPoolExecutor(max_workers=self.opts.workers) as pool:
            futures = [pool.submit(job, port) for port in self._ports]
            for future in as_completed(futures):
                result = future.result()
                with self._lock:
                    if result is not None:
                        self._results.append(result)
                    self._progress = len(self._results) / len(self._ports) * 100
        with self._lock:
            return list(self._results)

    def _connect(self, port: int) -> socket.socket:
        timeout = self.opts.timeout if self.opts.timeout > 0 else None
        if self.opts.scan_type == ScanType.TCP:
            return socket.create_connection((self.opts.target, port), timeout=timeout)
        if self.opts.scan_type == ScanType.UDP:
            infos = socket.getaddrinfo(self.opts.target, port, type=socket.SOCK_DGRAM)
            family, socktype, proto, _, sockaddr = infos[0]
            conn = socket.socket(family, socktype, proto)
            try:
                conn.settimeout(timeout)
                conn.connect(sockaddr)
            except OSError:
                conn.close()
                raise
            return conn
        raise OSError(f"unknown network {self.opts.scan_type}")

    def scan_port(self, port: int) -> ScanResult:
        """Probe one port: refused means closed, any other failure filtered."""
        result = ScanResult(port=port, state=PortState.CLOSED)
        try:
            conn = self._connect(port)
        except ConnectionRefusedError:
            return result
        except (OSError, UnicodeError):
            result.state = PortState.FILTERED
            return result

        with conn:
            result.state = PortState.OPEN
            try:
                remote_ip = str(conn.getpeername()[0])
            except OSError:
                remote_ip = self.opts.target

        if self.opts.enable_service:
            service = self._detect_service(port)
            if service is not None:
                result.service = service

        if self.opts.enable_os:
            os_info = self._detect_os(remote_ip)
            if os_info is not None:
                result.os = os_info

        return result

    def _detect_service(self, port: int) -> Service | None:
        options = self.opts.service
        if not self.opts.enable_service or options is None:
            return None
        try:
            info = detect_service(self.opts.target, port, options)
        except OSError as exc:
            logger.debug("service detection failed: %s", exc)
            return None
        return service_info_to_service(info)

    def _detect_os(self, remote_ip: str) -> OSInfo | None:
        if remote_ip == "::1":
            remote_ip = "127.0.0.1"
        with self._lock:
            has_open = any(r.state == PortState.OPEN for r in self._results)
        if not has_open:
            return None
        try:
            ttl = get_ttl_value(remote_ip)
        except (OSError, ValueError) as exc:
            logger.debug("OS detection failed: %s", exc)
            return None
        name = guess_os_from_ttl(ttl)
        metadata = {"source": "ttl"}
        if ttl > 0:
            metadata["ttl"] = str(ttl)
        return OSInfo(
            name=name,
            family=parse_os_family(name),
            confidence=_TTL_GUESS_CONFIDENCE,
            metadata=metadata,
        )

    @property
    def progress(self) -> float:
        """Percentage of ports with a collected result."""
        with self._lock:
            return self._progress


def join_ports(ports: list[int]) -> str:
    """Join ports into a comma separated list."""
    return ",".join(str(port) for port in ports)


def tcp_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """Scan ``ports`` on ``target`` with TCP connects."""
    scanner = Scanner(
        ScanOptions(
            target=target,
            ports=join_ports(ports),
            scan_type=ScanType.TCP,
            timeout=timeout,
            workers=workers,
            enable_os=True,
            guess_os=True,
        )
    )
    return scanner.scan()


def udp_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """Scan ``ports`` on ``target`` over UDP, as generic scan results."""
    return [
        ScanResult(
            port=r.port,
            state=r.state,
            type=ScanType.UDP,
            service_name=r.service_name,
            version=r.version,
            banner=r.banner,
            open=r.state == PortState.OPEN,
        )
        for r in execute_udp_scan(target, ports, timeout, workers)
    ]


_SCANS = {
    ScanType.TCP: tcp_scan,
    ScanType.SYN: syn_scan,
    ScanType.FIN: fin_scan,
    ScanType.NULL: null_scan,
    ScanType.XMAS: xmas_scan,
    ScanType.ACK: ack_scan,
    ScanType.UDP: udp_scan,
}


def execute_scan(opts: ScanOptions) -> list[ScanResult]:
    """Run the scan selected by ``opts.scan_type``, then detect services if asked."""
    try:
        ports = parse_port_spec(opts.ports)
    except ValueError as exc:
        raise ValueError(f"failed to parse port range: {exc}") from exc

    run = _SCANS.get(opts.scan_type)
    if run is None:
        raise ValueError(f"unsupported scan type: {opts.scan_type}")
    results = run(opts.target, ports, opts.timeout, opts.workers)

    if opts.service is not None and opts.service.enable_version_detection:
        for result in results:
            if result.state != PortState.OPEN:
                continue
            try:
                info = detect_service(opts.target, result.port, opts.service)
            except OSError:
                continue
            result.service = service_info_to_service(info)
            result.service_name = info.name
    return results


def scan_port(target: str, port: int, timeout: float) -> ScanResult:
    """Connect to one TCP port and, if open, identify its service."""
    result = ScanResult(port=port, state=PortState.CLOSED, type=ScanType.TCP)
    try:
        conn = socket.create_connection((target, port), timeout=timeout if timeout > 0 else None)
    except (OSError, UnicodeError):
        return result
    conn.close()

    result.state = PortState.OPEN
    result.open = True
    service_name = COMMON_SERVICES.get(port, "")
    result.service_name = service_name

    options = ServiceDetectionOptions(timeout=timeout)
    try:
        info: ServiceInfo | None = detect_service(target, port, options)
    except OSError:
        info = None
    if info is not None:
        result.service = service_info_to_service(info)
        if not result.service_name and info.name:
            result.service_name = info.name
    elif service_name:
        result.service = service_info_to_service(ServiceInfo(name=service_name, port=port))
    return result


def scan_ports(config: ScanConfig, ports: list[int]) -> list[ScanResult]:
    """Scan ``ports`` with ``config.workers`` threads; results follow ``ports`` order."""
    if config.workers < 1:
        raise ValueError(f"workers must be at least 1: {config.workers}")

    def job(port: int) -> ScanResult:
        result = scan_port(config.target, port, config.timeout)
        if result.state == PortState.OPEN:
            status = str(result.state)
            if result.service_name:
                status += f" ({result.service_name})"
            print(f"Port {port:<5d}: {status}")
        return result

    with ThreadPoolExecutor(max_workers=config.workers) as pool:
        return list(pool.map(job, ports))