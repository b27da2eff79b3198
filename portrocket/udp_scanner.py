"""UDP port scanner with protocol-specific probes and response analysis."""

from __future__ import annotations

import logging
import socket
import struct
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from .errors import ScanCancelledError
from .types import PortState

logger = logging.getLogger(__name__)

_DEFAULT_PROBE = b"\r\n\r\n"
_READ_SIZE = 4096


@dataclass
class UDPScanResult:
    """Result of probing one UDP port."""

    port: int = 0
    protocol: str = "udp"
    state: PortState = PortState.CLOSED
    service_name: str = ""
    version: str = ""
    banner: str = ""
    reason: str = "no-response"
    ttl: int = 0


@dataclass
class UDPServiceInfo:
    """What could be learned about a UDP service from its reply."""

    name: str = "unknown"
    version: str = ""
    product: str = ""
    full_banner: str = ""
    extra_info: str = ""


class UDPScanner:
    """Sends a probe to each port and classifies it by the reply. Timeout is in seconds."""

    def __init__(self, target: str, ports: list[int], timeout: float, workers: int) -> None:
        self.target = target
        self.ports = list(ports)
        self.timeout = timeout
        self.workers = workers
        self.results: list[UDPScanResult] = []
        self._lock = threading.Lock()

    def scan(self, cancel: threading.Event | None = None) -> list[UDPScanResult]:
        """Probe every port with the worker pool.

        Results accumulate in ``self.results``. If ``cancel`` is set the scan
        stops and ScanCancelledError is raised; its ``results`` attribute holds
        what was collected.
        """
        if self.workers > 0 and self.ports:

            def job(port: int) -> UDPScanResult | None:
                if cancel is not None and cancel.is_set():
                    return None
                return self.scan_port(port)

            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                futures = [pool.submit(job, port) for port in self.ports]
                for future in as_completed(futures):
                    result = future.result()
                    if result is None:
                        continue
                    with self._lock:
                        self.results.append(result)

        if cancel is not None and cancel.is_set():
            error = ScanCancelledError()
            error.results = list(self.results)  # type: ignore[attr-defined]
            raise error
        return list(self.results)

    def scan_port(self, port: int) -> UDPScanResult:
        """Send the port's probe and wait for a reply."""
        result = UDPScanResult(port=port)
        payload = get_udp_probe_for_port(port)
        timeout = max(self.timeout, 0.0)

        try:
            infos = socket.getaddrinfo(self.target, port, type=socket.SOCK_DGRAM)
            if not infos:
                raise OSError("no addresses")
        except (OSError, UnicodeError) as exc:
            logger.debug("UDP address resolution failed %s:%d: %s", self.target, port, exc)
            result.state = PortState.FILTERED
            result.reason = "resolve-failed"
            return result

        family, socktype, proto, _, sockaddr = infos[0]
        try:
            conn = socket.socket(family, socktype, proto)
        except OSError as exc:
            logger.debug("UDP connect failed %s:%d: %s", self.target, port, exc)
            result.state = PortState.FILTERED
            result.reason = "connect-failed"
            return result

        with conn:
            try:
                conn.connect(sockaddr)
            except OSError as exc:
                logger.debug("UDP connect failed %s:%d: %s", self.target, port, exc)
                result.state = PortState.FILTERED
                result.reason = "connect-failed"
                return result

            conn.settimeout(timeout)
            try:
                conn.send(payload)
            except OSError as exc:
                logger.debug("UDP send failed %s:%d: %s", self.target, port, exc)
                result.state = PortState.FILTERED
                result.reason = "send-failed"
                return result

            try:
                data = conn.recv(_READ_SIZE)
            except OSError:
                # No reply: filtered, or open but silent.
                result.state = PortState.FILTERED
                result.reason = "timeout"
                return result

        result.state = PortState.OPEN
        result.reason = "got-response"
        info = analyze_udp_response(port, data)
        result.service_name = info.name
        result.version = info.version
        result.banner = info.full_banner
        return result


def get_udp_probe_for_port(port: int) -> bytes:
    """Return the probe payload suited to a well-known UDP port."""
    builders = {
        53: lambda: create_dns_query("example.com"),
        123: create_ntp_query,
        161: create_snmp_query,
        137: create_netbios_query,
        5353: create_mdns_query,
        1900: create_ssdp_query,
        67: create_dhcp_query,
        68: create_dhcp_query,
        520: create_rip_query,
        69: create_tftp_query,
        514: create_syslog_message,
    }
    builder = builders.get(port)
    return builder() if builder is not None else _DEFAULT_PROBE


def analyze_udp_response(port: int, data: bytes) -> UDPServiceInfo:
    """Identify the service behind a UDP reply using the port and payload."""
    info = UDPServiceInfo(full_banner=data.hex())

    if port == 53:
        if len(data) > 12:
            info.name = "dns"
            if data[2] & 0x80:
                info.product = "DNS Server"
                (tx_id,) = struct.unpack(">H", data[0:2])
                info.extra_info = f"Transaction ID: {tx_id}"
                if len(data) > 40 and b"VERSION" in data:
                    version = extract_dns_version(data)
                    if version:
                        info.version = version
    elif port == 123:
        if len(data) >= 48:
            info.name = "ntp"
            info.product = "NTP Server"
            if data[0] & 0x38 == 0x08:
                info.version = str((data[0] >> 3) & 0x07)
                (ref_timestamp,) = struct.unpack(">I", data[16:20])
                info.extra_info = f"Ref Timestamp: {ref_timestamp}"
    elif port == 161:
        if len(data) > 10 and data[0] == 0x30:
            info.name = "snmp"
            if len(data) > 15 and data[4] == 0x02:
                info.version = {0x00: "1", 0x01: "2c", 0x03: "3"}.get(data[6], info.version)
                info.product = "SNMP Agent"
    elif port == 5353:
        if len(data) > 12:
            info.name = "mdns"
            info.product = "Multicast DNS"
            tx_id, flags = struct.unpack(">HH", data[0:4])
            info.extra_info = f"Transaction ID: {tx_id}, Flags: {flags:04x}"
    elif port == 1900:
        if data.startswith(b"HTTP/1.1") or b"NOTIFY" in data:
            info.name = "ssdp"
            info.product = "UPnP Device"
            _parse_ssdp_server(data, info)
    elif port == 500:
        if len(data) > 20 and data[16:20] == b"\x00\x00\x00\x00":
            info.name = "isakmp"
            info.product = "IKE/ISAKMP (VPN)"
    else:
        info = detect_generic_udp_service(data)

    return info


def _parse_ssdp_server(data: bytes, info: UDPServiceInfo) -> None:
    server_index = data.find(b"SERVER:")
    if server_index <= 0:
        return
    end = data[server_index:].find(b"\r\n")
    if end <= 0:
        return
    server = data[server_index + 7 : server_index + end]
    info.extra_info = server.decode("utf-8", errors="replace")
    parts = server.split(b" ")
    if len(parts) > 1:
        for part in parts:
            if b"/" in part:
                version_parts = part.split(b"/")
                if len(version_parts) == 2:
                    info.version = version_parts[1].decode("utf-8", errors="replace")
                    break


def detect_generic_udp_service(data: bytes) -> UDPServiceInfo:
    """Recognise RTP, STUN or plain-text replies on arbitrary ports."""
    info = UDPServiceInfo(full_banner=data.hex())

    if len(data) > 12 and data[0] & 0xC0 == 0x80:
        info.name = "rtp"
        info.product = "Real-time Transport Protocol"
        (ssrc,) = struct.unpack(">I", data[8:12])
        info.extra_info = f"SSRC: {ssrc}"
        return info

    if len(data) > 4 and data[0] == 0x01 and data[1] == 0x01:
        info.name = "stun"
        info.product = "STUN Protocol"
        if len(data) > 8:
            (magic_cookie,) = struct.unpack(">I", data[4:8])
            info.extra_info = f"Magic Cookie: {magic_cookie:08x}"
        return info

    if is_printable_ascii(data):
        info.full_banner = data.decode("utf-8", errors="replace")
        if b"version" in data or b"VERSION" in data:
            version = extract_version_from_text(data)
            if version:
                info.version = version

    return info


def is_printable_ascii(data: bytes) -> bool:
    """True when more than 80% of the bytes are printable ASCII or whitespace."""
    printable = sum(1 for b in data if 32 <= b <= 126 or b in (0x0D, 0x0A, 0x09))
    return printable > len(data) * 8 // 10


def extract_version_from_text(data: bytes) -> str:
    """Return the short token that directly follows the word "version"."""
    index = data.lower().find(b"version")
    if index <= 0:
        return ""
    tail = data[index + 7 :]
    end = min((i for i, b in enumerate(tail) if b in b"\r\n\t "), default=-1)
    if 0 < end < 20:
        return tail[:end].strip().decode("utf-8", errors="replace")
    return ""


def extract_dns_version(data: bytes) -> str:
    """Return the first version-like token within 20 bytes of "version"."""
    if len(data) < 40:
        return ""
    index = data.find(b"version")
    if index <= 0:
        return ""
    end = min(index + 20, len(data))
    window = data[index + 7 : end]
    for start, byte in enumerate(window):
        if 0x30 <= byte <= 0x39:
            stop = start
            while stop < len(window) and (0x30 <= window[stop] <= 0x39 or window[stop] in b".-"):
                stop += 1
            return window[start:stop].decode("ascii")
    return ""


def _encode_labels(labels: list[bytes]) -> bytes:
    out = bytearray()
    for label in labels:
        if len(label) > 255:
            raise ValueError(f"DNS label too long: {len(label)} bytes")
        out.append(len(label))
        out += label
    out.append(0)
    return bytes(out)


def create_dns_query(domain: str) -> bytes:
    """Build a standard DNS query for the A record of ``domain``."""
    header = struct.pack(">HHHHHH", 0x1234, 0x0100, 1, 0, 0, 0)
    name = _encode_labels(domain.encode().split(b"."))
    return header + name + struct.pack(">HH", 1, 1)


def create_ntp_query() -> bytes:
    """Build an NTPv4 client request."""
    packet = bytearray(48)
    packet[0] = 0x23  # LI 0, version 4, mode 3 (client)
    return bytes(packet)


def create_snmp_query() -> bytes:
    """Build an SNMPv1 GetRequest for sysDescr.0 with community "public"."""
    return bytes(
        [
            0x30, 0x2C,
            0x02, 0x01, 0x00,
            0x04, 0x07,
        ]
    ) + b"public" + bytes(
        [
            0xA0, 0x1E,
            0x02, 0x01, 0x01,
            0x02, 0x01, 0x00,
            0x02, 0x01, 0x00,
            0x30, 0x13,
            0x30, 0x11,
            0x06, 0x0D,
            0x2B, 0x06, 0x01, 0x02, 0x01, 0x01,
            0x02, 0x00,
            0x05, 0x00,
        ]
    )


def create_netbios_query() -> bytes:
    """Build a NetBIOS name service query."""
    header = struct.pack(">HHHHHH", 0x1234, 0x0100, 1, 0, 0, 0)
    return header + b" " * 32 + struct.pack(">HH", 0x0020, 0x0001)


def create_mdns_query() -> bytes:
    """Build an mDNS PTR query for _services._dns-sd._udp.local."""
    header = struct.pack(">HHHHHH", 0, 0, 1, 0, 0, 0)
    name = _encode_labels([b"_services", b"_dns-sd", b"_udp", b"local"])
    return header + name + struct.pack(">HH", 12, 1)


def create_ssdp_query() -> bytes:
    """Build an SSDP M-SEARCH discovery request."""
    return (
        b"M-SEARCH * HTTP/1.1\r\n"
        b"HOST: 239.255.255.250:1900\r\n"
        b'MAN: "ssdp:discover"\r\n'
        b"MX: 2\r\n"
        b"ST: ssdp:all\r\n\r\n"
    )


def create_dhcp_query() -> bytes:
    """Build a minimal DHCP DISCOVER packet."""
    packet = bytearray(244)
    packet[0] = 0x01  # boot request
    packet[1] = 0x01  # ethernet
    packet[2] = 0x06  # hardware address length
    packet[4:8] = struct.pack(">I", 0x12345678)
    packet[10:12] = struct.pack(">H", 0x8000)  # broadcast
    packet[236:240] = bytes([53, 1, 1, 255])
    return bytes(packet)


def create_rip_query() -> bytes:
    """Build a RIPv2 request."""
    packet = bytearray(24)
    packet[0] = 0x01
    packet[1] = 0x02
    packet[20:24] = struct.pack(">I", 16)
    return bytes(packet)


def create_tftp_query() -> bytes:
    """Build a TFTP read request for test.txt in octet mode."""
    return struct.pack(">H", 1) + b"test.txt\x00octet\x00"


def create_syslog_message() -> bytes:
    """Build an RFC 3164 syslog message."""
    return b"<34>Oct 11 22:14:15 test: probe message from Go-Port-Rocket"


def execute_udp_scan(
    target: str, ports: list[int], timeout: float, workers: int
) -> list[UDPScanResult]:
    """Scan ``ports`` on ``target`` over UDP."""
    return UDPScanner(target, ports, timeout, workers).scan()