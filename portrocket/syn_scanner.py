"""SYN scanner built on the worker pool, and an ICMP echo probe."""

from __future__ import annotations

import os
import socket
import struct
from dataclasses import dataclass, field

from .base_scanner import BaseScanner
from .errors import InvalidOptionsError, RootRequiredError
from .raw_scanner import TCPFlags, _classify_reply, _is_root, _parse_ipv4, build_probe_packet
from .types import PortState, ScanOptions, ScanResult, ScanType

_ICMP_ECHO_REQUEST = 8
_ICMP_ECHO_REPLY = 0
_ICMP_PAYLOAD = b"Go-Port-Rocket ICMP probe"


@dataclass
class SynScanResult:
    """Outcome of a SYN probe: state is "open", "closed" or "filtered"."""

    port: int
    state: str
    reason: str = ""


@dataclass
class SynScanState:
    """Target, timeout in seconds and results of a SYN scan."""

    target: str
    timeout: float
    results: list[SynScanResult] = field(default_factory=list)


class SYNScanner(BaseScanner):
    """Half-open scanner sending raw SYN packets; needs root."""

    def __init__(self) -> None:
        super().__init__(ScanType.SYN)

    def scan_port(self, port: int) -> ScanResult:
        """Send a SYN probe and classify the reply; raises on socket errors."""
        opts = self.opts
        if opts is None:
            raise InvalidOptionsError()
        address = str(_parse_ipv4(opts.target))
        packet = build_probe_packet(TCPFlags.SYN, address)

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP)
        except OSError as exc:
            raise OSError(f"failed to create raw socket: {exc}") from exc

        with sock:
            sock.settimeout(opts.timeout if opts.timeout > 0 else None)
            try:
                sock.sendto(packet, (address, 0))
            except OSError as exc:
                raise OSError(f"failed to send SYN packet: {exc}") from exc
            try:
                data = sock.recv(1024)
            except (TimeoutError, BlockingIOError):
                return ScanResult(port=port, state=PortState.FILTERED)
            except OSError as exc:
                raise OSError(f"failed to receive response: {exc}") from exc
        return ScanResult(port=port, state=_classify_reply(data, TCPFlags.SYN))

    def validate_options(self, opts: ScanOptions | None) -> None:
        """Apply the base checks, then require root privileges."""
        super().validate_options(opts)
        if not _is_root():
            raise RootRequiredError()

    def requires_root(self) -> bool:
        """SYN scans need root privileges."""
        return True


def _icmp_checksum(data: bytes) -> int:
    if len(data) % 2:
        data += b"\x00"
    total = sum(struct.unpack(f"!{len(data) // 2}H", data))
    total = (total >> 16) + (total & 0xFFFF)
    total += total >> 16
    return ~total & 0xFFFF


def _echo_request(ident: int, seq: int) -> bytes:
    header = struct.pack("!BBHHH", _ICMP_ECHO_REQUEST, 0, 0, ident, seq)
    checksum = _icmp_checksum(header + _ICMP_PAYLOAD)
    return struct.pack("!BBHHH", _ICMP_ECHO_REQUEST, 0, checksum, ident, seq) + _ICMP_PAYLOAD


def send_icmp(target: str, timeout: float) -> bool:
    """Send one ICMP echo request; True if the reply is an echo reply.

    Raises OSError when the raw socket cannot be used, the name does not
    resolve or no reply arrives in time.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_ICMP) as sock:
        destination = socket.gethostbyname(target)
        sock.sendto(_echo_request(os.getpid() & 0xFFFF, 1), (destination, 0))
        sock.settimeout(timeout if timeout > 0 else None)
        data = sock.recv(1500)

    offset = (data[0] & 0x0F) * 4 if data and data[0] >> 4 == 4 else 0
    if len(data) <= offset:
        raise OSError("truncated ICMP message")
    return data[offset] == _ICMP_ECHO_REPLY