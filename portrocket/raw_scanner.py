"""Raw-socket TCP probe scans (SYN, FIN, NULL, XMAS, ACK)."""

from __future__ import annotations

import ipaddress
import os
import queue
import socket
import threading
from enum import IntFlag

from .errors import RootRequiredError, ScanTimeoutError
from .types import PortState, ScanResult

_IP_HEADER_LEN = 20
_TCP_FLAGS_OFFSET = 6
# Offset of the TCP flags byte in a reply that still carries its IPv4 header.
_REPLY_FLAGS_OFFSET = 33
_RECV_SIZE = 1024


class TCPFlags(IntFlag):
    """TCP header control bits."""

    FIN = 0x01
    SYN = 0x02
    RST = 0x04
    PSH = 0x08
    ACK = 0x10
    URG = 0x20


_XMAS_FLAGS = TCPFlags.FIN | TCPFlags.PSH | TCPFlags.URG
_NULL_FLAGS = TCPFlags(0)


def _is_root() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def _parse_ipv4(target: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(target)
    except ValueError:
        raise ValueError(f"invalid target IP address: {target}") from None


def build_probe_packet(flags: int, target: str) -> bytes:
    """Build the 40-byte IPv4 + TCP probe carrying ``flags`` towards ``target``."""
    address = _parse_ipv4(target)
    ip_header = bytearray(_IP_HEADER_LEN)
    ip_header[0] = 0x45  # version 4, header length 5 words
    ip_header[3] = 0x28  # total length 40
    ip_header[6] = 0x40  # don't fragment
    ip_header[8] = 0x40  # TTL
    ip_header[9] = 0x06  # protocol TCP
    ip_header[16:20] = address.packed

    tcp_header = bytearray(20)
    tcp_header[0] = 0x50
    tcp_header[_TCP_FLAGS_OFFSET] = int(flags) & 0xFF
    return bytes(ip_header + tcp_header)


def _silence_state(flags: int) -> PortState:
    """State assumed for a port that never answered the probe."""
    if flags in (TCPFlags.SYN, TCPFlags.ACK):
        return PortState.FILTERED
    return PortState.OPEN


def _classify_reply(data: bytes, flags: int) -> PortState:
    """State of a port judging by the reply to a probe sent with ``flags``."""
    if len(data) > _REPLY_FLAGS_OFFSET:
        reply_flags = data[_REPLY_FLAGS_OFFSET]
        if reply_flags & TCPFlags.RST:
            return PortState.CLOSED
        if flags == TCPFlags.SYN and reply_flags & (TCPFlags.SYN | TCPFlags.ACK):
            return PortState.OPEN
    return PortState.UNKNOWN


def _probe_port(
    sock: socket.socket, packet: bytes, address: str, port: int, flags: int, label: str
) -> ScanResult:
    try:
        sock.sendto(packet, (address, 0))
    except OSError as exc:
        raise OSError(f"failed to send {label} packet: {exc}") from exc
    try:
        data = sock.recv(_RECV_SIZE)
    except (TimeoutError, BlockingIOError):
        return ScanResult(port=port, state=_silence_state(flags))
    except OSError as exc:
        raise OSError(f"failed to receive response: {exc}") from exc
    return ScanResult(port=port, state=_classify_reply(data, flags))


def _raw_scan(
    flags: int, label: str, target: str, ports: list[int], timeout: float
) -> list[ScanResult]:
    if not _is_root():
        raise RootRequiredError()
    address = str(_parse_ipv4(target))
    packet = build_probe_packet(flags, address)
    wait = timeout if timeout > 0 else None

    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_RAW, socket.IPPROTO_TCP)
    except OSError as exc:
        raise OSError(f"failed to create raw socket: {exc}") from exc

    with sock:
        sock.settimeout(wait)
        replies: queue.Queue[tuple[ScanResult | None, BaseException | None]] = queue.Queue()

        def probe(port: int) -> None:
            try:
                replies.put((_probe_port(sock, packet, address, port, flags, label), None))
            except Exception as exc:  # noqa: BLE001 - handed to the collector
                replies.put((None, exc))

        for port in ports:
            threading.Thread(target=probe, args=(port,), daemon=True).start()

        collected: list[ScanResult] = []
        for _ in ports:
            try:
                result, error = replies.get(timeout=wait)
            except queue.Empty:
                raise ScanTimeoutError() from None
            if error is not None:
                raise error
            assert result is not None
            collected.append(result)
    return collected


def syn_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """SYN scan: SYN-ACK means open, RST closed, silence filtered."""
    return _raw_scan(TCPFlags.SYN, "SYN", target, ports, timeout)


def fin_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """FIN scan: RST means closed, silence open."""
    return _raw_scan(TCPFlags.FIN, "FIN", target, ports, timeout)


def null_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """NULL scan (no flags): RST means closed, silence open."""
    return _raw_scan(_NULL_FLAGS, "NULL", target, ports, timeout)


def xmas_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """XMAS scan (FIN, PSH, URG): RST means closed, silence open."""
    return _raw_scan(_XMAS_FLAGS, "XMAS", target, ports, timeout)


def ack_scan(target: str, ports: list[int], timeout: float, workers: int) -> list[ScanResult]:
    """ACK scan: RST means unfiltered (reported closed), silence filtered."""
    return _raw_scan(TCPFlags.ACK, "ACK", target, ports, timeout)