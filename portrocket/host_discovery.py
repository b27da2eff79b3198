"""Host discovery by ICMP, TCP and ARP probes, and IP range expansion."""

from __future__ import annotations

import ipaddress
import socket
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .syn_scanner import send_icmp

MAX_RANGE_SIZE = 65536


@dataclass
class HostStatus:
    """Whether a host answered, how, and how fast (latency in seconds)."""

    ip: str
    up: bool
    method: str
    latency: float = 0.0


@dataclass
class DiscoveryOptions:
    """Which probes to use when discovering hosts. Timeout is in seconds."""

    icmp_ping: bool = True
    tcp_ping: bool = True
    arp_scan: bool = False
    tcp_ports: list[int] = field(default_factory=lambda: [80, 443, 22, 445])
    timeout: float = 2.0
    concurrency: int = 100
    skip_ping: bool = False
    exclude_ips: list[str] = field(default_factory=list)


def _probe_host(ip: str, opts: DiscoveryOptions) -> HostStatus:
    if opts.skip_ping:
        port = opts.tcp_ports[0]
        if tcp_ping(ip, port, opts.timeout):
            return HostStatus(ip, True, f"TCP/{port}")
        return HostStatus(ip, False, "None")

    if opts.icmp_ping:
        try:
            up, latency = ping_icmp(ip, opts.timeout)
        except OSError:
            up, latency = False, 0.0
        if up:
            return HostStatus(ip, True, "ICMP", latency)

    if opts.tcp_ping:
        for port in opts.tcp_ports:
            try:
                up, latency = ping_tcp(ip, port, opts.timeout)
            except OSError:
                continue
            if up:
                return HostStatus(ip, True, f"TCP/{port}", latency)

    if opts.arp_scan:
        try:
            if scan_arp(ip):
                return HostStatus(ip, True, "ARP")
        except OSError:
            pass

    return HostStatus(ip, False, "None")


def discover_hosts(
    networks: list[str], opts: DiscoveryOptions | None = None
) -> list[HostStatus]:
    """Probe every address of ``networks`` (CIDR) and return the hosts that are up."""
    opts = opts if opts is not None else DiscoveryOptions()
    if opts.skip_ping and not opts.tcp_ports:
        raise ValueError("skip_ping needs at least one TCP port")
    if opts.concurrency < 1:
        raise ValueError(f"concurrency must be at least 1: {opts.concurrency}")

    all_ips: list[str] = []
    for network in networks:
        try:
            all_ips.extend(expand_network(network))
        except ValueError as exc:
            raise ValueError(f"failed to parse network {network}: {exc}") from exc
    all_ips = filter_excluded_ips(all_ips, opts.exclude_ips)

    with ThreadPoolExecutor(max_workers=opts.concurrency) as pool:
        statuses = list(pool.map(lambda ip: _probe_host(ip, opts), all_ips))
    return [status for status in statuses if status.up]


def filter_excluded_ips(ips: list[str], exclude_ips: list[str]) -> list[str]:
    """Drop every address listed in ``exclude_ips``."""
    if not exclude_ips:
        return ips
    excluded = set(exclude_ips)
    return [ip for ip in ips if ip not in excluded]


def _format_latency(seconds: float) -> str:
    if seconds == 0:
        return "0s"
    if seconds < 1e-3:
        return f"{seconds * 1e6:g}µs"
    if seconds < 1:
        return f"{seconds * 1e3:g}ms"
    return f"{seconds:g}s"


def print_hosts(hosts: list[HostStatus]) -> None:
    """Print the discovered hosts."""
    print("\n主机发现结果：")
    print(f"发现主机数：{len(hosts)}")
    if hosts:
        print("\n活跃主机：")
        for host in hosts:
            print(f"IP: {host.ip:<15} 方法: {host.method:<10} 延迟: {_format_latency(host.latency)}")
    else:
        print("\n未发现活跃主机")


def expand_network(network: str) -> list[str]:
    """List every address of a CIDR network, network and broadcast included."""
    if "/" not in network:
        raise ValueError(f"invalid CIDR address: {network}")
    net = ipaddress.ip_network(network, strict=False)
    return [str(address) for address in net]


def ping_host(ip: str, timeout: float) -> bool:
    """Run the system ping once; True if the host answered."""
    try:
        completed = subprocess.run(
            ["ping", "-c", "1", "-W", f"{timeout:.0f}", ip],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            check=False,
        )
    except OSError:
        return False
    return completed.returncode == 0


def tcp_ping(ip: str, port: int, timeout: float) -> bool:
    """True if a TCP connection to ``ip:port`` succeeds."""
    try:
        with socket.create_connection((ip, port), timeout=timeout if timeout > 0 else None):
            return True
    except (OSError, UnicodeError):
        return False


def ping_icmp(target: str, timeout: float) -> tuple[bool, float]:
    """ICMP echo, falling back to the system ping; returns (up, latency).

    Raises OSError when neither method gets through.
    """
    start = time.monotonic()
    try:
        up = send_icmp(target, timeout)
    except OSError as exc:
        if ping_host(target, timeout):
            return True, time.monotonic() - start
        raise OSError(f"ICMP ping to {target} failed: {exc}") from exc
    return up, time.monotonic() - start


def ping_tcp(target: str, port: int, timeout: float) -> tuple[bool, float]:
    """Connect to ``target:port``; returns (True, latency) or raises OSError."""
    start = time.monotonic()
    try:
        conn = socket.create_connection((target, port), timeout=timeout if timeout > 0 else None)
    except UnicodeError as exc:
        raise OSError(f"invalid host {target}: {exc}") from exc
    conn.close()
    return True, time.monotonic() - start


def scan_arp(target: str) -> bool:
    """Look ``target`` up in the ARP cache; OSError if the arp command fails."""
    completed = subprocess.run(
        ["arp", "-n", target],
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        check=False,
    )
    if completed.returncode != 0:
        raise OSError(f"arp exited with status {completed.returncode}")
    output = completed.stdout.decode("utf-8", errors="replace")
    return "no entry" not in output and ":" in output


def _parse_ipv4(text: str, role: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(text)
    except ValueError:
        raise ValueError(f"invalid {role} IP: {text}") from None


def generate_ip_range(start_ip: str, end_ip: str) -> list[str]:
    """List the IPv4 addresses from ``start_ip`` to ``end_ip`` inclusive (at most 65536)."""
    start = _parse_ipv4(start_ip, "start")
    end = _parse_ipv4(end_ip, "end")
    if end < start:
        raise ValueError("end IP must be greater than start IP")
    total = int(end) - int(start) + 1
    if total > MAX_RANGE_SIZE:
        raise ValueError(f"IP range too large (max {MAX_RANGE_SIZE}): {total}")
    return [str(start + offset) for offset in range(total)]


def generate_ip_range_from_cidr(cidr: str) -> list[str]:
    """List the addresses of an IPv4 CIDR block, network to broadcast."""
    try:
        net = ipaddress.ip_network(cidr, strict=False)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR: {cidr}, {exc}") from None
    if not isinstance(net, ipaddress.IPv4Network):
        raise ValueError("only IPv4 addresses are supported")
    return generate_ip_range(str(net.network_address), str(net.broadcast_address))