import socket
import threading

import pytest

from portrocket.host_discovery import (
    DiscoveryOptions,
    HostStatus,
    discover_hosts,
    expand_network,
    filter_excluded_ips,
    generate_ip_range,
    generate_ip_range_from_cidr,
    ping_tcp,
    print_hosts,
    tcp_ping,
)


@pytest.fixture
def open_port():
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(16)
    srv.settimeout(0.1)
    stop = threading.Event()

    def serve():
        while not stop.is_set():
            try:
                conn, _ = srv.accept()
            except socket.timeout:
                continue
            except OSError:
                return
            conn.close()

    thread = threading.Thread(target=serve, daemon=True)
    thread.start()
    yield srv.getsockname()[1]
    stop.set()
    thread.join()
    srv.close()


@pytest.fixture
def closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port


def test_default_options():
    opts = DiscoveryOptions()
    assert opts.tcp_ports == [80, 443, 22, 445]
    assert opts.concurrency == 100
    assert opts.icmp_ping and opts.tcp_ping and not opts.arp_scan


def test_expand_network_matches_cidr_range():
    assert expand_network("10.0.0.0/30") == generate_ip_range_from_cidr("10.0.0.0/30")


def test_expand_network_masks_host_bits():
    ips = expand_network("10.0.0.5/30")
    assert ips[0] == "10.0.0.4"
    assert ips == generate_ip_range("10.0.0.4", "10.0.0.7")


def test_expand_network_single_host():
    assert expand_network("127.0.0.1/32") == ["127.0.0.1"]


@pytest.mark.parametrize("network", ["127.0.0.1", "not-a-network/24", "10.0.0.0/40"])
def test_expand_network_invalid(network):
    with pytest.raises(ValueError):
        expand_network(network)


def test_generate_ip_range_crosses_octet():
    ips = generate_ip_range("10.0.0.254", "10.0.1.1")
    assert ips[0] == "10.0.0.254"
    assert ips[-1] == "10.0.1.1"
    assert len(ips) == len(set(ips))
    assert "10.0.1.0" in ips


def test_generate_ip_range_single():
    assert generate_ip_range("192.168.1.1", "192.168.1.1") == ["192.168.1.1"]


def test_generate_ip_range_reversed():
    with pytest.raises(ValueError):
        generate_ip_range("10.0.0.5", "10.0.0.1")


def test_generate_ip_range_too_large():
    with pytest.raises(ValueError):
        generate_ip_range("10.0.0.0", "10.1.0.0")


def test_generate_ip_range_largest_allowed():
    ips = generate_ip_range("10.0.0.0", "10.0.255.255")
    assert len(ips) == 65536


@pytest.mark.parametrize("start,end", [("bad", "10.0.0.1"), ("10.0.0.1", "bad")])
def test_generate_ip_range_invalid_ip(start, end):
    with pytest.raises(ValueError):
        generate_ip_range(start, end)


def test_generate_ip_range_from_cidr_ipv6_rejected():
    with pytest.raises(ValueError):
        generate_ip_range_from_cidr("::1/128")


def test_generate_ip_range_from_cidr_invalid():
    with pytest.raises(ValueError):
        generate_ip_range_from_cidr("garbage")


def test_filter_excluded_ips():
    ips = ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
    assert filter_excluded_ips(ips, ["10.0.0.2"]) == ["10.0.0.1", "10.0.0.3"]
    assert filter_excluded_ips(ips, []) == ips


def test_tcp_ping(open_port, closed_port):
    assert tcp_ping("127.0.0.1", open_port, 1.0) is True
    assert tcp_ping("127.0.0.1", closed_port, 1.0) is False


def test_ping_tcp_open(open_port):
    up, latency = ping_tcp("127.0.0.1", open_port, 1.0)
    assert up is True
    assert latency >= 0


def test_ping_tcp_closed(closed_port):
    with pytest.raises(OSError):
        ping_tcp("127.0.0.1", closed_port, 1.0)


def test_discover_hosts_skip_ping(open_port):
    opts = DiscoveryOptions(skip_ping=True, tcp_ports=[open_port], timeout=1.0)
    hosts = discover_hosts(["127.0.0.1/32"], opts)
    assert hosts == [HostStatus("127.0.0.1", True, f"TCP/{open_port}", 0.0)]


def test_discover_hosts_tcp_ping(open_port):
    opts = DiscoveryOptions(icmp_ping=False, tcp_ports=[open_port], timeout=1.0)
    hosts = discover_hosts(["127.0.0.1/32"], opts)
    assert [h.ip for h in hosts] == ["127.0.0.1"]
    assert hosts[0].method == f"TCP/{open_port}"


def test_discover_hosts_down_host_omitted(closed_port):
    opts = DiscoveryOptions(icmp_ping=False, tcp_ports=[closed_port], timeout=1.0)
    assert discover_hosts(["127.0.0.1/32"], opts) == []


def test_discover_hosts_exclusion(open_port):
    opts = DiscoveryOptions(
        skip_ping=True, tcp_ports=[open_port], timeout=1.0, exclude_ips=["127.0.0.1"]
    )
    assert discover_hosts(["127.0.0.1/32"], opts) == []


def test_discover_hosts_invalid_network():
    with pytest.raises(ValueError):
        discover_hosts(["nonsense"], DiscoveryOptions(icmp_ping=False))


def test_discover_hosts_skip_ping_needs_port():
    with pytest.raises(ValueError):
        discover_hosts(["127.0.0.1/32"], DiscoveryOptions(skip_ping=True, tcp_ports=[]))


def test_print_hosts(capsys):
    print_hosts([HostStatus("127.0.0.1", True, "ICMP", 0.0)])
    out = capsys.readouterr().out
    assert "发现主机数：1" in out
    assert "127.0.0.1" in out
    assert "ICMP" in out


def test_print_hosts_empty(capsys):
    print_hosts([])
    out = capsys.readouterr().out
    assert "发现主机数：0" in out
    assert "未发现活跃主机" in out