import socket
import threading

import pytest

from portrocket.scanner import (
    Scanner,
    execute_scan,
    extract_ttl,
    guess_os_from_ttl,
    join_ports,
    parse_os_family,
    parse_port_spec,
    refine_os_info,
    scan_port,
    scan_ports,
    tcp_scan,
)
from portrocket.service_detection import COMMON_SERVICES, get_service_description
from portrocket.types import OSInfo, PortState, ScanConfig, ScanOptions, ScanType


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


def test_tcp_scan_open_port(open_port):
    results = tcp_scan("127.0.0.1", [open_port], 1.0, 1)
    assert len(results) == 1
    assert results[0].state == PortState.OPEN


def test_tcp_scan_closed_port(closed_port):
    results = tcp_scan("127.0.0.1", [closed_port], 1.0, 1)
    assert len(results) == 1
    assert results[0].state == PortState.CLOSED


def test_tcp_scan_without_ports_raises():
    with pytest.raises(ValueError):
        tcp_scan("127.0.0.1", [], 1.0, 1)


def test_scan_ports_open(open_port, capsys):
    config = ScanConfig(target="127.0.0.1", timeout=1.0, workers=1)
    results = scan_ports(config, [open_port])
    assert len(results) == 1
    assert results[0].state == PortState.OPEN
    assert f"Port {open_port}" in capsys.readouterr().out


def test_scan_ports_closed(closed_port):
    config = ScanConfig(target="127.0.0.1", timeout=1.0, workers=1)
    results = scan_ports(config, [closed_port])
    assert len(results) == 1
    assert results[0].state == PortState.CLOSED


def test_scan_ports_multiple_keeps_order(open_port, closed_port):
    config = ScanConfig(target="127.0.0.1", timeout=1.0, workers=1)
    results = scan_ports(config, [open_port, closed_port])
    assert [r.port for r in results] == [open_port, closed_port]
    assert any(r.state == PortState.OPEN for r in results)


def test_scan_ports_rejects_zero_workers():
    with pytest.raises(ValueError):
        scan_ports(ScanConfig(target="127.0.0.1", timeout=1.0, workers=0), [80])


def test_scan_port_open(open_port):
    result = scan_port("127.0.0.1", open_port, 1.0)
    assert result.state == PortState.OPEN
    assert result.open is True
    assert result.type == ScanType.TCP


def test_scan_port_closed(closed_port):
    result = scan_port("127.0.0.1", closed_port, 1.0)
    assert result.state == PortState.CLOSED
    assert result.open is False


@pytest.mark.parametrize(
    "port,service,description",
    [
        (80, "HTTP", "HTTP 网页服务器"),
        (443, "HTTPS", "HTTPS 加密网页服务器"),
        (22, "SSH", "SSH 安全远程登录"),
        (21, "FTP", "FTP 文件传输服务"),
        (25, "SMTP", "SMTP 电子邮件发送服务"),
        (53, "DNS", "DNS 域名服务"),
        (3306, "MySQL", "MySQL 数据库服务"),
    ],
)
def test_common_services(port, service, description):
    assert COMMON_SERVICES[port] == service
    assert get_service_description(COMMON_SERVICES[port]) == description


def test_common_services_missing_port():
    assert 9999 not in COMMON_SERVICES
    assert get_service_description(COMMON_SERVICES.get(9999, "")) == "未知服务"


def test_parse_port_spec_trims_and_skips_empty():
    assert parse_port_spec(" 80 , 443,,") == [80, 443]
    assert parse_port_spec("80 - 82") == [80, 81, 82]


@pytest.mark.parametrize("spec", ["", "abc", "80-", "82-80", "0", "1-2-3"])
def test_parse_port_spec_errors(spec):
    with pytest.raises(ValueError):
        parse_port_spec(spec)


@pytest.mark.parametrize(
    "name,family",
    [
        ("Microsoft Windows 10", "Windows"),
        ("Linux 5.4", "Linux"),
        ("macOS Ventura", "MacOS"),
        ("FreeBSD 13", "BSD"),
        ("Android 12", "Android"),
        ("SunOS 5.11", "Solaris"),
        ("", "Unknown"),
    ],
)
def test_parse_os_family(name, family):
    assert parse_os_family(name) == family


@pytest.mark.parametrize(
    "ttl,guess",
    [(64, "Linux/Unix"), (128, "Windows"), (255, "Cisco/Network Device"), (300, "Unknown")],
)
def test_guess_os_from_ttl(ttl, guess):
    assert guess_os_from_ttl(ttl) == guess


def test_extract_ttl_formats():
    assert extract_ttl("64 bytes from 127.0.0.1: icmp_seq=1 ttl=64 time=0.05 ms") == 64
    assert extract_ttl("Reply from 10.0.0.1: bytes=32 time<1ms TTL=128") == 128


def test_extract_ttl_missing():
    with pytest.raises(ValueError):
        extract_ttl("request timed out")


def test_join_ports():
    assert join_ports([80, 443, 8080]) == "80,443,8080"
    assert join_ports([]) == ""


def test_refine_os_info_windows_ttl():
    info = OSInfo(name="Windows", family="Windows", confidence=50.0, metadata={"ttl": "128"})
    refine_os_info(info, "127.0.0.1")
    assert info.name == "Windows 10/11"
    assert info.confidence == 60.0


def test_refine_os_info_caps_confidence():
    info = OSInfo(name="Windows", family="Windows", confidence=95.0, metadata={"ttl": "127"})
    refine_os_info(info, "127.0.0.1")
    assert info.name == "Windows 7/8"
    assert info.confidence == 100.0


def test_refine_os_info_other_family_unchanged():
    info = OSInfo(name="Linux", family="Linux", confidence=70.0)
    refine_os_info(info, "127.0.0.1")
    assert info.name == "Linux"
    assert info.confidence == 70.0


def test_scanner_requires_options():
    with pytest.raises(ValueError):
        Scanner(None)


def test_scanner_rejects_bad_ports():
    with pytest.raises(ValueError):
        Scanner(ScanOptions(target="127.0.0.1", ports="x"))


def test_scanner_scan_reports_progress(open_port, closed_port):
    scanner = Scanner(
        ScanOptions(
            target="127.0.0.1",
            ports=f"{open_port},{closed_port}",
            timeout=1.0,
            workers=2,
        )
    )
    results = scanner.scan()
    states = {r.port: r.state for r in results}
    assert states == {open_port: PortState.OPEN, closed_port: PortState.CLOSED}
    assert scanner.progress == 100.0


def test_scanner_cancelled_before_start(open_port):
    scanner = Scanner(ScanOptions(target="127.0.0.1", ports=str(open_port), timeout=1.0, workers=1))
    cancel = threading.Event()
    cancel.set()
    assert scanner.scan(cancel) == []


def test_scanner_unknown_network_is_filtered(open_port):
    scanner = Scanner(
        ScanOptions(
            target="127.0.0.1", ports=str(open_port), scan_type=ScanType.MAIMON, timeout=1.0, workers=1
        )
    )
    assert scanner.scan_port(open_port).state == PortState.FILTERED


def test_execute_scan_tcp(open_port):
    opts = ScanOptions(target="127.0.0.1", ports=str(open_port), scan_type=ScanType.TCP, timeout=1.0, workers=1)
    results = execute_scan(opts)
    assert [r.state for r in results] == [PortState.OPEN]


def test_execute_scan_unsupported_type():
    opts = ScanOptions(target="127.0.0.1", ports="80", scan_type=ScanType.MAIMON, timeout=1.0, workers=1)
    with pytest.raises(ValueError):
        execute_scan(opts)


def test_execute_scan_bad_ports():
    with pytest.raises(ValueError):
        execute_scan(ScanOptions(target="127.0.0.1", ports="nope", timeout=1.0, workers=1))