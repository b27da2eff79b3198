import socket
import threading

import pytest

from portrocket.service_detection import (
    COMMON_SERVICES,
    ServiceDetectionOptions,
    detect_service,
    get_service_description,
    get_service_probes,
    parse_version_from_banner,
)
from portrocket.types import ServiceInfo


def _serve_once(banner, reply=None):
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    port = srv.getsockname()[1]

    def run():
        conn, _ = srv.accept()
        conn.settimeout(5)
        with conn:
            try:
                if banner:
                    conn.sendall(banner)
                if reply is not None:
                    conn.recv(1024)
                    conn.sendall(reply)
                conn.recv(1024)
            except OSError:
                pass

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return srv, port, thread


def test_description_lookup_is_case_insensitive():
    assert get_service_description("HTTP") == "HTTP 网页服务器"
    assert get_service_description("ssh") == "SSH 安全远程登录"


def test_description_unknown():
    assert get_service_description("gopher") == "未知服务"


def test_probes_limited_by_intensity():
    probes = get_service_probes("http", 5)
    assert [p.service_name for p in probes] == ["http", "ssh", "ftp", "smtp", "mysql"]
    assert probes[0].request == b"HEAD / HTTP/1.0\r\n\r\n"


def test_probes_high_intensity_returns_all():
    probes = get_service_probes("", 20)
    assert len(probes) == len(get_service_probes("", 10))
    assert probes[-1].service_name == "https"


def test_probes_negative_intensity():
    with pytest.raises(ValueError):
        get_service_probes("http", -1)


def test_parse_version_from_banner():
    info = ServiceInfo(full_banner="Apache/2.4.41 (Unix)")
    parse_version_from_banner(info)
    assert info.product == "Apache"
    assert info.version == "2.4.41"


def test_parse_version_with_known_product_takes_first_group():
    info = ServiceInfo(product="Apache", full_banner="Apache/2.4.41 (Unix)")
    parse_version_from_banner(info)
    assert info.product == "Apache"
    assert info.version == "Apache"


def test_parse_version_empty_banner_leaves_info():
    info = ServiceInfo(product="x", version="y")
    parse_version_from_banner(info)
    assert (info.product, info.version) == ("x", "y")


def test_detect_service_banner():
    srv, port, thread = _serve_once(b"Apache/2.4.41 (Unix)\r\n")
    with srv:
        opts = ServiceDetectionOptions(enable_version_detection=False, timeout=2.0)
        info = detect_service("127.0.0.1", port, opts)
        thread.join(5)
    assert info.full_banner == "Apache/2.4.41 (Unix)"
    assert info.product == "Apache"
    assert info.version == "2.4.41"
    assert info.port == port
    assert info.name == COMMON_SERVICES.get(port, "")


def test_detect_service_probe_sets_product():
    srv, port, thread = _serve_once(
        b"Apache/2.4.41 (Unix)\r\n", b"HTTP/1.0 200 OK\r\nServer: nginx\r\n\r\n"
    )
    with srv:
        opts = ServiceDetectionOptions(version_intensity=1, timeout=2.0)
        info = detect_service("127.0.0.1", port, opts)
        thread.join(5)
    assert info.product == "nginx"
    assert info.version == "2.4.41"


def test_detect_service_without_banner_grab():
    srv, port, thread = _serve_once(b"Apache/2.4.41 (Unix)\r\n")
    with srv:
        opts = ServiceDetectionOptions(
            enable_version_detection=False, banner_grab=False, timeout=2.0
        )
        info = detect_service("127.0.0.1", port, opts)
        thread.join(5)
    assert info.full_banner == ""
    assert info.product == ""


def test_detect_service_connection_refused():
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    with pytest.raises(OSError):
        detect_service("127.0.0.1", port, ServiceDetectionOptions(timeout=1.0))