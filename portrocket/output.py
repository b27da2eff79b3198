"""Scan output in text, JSON, XML and CSV formats."""

from __future__ import annotations

import copy
import csv
import dataclasses
import json
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, TextIO

from .host_discovery import HostStatus
from .types import PortState, ScanResult, ServiceInfo
from .udp_scanner import UDPScanResult


class OutputFormat(str, Enum):
    """Supported output formats."""

    TEXT = "text"
    JSON = "json"
    XML = "xml"
    CSV = "csv"


@dataclass
class ScanSummary:
    """Totals and timing of a scan."""

    target: str = ""
    start_time: datetime = datetime.min
    end_time: datetime = datetime.min
    duration: timedelta = timedelta(0)
    total_ports: int = 0
    open_ports: int = 0
    closed_ports: int = 0
    filtered_ports: int = 0


@dataclass
class OutputOptions:
    """Where and how to write results; an empty output_file means stdout."""

    format: OutputFormat | str = OutputFormat.TEXT
    output_file: str = ""
    verbose: bool = False


@dataclass
class PortInfo:
    """One port line of the output."""

    port: int
    protocol: str
    state: str = ""
    service_name: str = ""
    reason: str = ""


@dataclass
class MetadataItem:
    """A key/value pair of OS metadata."""

    key: str
    value: str


@dataclass
class DetectedOS:
    """An operating system guess as reported in the output."""

    name: str
    family: str = ""
    version: str = ""
    confidence: float = 0.0
    metadata: list[MetadataItem] = field(default_factory=list)


@dataclass
class PortScanOutput:
    """Everything a report contains."""

    summary: ScanSummary = field(default_factory=ScanSummary)
    open_ports: list[PortInfo] = field(default_factory=list)
    closed_ports: list[PortInfo] = field(default_factory=list)
    filtered_ports: list[PortInfo] = field(default_factory=list)
    host_discovery: list[HostStatus] = field(default_factory=list)
    service_versions: list[ServiceInfo] = field(default_factory=list)
    os_detection: list[DetectedOS] = field(default_factory=list)


def _as_dict(obj: Any) -> dict[str, Any]:
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    return dict(vars(obj))


def _port_dict(info: PortInfo) -> dict[str, Any]:
    data: dict[str, Any] = {"port": info.port, "protocol": info.protocol, "state": info.state}
    if info.service_name:
        data["service"] = info.service_name
    if info.reason:
        data["reason"] = info.reason
    return data


def _os_dict(info: DetectedOS) -> dict[str, Any]:
    data: dict[str, Any] = {"name": info.name}
    if info.family:
        data["family"] = info.family
    if info.version:
        data["version"] = info.version
    data["confidence"] = info.confidence
    data["metadata"] = {"items": [{"key": m.key, "value": m.value} for m in info.metadata]}
    return data


def _to_json_dict(result: PortScanOutput) -> dict[str, Any]:
    data: dict[str, Any] = {
        "summary": dataclasses.asdict(result.summary),
        "open_ports": [_port_dict(p) for p in result.open_ports],
    }
    if result.closed_ports:
        data["closed_ports"] = [_port_dict(p) for p in result.closed_ports]
    if result.filtered_ports:
        data["filtered_ports"] = [_port_dict(p) for p in result.filtered_ports]
    if result.host_discovery:
        data["host_discovery"] = [_as_dict(h) for h in result.host_discovery]
    if result.service_versions:
        data["service_versions"] = [_as_dict(s) for s in result.service_versions]
    if result.os_detection:
        data["os_detection"] = [_os_dict(o) for o in result.os_detection]
    return data


def _json_default(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    raise TypeError(f"cannot serialise {type(value).__name__}")


def write_json(result: PortScanOutput, stream: TextIO) -> None:
    """Write ``result`` as indented JSON."""
    json.dump(_to_json_dict(result), stream, indent=2, ensure_ascii=False, default=_json_default)
    stream.write("\n")


def _xml_text(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return str(value.total_seconds())
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _add_fields(parent: ET.Element, data: dict[str, Any]) -> None:
    for key, value in data.items():
        if isinstance(value, (list, tuple)):
            for item in value:
                ET.SubElement(parent, key).text = _xml_text(item)
        else:
            ET.SubElement(parent, key).text = _xml_text(value)


def _add_ports(parent: ET.Element, name: str, ports: list[PortInfo]) -> None:
    group = ET.SubElement(parent, name)
    for info in ports:
        element = ET.SubElement(
            group, "port", number=str(info.port), protocol=info.protocol
        )
        ET.SubElement(element, "state").text = info.state
        if info.service_name:
            ET.SubElement(element, "service").text = info.service_name
        if info.reason:
            ET.SubElement(element, "reason").text = info.reason


def _to_xml(result: PortScanOutput) -> ET.Element:
    root = ET.Element("PortScanOutput")
    _add_fields(ET.SubElement(root, "summary"), dataclasses.asdict(result.summary))
    _add_ports(root, "open_ports", result.open_ports)
    if result.closed_ports:
        _add_ports(root, "closed_ports", result.closed_ports)
    if result.filtered_ports:
        _add_ports(root, "filtered_ports", result.filtered_ports)
    if result.host_discovery:
        group = ET.SubElement(root, "host_discovery")
        for host in result.host_discovery:
            _add_fields(ET.SubElement(group, "host"), _as_dict(host))
    if result.service_versions:
        group = ET.SubElement(root, "service_versions")
        for service in result.service_versions:
            _add_fields(ET.SubElement(group, "service"), _as_dict(service))
    if result.os_detection:
        group = ET.SubElement(root, "os_detection")
        for os_info in result.os_detection:
            element = ET.SubElement(group, "os")
            ET.SubElement(element, "name").text = os_info.name
            if os_info.family:
                ET.SubElement(element, "family").text = os_info.family
            if os_info.version:
                ET.SubElement(element, "version").text = os_info.version
            ET.SubElement(element, "confidence").text = _xml_text(os_info.confidence)
            if os_info.metadata:
                metadata = ET.SubElement(element, "metadata")
                for item in os_info.metadata:
                    ET.SubElement(metadata, "item", key=item.key).text = item.value
    return root


def write_xml(result: PortScanOutput, stream: TextIO) -> None:
    """Write ``result`` as an XML document wrapped in ``<scan_result>``."""
    root = _to_xml(result)
    ET.indent(root, space="  ", level=1)
    stream.write('<?xml version="1.0" encoding="UTF-8"?>\n')
    stream.write("<scan_result>\n")
    stream.write("  " + ET.tostring(root, encoding="unicode") + "\n")
    stream.write("</scan_result>\n")


CSV_HEADER = ["端口", "协议", "状态", "服务", "原因"]


def write_csv(result: PortScanOutput, stream: TextIO) -> None:
    """Write open, then closed, then filtered ports as CSV rows."""
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for info in [*result.open_ports, *result.closed_ports, *result.filtered_ports]:
        writer.writerow(
            [str(info.port), info.protocol, info.state, info.service_name, info.reason]
        )


_RESET = "\033[0m"
_BOLD = "\033[1m"
_BLUE = "\033[34m"
_CYAN = "\033[36m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_MAGENTA = "\033[35m"
_RED = "\033[31m"
_BRIGHT_CYAN = "\033[96m"
_BRIGHT_YELLOW = "\033[93m"


def _header(text: str) -> str:
    return _BLUE + _BOLD + text + _RESET


def _title(text: str) -> str:
    return _CYAN + _BOLD + text + _RESET


def _highlight(text: str) -> str:
    return _MAGENTA + _BOLD + text + _RESET


def _info(text: str) -> str:
    return _BRIGHT_CYAN + text + _RESET


def _number(text: str) -> str:
    return _BRIGHT_YELLOW + text + _RESET


def _success(text: str) -> str:
    return _GREEN + text + _RESET


def _warning(text: str) -> str:
    return _YELLOW + _BOLD + text + _RESET


_BOX_TOP = "╭─────────────────────────────────────────────────────╮"
_BOX_BOTTOM = "╰─────────────────────────────────────────────────────╯"


def _box(stream: TextIO, caption: str, trailing_blank: bool = False) -> None:
    stream.write(_header(_BOX_TOP) + "\n")
    stream.write(_header(caption) + "\n")
    stream.write(_header(_BOX_BOTTOM) + "\n" + ("\n" if trailing_blank else ""))


def _escape_controls(line: str) -> str:
    return "".join("." if ord(ch) < 32 and ch not in "\t\n\r" else ch for ch in line)


def write_text(result: PortScanOutput, stream: TextIO, verbose: bool = False) -> None:
    """Write a coloured text report of ``result``."""
    summary = result.summary
    stream.write("\n" + _header(_BOX_TOP) + "\n")
    stream.write(_header("│               Go-Port-Rocket 扫描报告                │") + "\n")
    stream.write(_header(_BOX_BOTTOM) + "\n\n")

    stream.write(f"{_title('●  扫描目标:')} {_highlight(summary.target)}\n")
    stream.write(f"{_title('●  开始时间:')} {summary.start_time.strftime('%Y-%m-%d %H:%M:%S')}\n")
    stream.write(f"{_title('●  结束时间:')} {summary.end_time.strftime('%Y-%m-%d %H:%M:%S')}\n")
    stream.write(f"{_title('●  扫描耗时:')} {summary.duration.total_seconds():.2f} 秒\n\n")

    _box(stream, "│                    开放端口结果                     │")
    if not result.open_ports:
        stream.write("\n" + _warning("未发现开放端口") + "\n\n")
    else:
        stream.write(f"\n{_title('端口'):<15} {_title('状态'):<10} {_title('服务'):<30}\n")
        stream.write("─" * 60 + "\n")
        for port in result.open_ports:
            label = _highlight(f"{port.port}/{port.protocol}")
            stream.write(f"{label:<15} {_success('开放'):<10} {_info(port.service_name):<30}\n")
        stream.write("\n")

    if result.service_versions:
        _box(stream, "│                    服务版本信息                     │")
        stream.write(
            f"\n{_title('端口'):<6} {_title('服务'):<12} {_title('产品'):<15} "
            f"{_title('版本'):<20} {_title('额外信息')}\n"
        )
        stream.write("─" * 80 + "\n")
        for svc in result.service_versions:
            stream.write(
                f"{_number(str(svc.port)):<6} {_info(svc.name):<12} {_info(svc.product):<15} "
                f"{_info(svc.version):<20} {_info(svc.extra_info)}\n"
            )
            if svc.full_banner:
                stream.write(f"  {_title('● Banner 信息:')}\n")
                lines = svc.full_banner.split("\n")
                has_lines = any(line.strip() for line in lines)
                if has_lines:
                    stream.write("    " + "─" * 70 + "\n")
                for index, line in enumerate(lines, start=1):
                    if not line.strip():
                        continue
                    shown = highlight_banner_keywords(_escape_controls(line))
                    stream.write(f"    {_number(f'{index:2d}│')} {_info(shown)}\n")
                if has_lines:
                    stream.write("    " + "─" * 70 + "\n")
                stream.write("\n")
        stream.write("\n")

    if result.os_detection:
        _box(stream, "│                 操作系统检测结果                    │")
        stream.write(
            f"\n{_title('操作系统'):<15} {_title('系统家族'):<15} "
            f"{_title('版本'):<15} {_title('置信度'):<10}\n"
        )
        stream.write("─" * 60 + "\n")
        for os_info in result.os_detection:
            stream.write(
                f"{_highlight(os_info.name):<15} {_info(os_info.family):<15} "
                f"{_info(os_info.version):<15} {_number(f'{os_info.confidence:.2f}%'):<10}\n"
            )
        stream.write("\n")

    _box(stream, "│                    扫描统计信息                     │", trailing_blank=True)
    stream.write(f"{_title('●  总端口数:')} {_number(str(summary.total_ports))}\n")
    stream.write(f"{_title('●  开放端口:')} {_number(str(summary.open_ports))}\n")
    stream.write(f"{_title('●  关闭端口:')} {_number(str(summary.closed_ports))}\n")
    stream.write(f"{_title('●  过滤端口:')} {_number(str(summary.filtered_ports))}\n\n")


def _write(result: PortScanOutput, stream: TextIO, fmt: str, verbose: bool) -> None:
    if fmt == OutputFormat.JSON.value:
        write_json(result, stream)
    elif fmt == OutputFormat.XML.value:
        write_xml(result, stream)
    elif fmt == OutputFormat.CSV.value:
        write_csv(result, stream)
    else:
        write_text(result, stream, verbose)


def save_scan_result(result: PortScanOutput, options: OutputOptions | None = None) -> None:
    """Write ``result`` to the file or stdout named by ``options``; unknown formats give text."""
    options = options if options is not None else OutputOptions()
    fmt = str(getattr(options.format, "value", options.format)).lower()
    if not options.output_file:
        _write(result, sys.stdout, fmt, options.verbose)
        return
    try:
        stream = open(options.output_file, "w", encoding="utf-8", newline="")
    except OSError as exc:
        raise OSError(f"failed to create output file: {exc}") from exc
    with stream:
        _write(result, stream, fmt, options.verbose)


_TCP_STATES = {
    PortState.OPEN: ("open", "syn-ack"),
    PortState.CLOSED: ("closed", "reset"),
    PortState.FILTERED: ("filtered", "no-response"),
}


def create_scan_output(
    target: str,
    tcp_results: list[ScanResult],
    udp_results: list[UDPScanResult],
    service_info: dict[int, ServiceInfo | None] | None,
    host_status: list[HostStatus] | None,
    start_time: datetime,
    end_time: datetime,
) -> PortScanOutput:
    """Assemble the report data from TCP and UDP results and detection findings."""
    output = PortScanOutput(
        summary=ScanSummary(
            target=target,
            start_time=start_time,
            end_time=end_time,
            duration=end_time - start_time,
        )
    )

    open_tcp = closed_tcp = filtered_tcp = 0
    for result in tcp_results:
        mapping = _TCP_STATES.get(result.state)
        if mapping is None:
            continue
        state, reason = mapping
        info = PortInfo(result.port, "tcp", state, result.service_name, reason)
        if state == "open":
            output.open_ports.append(info)
            open_tcp += 1
        elif state == "closed":
            output.closed_ports.append(info)
            closed_tcp += 1
        else:
            output.filtered_ports.append(info)
            filtered_tcp += 1

    open_udp = filtered_udp = 0
    for udp in udp_results:
        state = str(getattr(udp.state, "value", udp.state))
        info = PortInfo(udp.port, "udp", reason=udp.reason)
        if state == "open":
            info.state = "open"
            output.open_ports.append(info)
            open_udp += 1
        elif state in ("filtered", "open|filtered"):
            info.state = state
            output.filtered_ports.append(info)
            filtered_udp += 1
        else:
            info.state = "closed"
            output.closed_ports.append(info)

    for port, svc in sorted((service_info or {}).items()):
        if svc is None:
            continue
        entry = copy.copy(svc)
        entry.port = port
        output.service_versions.append(entry)

    if host_status:
        output.host_discovery = list(host_status)

    seen: set[str] = set()
    for result in tcp_results:
        if result.os is None or result.os.name in seen:
            continue
        seen.add(result.os.name)
        metadata = [
            MetadataItem(str(key), str(value))
            for key, value in sorted((result.os.metadata or {}).items())
        ]
        output.os_detection.append(
            DetectedOS(
                name=result.os.name,
                family=result.os.family,
                version=result.os.version,
                confidence=result.os.confidence,
                metadata=metadata,
            )
        )

    total_udp = len(udp_results)
    output.summary.total_ports = len(tcp_results) + total_udp
    output.summary.open_ports = open_tcp + open_udp
    output.summary.closed_ports = closed_tcp + (total_udp - open_udp - filtered_udp)
    output.summary.filtered_ports = filtered_tcp + filtered_udp
    return output


_BANNER_PATTERNS = (
    (re.compile(r"[vV]ersion:?\s*([0-9]+\.[0-9]+(\.[0-9]+)?)", re.ASCII), _GREEN),
    (re.compile(r"([0-9]+\.[0-9]+(\.[0-9]+)(\.[0-9]+)?)"), _GREEN),
    (
        re.compile(
            r"(Apache|Nginx|IIS|lighttpd|OpenSSH|Sendmail|Postfix|Exim|Dovecot|MySQL|"
            r"MariaDB|PostgreSQL|MongoDB|Redis|Memcached)"
        ),
        _MAGENTA,
    ),
    (
        re.compile(
            r"(Ubuntu|Debian|CentOS|Fedora|Red\s*Hat|RHEL|Windows|FreeBSD|OpenBSD|NetBSD|"
            r"macOS|Darwin)",
            re.ASCII,
        ),
        _YELLOW,
    ),
    (
        re.compile(r"(Authentication|Login|Password|Credentials|SSL|TLS|Encryption|Cipher)"),
        _RED,
    ),
    (
        re.compile(
            r"(HTTP|HTTPS|FTP|SFTP|SSH|SMTP|POP3|IMAP|DNS|DHCP|SNMP|SMB|CIFS|RDP|Telnet|IRC)"
        ),
        _MAGENTA,
    ),
)


def highlight_banner_keywords(line: str) -> str:
    """Colour versions, products, systems, security words and protocols in ``line``."""
    result = line
    for pattern, colour in _BANNER_PATTERNS:
        result = pattern.sub(lambda m, c=colour: c + m.group(0) + _RESET, result)
    return result