"""Human-readable console report of port scan results."""

from __future__ import annotations

import io
from datetime import datetime

from .service_detection import get_service_description
from .types import PortState, ScanResult

_RULE = "━" * 78
_THIN_RULE = "─" * 76
_TOP_BANNER = (
    "┏" + "━" * 78 + "┓\n"
    "┃                            【 端口扫描报告 】                                ┃\n"
    "┗" + "━" * 78 + "┛"
)
_BOTTOM_BANNER = (
    "┏" + "━" * 78 + "┓\n"
    "┃                         扫描完成，感谢使用！                                 ┃\n"
    "┗" + "━" * 78 + "┛"
)


def _escape_controls(line: str) -> str:
    return "".join("." if ord(ch) < 32 and ch not in "\t\n\r" else ch for ch in line)


def _describe_os(result: ScanResult) -> str:
    os_info = result.os
    desc = os_info.name
    if os_info.version:
        desc += f" {os_info.version}"
    if os_info.family:
        desc += f" ({os_info.family})"
    detail = f"{desc} - 置信度: {os_info.confidence:.1f}%"
    ttl = os_info.metadata.get("ttl") if os_info.metadata else None
    if ttl is not None:
        detail += f" [TTL: {ttl}]"
    return detail


def _service_text(result: ScanResult) -> str:
    if result.service is not None:
        name = result.service.name
        text = name
        if result.service.version:
            text += " " + result.service.version
        if result.service.product:
            text += " - " + result.service.product
    elif result.service_name:
        name = result.service_name
        text = name
    else:
        name = ""
        text = "未知"
    if name:
        description = get_service_description(name)
        if description != get_service_description(""):
            text += f" ({description})"
    return text


def _banner_of(result: ScanResult) -> str:
    if result.banner:
        return result.banner
    if result.service is not None and result.service.banner:
        return result.service.banner
    return ""


def format_results(results: list[ScanResult], now: datetime) -> str:
    """Render the scan report for ``results`` as printed at time ``now``."""
    open_list: list[ScanResult] = []
    closed = filtered = 0
    os_details: dict[str, None] = {}
    for result in results:
        if result.state == PortState.OPEN:
            open_list.append(result)
            if result.os is not None:
                os_details.setdefault(_describe_os(result), None)
        elif result.state == PortState.CLOSED:
            closed += 1
        elif result.state == PortState.FILTERED:
            filtered += 1

    out = io.StringIO()
    write = out.write

    write("\n" + _TOP_BANNER + "\n\n")
    write("【扫描概要】\n" + _RULE + "\n")
    write(
        f"总共扫描端口: {len(results)}   开放: {len(open_list)}   "
        f"关闭: {closed}   被过滤: {filtered}\n"
    )
    write(f"扫描时间: {now.strftime('%Y-%m-%d %H:%M:%S')}\n\n")

    if open_list:
        write("【开放端口详情】\n" + _RULE + "\n")
        write("  端口    协议    状态    服务    详细信息\n")
        write(_THIN_RULE + "\n")
        for result in open_list:
            write(f"  {result.port:<7d} {'TCP':<8}开放    {_service_text(result):<30}")
            if result.os is not None:
                write(f"\n      └─ 操作系统: {result.os.name}")
                if result.os.family:
                    write(f" ({result.os.family})")
                write(f" - 置信度: {result.os.confidence:.1f}%")
            banner = _banner_of(result)
            if banner:
                write("\n      └─ Banner: ")
                first = True
                for line in banner.split("\n"):
                    if not line.strip():
                        continue
                    escaped = _escape_controls(line)
                    if first:
                        write(escaped)
                        first = False
                    else:
                        write(f"\n             {escaped}")
            write("\n")
        write("\n")

    if os_details:
        write("【操作系统检测结果】\n" + _RULE + "\n")
        for detail in os_details:
            write(f"  ● {detail}\n")
        write("\n")
        write("  [说明] 操作系统检测基于TTL值和TCP/IP栈特征分析，结果仅供参考\n")
        write("  [提示] 服务器可能使用了代理、负载均衡等技术，可能影响检测结果的准确性\n\n")

    write("【安全建议】\n" + _RULE + "\n")
    if open_list:
        write("  ● 建议检查所有开放端口是否必要，关闭不需要的服务以减小攻击面\n")
        write("  ● 确保所有开放的服务都已更新到最新版本并正确配置安全选项\n")
        if filtered:
            write("  ● 已发现被过滤端口，建议检查防火墙规则的有效性和完整性\n")
    elif filtered:
        write("  ● 所有端口均被过滤，表明防火墙工作良好，建议持续维护更新防火墙策略\n")
    else:
        write("  ● 未发现开放端口，建议定期扫描确保安全状态\n")

    write(_BOTTOM_BANNER + "\n")

    has_banner = any(_banner_of(result) for result in results)
    if not has_banner and open_list:
        write("\n提示: 要获取服务Banner信息，请使用 --banner-grab 参数启用Banner抓取功能\n")
        write(
            "例如: go-port-rocket scan -t example.com -p 80,443,8080 "
            "--service-detection --banner-grab\n"
        )
    return out.getvalue()


def print_results(results: list[ScanResult]) -> None:
    """Print the scan report for ``results`` to standard output."""
    print(format_results(results, datetime.now()), end="")