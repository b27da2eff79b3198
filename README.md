# portrocket

A network port scanning library built on the standard library alone. It offers:

- TCP connect scans (`portrocket.scanner`, `portrocket.tcp_scanner`);
- UDP scans with protocol-aware probes for DNS, NTP, SNMP, NetBIOS, mDNS,
  SSDP, DHCP, RIP, TFTP and syslog, and analysis of the replies
  (`portrocket.udp_scanner`);
- raw-socket SYN, FIN, NULL, XMAS and ACK scans for privileged users
  (`portrocket.raw_scanner`, `portrocket.syn_scanner`);
- service and version detection from banners and probes
  (`portrocket.service_detection`, `portrocket.version_detection`);
- host discovery by ICMP echo, TCP connect and the ARP cache, plus CIDR and
  start/end address ranges (`portrocket.host_discovery`);
- reports as coloured text, JSON, XML or CSV (`portrocket.output`) and a
  console summary (`portrocket.report`).

Timeouts are given in seconds throughout.

## Parsing port specifications

```python
from portrocket.netutils import parse_port_range

parse_port_range("80-82,443")   # [80, 81, 82, 443]
parse_port_range("80 - 82")     # [80, 81, 82]
parse_port_range("0")           # raises ValueError: out of range
```

`portrocket.types.parse_ports` and `portrocket.scanner.parse_port_spec` are
more lenient: ports outside 1-65535 are silently dropped, and a ValueError is
raised only for malformed input or when no port remains.

## Scanning

```python
from portrocket.scanner import tcp_scan, udp_scan
from portrocket.types import PortState

results = tcp_scan("127.0.0.1", [22, 80, 443], 1.0, 10)
open_ports = [r.port for r in results if r.state is PortState.OPEN]
```

`execute_scan(ScanOptions(...))` runs the scan named by `opts.scan_type`
(`ScanType.TCP`, `UDP`, `SYN`, `FIN`, `NULL`, `XMAS` or `ACK`) and, when
`opts.service` enables version detection, identifies the services on open
ports.

Scanners can also be created by type through the factory; TCP and SYN are the
implemented types, and `create_scanner` raises ValueError for the others:

```python
import threading
from portrocket.factory import ScannerFactory
from portrocket.types import ScanOptions, ScanType

factory = ScannerFactory()
scanner = factory.create_scanner(ScanType.TCP)
results = scanner.scan(ScanOptions(target="127.0.0.1", ports="20-25,80"))
print(scanner.stats.open_ports)
```

`BaseScanner.scan` fills in defaults for unset options (5 s timeout,
100 workers). It accepts a `threading.Event`; when the event is set the scan
stops and raises `ScanCancelledError`, whose `results` attribute holds what
was collected so far. `UDPScanner.scan` behaves the same way.

Raw-socket scans (`syn_scan`, `fin_scan`, ...) and `SYNScanner` need root
privileges and raise `RootRequiredError` otherwise.

## Service detection

```python
from portrocket.service_detection import ServiceDetectionOptions, detect_service
from portrocket.version_detection import detect_service_version

info = detect_service("127.0.0.1", 22, ServiceDetectionOptions(timeout=2.0))
info = detect_service_version("127.0.0.1", 22, 2.0)
print(info.name, info.product, info.version)
```

## Host discovery

```python
from portrocket.host_discovery import (
    DiscoveryOptions, discover_hosts, generate_ip_range, generate_ip_range_from_cidr,
)

generate_ip_range("192.168.1.1", "192.168.1.3")
# ['192.168.1.1', '192.168.1.2', '192.168.1.3']
len(generate_ip_range_from_cidr("10.0.0.0/30"))  # 4

hosts = discover_hosts(["192.168.1.0/30"], DiscoveryOptions(timeout=1.0))
```

Ranges larger than 65536 addresses are refused. The ICMP probe uses a raw
socket; without the privileges for one it falls back to the system `ping`
command. ARP checks read the local cache through the `arp` command.

## Reports

`create_scan_output` gathers TCP and UDP results, detected services and host
status into one `PortScanOutput`; `save_scan_result` writes it as text (the
default), JSON, XML or CSV, to a file or to standard output.

```python
from datetime import datetime
from portrocket.output import OutputFormat, OutputOptions, create_scan_output, save_scan_result
from portrocket.scanner import tcp_scan

start = datetime.now()
results = tcp_scan("127.0.0.1", [22, 80], 1.0, 10)
report = create_scan_output("127.0.0.1", results, [], {}, [], start, datetime.now())
save_scan_result(report, OutputOptions(format=OutputFormat.JSON, output_file="scan.json"))
```

`portrocket.report.format_results(results, now)` renders a console summary of
scan results as a string, and `print_results` prints it.

## Errors

Scanner failures are raised as subclasses of `ScannerError` from
`portrocket.errors`, such as `InvalidTargetError`, `InvalidPortsError`,
`RootRequiredError` and `ScanTimeoutError`; `is_scanner_error` tells them
apart from other exceptions. Network failures surface as `OSError` and bad
input as `ValueError`.

## What it does not do

- There is no command-line program; the package is used from Python.
- Operating system detection is only a guess from the TTL of a `ping` reply;
  there is no fingerprint database.
- Results are not stored anywhere, and no metrics or server are provided.