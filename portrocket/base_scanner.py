"""Worker-pool based scanner that concrete scanners build on."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed

from .errors import (
    InvalidOptionsError,
    InvalidPortsError,
    InvalidTargetError,
    ScanCancelledError,
)
from .types import PortState, ScanOptions, ScanResult, ScanStats, ScanType, parse_ports

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_WORKERS = 100
DEFAULT_RATE_LIMIT = 1000
DEFAULT_RETRIES = 3


def _parse_port_spec(spec: str) -> list[int]:
    """Parse a port list, tolerating spaces around entries and range bounds."""
    entries = []
    for entry in spec.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "-" in entry:
            entry = "-".join(part.strip() for part in entry.split("-"))
        entries.append(entry)
    if not entries:
        raise ValueError("no valid ports specified")
    return parse_ports(",".join(entries))


class BaseScanner:
    """Scans every requested port with a pool of workers.

    Subclasses override :meth:`scan_port`; it may raise to report an error
    for that port, which is counted and logged.
    """

    def __init__(self, scan_type: ScanType) -> None:
        self.scan_type = ScanType(scan_type)
        self.opts: ScanOptions | None = None
        self._stats = ScanStats()
        self._lock = threading.Lock()

    def scan(
        self, opts: ScanOptions | None, cancel: threading.Event | None = None
    ) -> list[ScanResult]:
        """Scan all ports in ``opts.ports``.

        If ``cancel`` is set, the scan stops and ScanCancelledError is raised;
        its ``results`` attribute holds what was collected so far.
        """
        self.validate_options(opts)
        assert opts is not None
        self.opts = opts
        ports = _parse_port_spec(opts.ports)

        with self._lock:
            self._stats = ScanStats(total_ports=len(ports))

        def job(port: int) -> ScanResult | None:
            if cancel is not None and cancel.is_set():
                return None
            return self.scan_port(port)

        results: list[ScanResult] = []
        with ThreadPoolExecutor(max_workers=opts.workers) as pool:
            futures = {pool.submit(job, port): port for port in ports}
            for future in as_completed(futures):
                port = futures[future]
                try:
                    result = future.result()
                except Exception as exc:  # noqa: BLE001 - any per-port failure is counted
                    with self._lock:
                        self._stats.errors += 1
                    logger.error("error scanning port %d: %s", port, exc)
                    continue
                if result is None:
                    continue
                results.append(result)
                self.update_stats(result)

        if cancel is not None and cancel.is_set():
            error = ScanCancelledError()
            error.results = results  # type: ignore[attr-defined]
            raise error
        return results

    def scan_port(self, port: int) -> ScanResult:
        """Scan one port; the base implementation finds nothing."""
        return ScanResult()

    def update_stats(self, result: ScanResult) -> None:
        """Count ``result`` in the statistics."""
        with self._lock:
            if result.state == PortState.OPEN:
                self._stats.open_ports += 1
            elif result.state == PortState.CLOSED:
                self._stats.closed_ports += 1
            elif result.state == PortState.FILTERED:
                self._stats.filtered_ports += 1

    def validate_options(self, opts: ScanOptions | None) -> None:
        """Check ``opts`` and fill in defaults for unset numeric fields."""
        if opts is None:
            raise InvalidOptionsError()
        if not opts.target:
            raise InvalidTargetError()
        if not opts.ports:
            raise InvalidPortsError()
        if opts.timeout <= 0:
            opts.timeout = DEFAULT_TIMEOUT
        if opts.workers <= 0:
            opts.workers = DEFAULT_WORKERS
        if opts.rate_limit <= 0:
            opts.rate_limit = DEFAULT_RATE_LIMIT
        if opts.retries < 0:
            opts.retries = DEFAULT_RETRIES

    def requires_root(self) -> bool:
        """Whether this scanner needs root privileges."""
        return False

    @property
    def stats(self) -> ScanStats:
        """Statistics of the current or last scan."""
        with self._lock:
            return self._stats