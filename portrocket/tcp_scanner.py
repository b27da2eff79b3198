"""TCP connect scanner."""

from __future__ import annotations

import logging
import socket

from .base_scanner import BaseScanner
from .errors import InvalidOptionsError
from .types import PortState, ScanOptions, ScanResult, ScanType

logger = logging.getLogger(__name__)

_PROBE = b"\r\n"


class TCPScanner(BaseScanner):
    """Scans ports by completing a TCP handshake."""

    def __init__(self) -> None:
        super().__init__(ScanType.TCP)

    def scan_port(self, port: int) -> ScanResult:
        """Connect to ``port``; a refused connection is closed, a timeout filtered.

        Other connection errors are raised.
        """
        opts = self.opts
        if opts is None:
            raise InvalidOptionsError()
        timeout = opts.timeout or None
        try:
            conn = socket.create_connection((opts.target, port), timeout=timeout)
        except TimeoutError:
            return ScanResult(port=port, state=PortState.FILTERED)
        except ConnectionRefusedError:
            return ScanResult(port=port, state=PortState.CLOSED)

        result = ScanResult(port=port, state=PortState.OPEN, open=True)
        with conn:
            if opts.service_probe:
                try:
                    conn.settimeout(timeout)
                    conn.sendall(_PROBE)
                except OSError as exc:
                    logger.debug("failed to send probe: %s", exc)
                    return result
                try:
                    data = conn.recv(1024)
                except TimeoutError:
                    return result
                except OSError as exc:
                    logger.debug("failed to read response: %s", exc)
                    return result
                if data:
                    result.banner = data.decode("utf-8", errors="replace")
        return result

    def validate_options(self, opts: ScanOptions | None) -> None:
        """Validate options; TCP connect scans need nothing beyond the base checks."""
        super().validate_options(opts)

    def requires_root(self) -> bool:
        """TCP connect scans run without root privileges."""
        return False