"""Creates scanners by scan type."""

from __future__ import annotations

from .base_scanner import BaseScanner
from .syn_scanner import SYNScanner
from .tcp_scanner import TCPScanner
from .types import ScanType

_IMPLEMENTED = {
    ScanType.TCP: TCPScanner,
    ScanType.SYN: SYNScanner,
}


class ScannerFactory:
    """Builds the scanner matching a scan type."""

    def create_scanner(self, scan_type: ScanType | str) -> BaseScanner:
        """Return a new scanner; ValueError for unknown or unavailable types."""
        try:
            kind = ScanType(scan_type)
        except ValueError:
            raise ValueError(f"unsupported scan type: {scan_type}") from None
        scanner_class = _IMPLEMENTED.get(kind)
        if scanner_class is None:
            raise ValueError(f"{kind.value.upper()} scan is not available yet")
        return scanner_class()

    def supported_scan_types(self) -> list[ScanType]:
        """All scan types the tool knows about."""
        return list(ScanType)

    def implemented_scan_types(self) -> list[ScanType]:
        """Scan types that create_scanner can build."""
        return list(_IMPLEMENTED)

    def is_scan_type_supported(self, scan_type: ScanType | str) -> bool:
        """Whether ``scan_type`` is a known scan type."""
        return scan_type in self.supported_scan_types()

    def is_scan_type_implemented(self, scan_type: ScanType | str) -> bool:
        """Whether create_scanner can build ``scan_type``."""
        return scan_type in self.implemented_scan_types()