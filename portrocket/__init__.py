"""Port scanning, service and version detection, host discovery and scan reports."""

__version__ = "0.1.0"