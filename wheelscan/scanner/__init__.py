"""Watchlist scanner: five-phase filter and scoring for cash-secured puts.

The orchestrator lives in ``wheelscan.scanner.pipeline``.
"""

from .constants import SCANNER, ScannerConfig
from .state import ScanOutcome, ScanResultRecord


__all__ = [
    "SCANNER",
    "ScanOutcome",
    "ScanResultRecord",
    "ScannerConfig",
]
