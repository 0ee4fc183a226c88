"""
Scan lifecycle steps.

- ScanSubmitter: login, project resolution, scan creation
- ScanWaiter: bounded status polling
- ResultRetriever: risk report assembly
"""

from .retriever import ResultRetriever
from .submitter import ScanSubmitter
from .waiter import ScanWaiter, WaitConfig, WaitOutcome


__all__ = [
    "ScanSubmitter",
    "ScanWaiter",
    "WaitConfig",
    "WaitOutcome",
    "ResultRetriever",
]
