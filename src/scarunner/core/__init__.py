"""
Core module - Domain model, configuration and orchestration.

The orchestrator itself lives in ``scarunner.core.orchestrator``; it pulls in
the client and sca packages, so it is not imported here.
"""

from .config import ScaConfig, ScanConfig, ThresholdConfig, load_scan_config
from .errors import (
    ConfigurationError,
    FingerprintWriteError,
    RemoteCallError,
    ResultRetrievalError,
    ScaError,
    ScanAbortedError,
    ScanFailedError,
    ScanTimeoutError,
    TaskSkippedError,
    TransportError,
)
from .evaluator import ThresholdEvaluator
from .models import (
    LocalDirectorySource,
    ProjectHandle,
    RemoteRepositorySource,
    ScanJob,
    ScanStatus,
    Severity,
    SourceLocationType,
    ThresholdEvaluation,
    ThresholdViolation,
)


__all__ = [
    # Configuration
    "ScaConfig",
    "ScanConfig",
    "ThresholdConfig",
    "load_scan_config",
    # Errors
    "ScaError",
    "ConfigurationError",
    "TaskSkippedError",
    "FingerprintWriteError",
    "TransportError",
    "RemoteCallError",
    "ResultRetrievalError",
    "ScanTimeoutError",
    "ScanFailedError",
    "ScanAbortedError",
    # Model
    "SourceLocationType",
    "ScanStatus",
    "Severity",
    "ProjectHandle",
    "RemoteRepositorySource",
    "LocalDirectorySource",
    "ScanJob",
    "ThresholdViolation",
    "ThresholdEvaluation",
    "ThresholdEvaluator",
]
