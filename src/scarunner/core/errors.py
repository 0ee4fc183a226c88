"""
Errors - Exception hierarchy for the SCA scan lifecycle.

Every failure that leaves the orchestrator is one of these. Callers can tell
apart bad input, "nothing to scan", remote call failures, remote-reported
scan failures and giving up on polling.
"""

from typing import Optional


class ScaError(Exception):
    """Base exception for scarunner errors"""
    pass


class ConfigurationError(ScaError):
    """Raised when input is invalid or contradictory (never retried)"""
    pass


class TaskSkippedError(ScaError):
    """
    Raised when there is legitimately nothing to scan.

    Not a failure: it short-circuits the rest of the pipeline and lets the
    caller report a skip instead of an error.
    """
    pass


class FingerprintWriteError(ScaError):
    """Raised when a required fingerprints file could not be written"""
    pass


class TransportError(ScaError):
    """
    Raised by transport implementations for any network or HTTP failure.

    Attributes:
        status: HTTP status code, None for connection-level failures
        transient: Whether retrying the same request may succeed
    """

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        transient: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.transient = transient


class RemoteCallError(ScaError):
    """
    Raised when a remote step fails.

    The message names the step; the underlying exception is kept both as
    ``cause`` and as ``__cause__``.
    """

    def __init__(self, step: str, cause: Optional[BaseException] = None):
        message = step if cause is None else f"{step}. {cause}"
        super().__init__(message)
        self.step = step
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class ResultRetrievalError(RemoteCallError):
    """Raised when scan results could not be retrieved"""
    pass


class ScanTimeoutError(ScaError):
    """Raised when polling gave up before the scan reached a terminal status"""

    def __init__(self, scan_id: str, elapsed: float, max_wait: float):
        super().__init__(
            f"Scan {scan_id} did not finish within {max_wait:.0f}s "
            f"(waited {elapsed:.1f}s)"
        )
        self.scan_id = scan_id
        self.elapsed = elapsed
        self.max_wait = max_wait


class ScanFailedError(ScaError):
    """Raised when the service reported the scan as failed or canceled"""

    def __init__(self, scan_id: str, status, message: Optional[str] = None):
        text = f"Scan {scan_id} ended with status {status.value}"
        if message:
            text += f": {message}"
        super().__init__(text)
        self.scan_id = scan_id
        self.status = status


class ScanAbortedError(ScaError):
    """Raised when the caller aborted waiting for a scan"""
    pass
