"""
Scan Waiter - Polls a scan until the service reports a terminal status.

The loop is bounded in two ways: total wait time measured from submission,
and consecutive transient poll errors. Running out of time raises
ScanTimeoutError, which callers can tell apart from a FAILED or CANCELED
status reported by the service.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import ValidationError

from ..client import endpoints
from ..client.schemas import ScanStatusResponse
from ..client.transport import Transport
from ..core.errors import RemoteCallError, ScanAbortedError, ScanTimeoutError, TransportError
from ..core.models import ScanJob, ScanStatus
from ..core.stopwatch import Clock, Sleeper, format_duration, monotonic, sleep


@dataclass(frozen=True)
class WaitConfig:
    """Polling limits"""
    poll_interval: float = 5.0
    max_wait: float = 30 * 60.0
    max_poll_errors: int = 3


@dataclass(frozen=True)
class WaitOutcome:
    """Terminal status plus the bookkeeping of how we got there"""
    job: ScanJob
    polls: int
    elapsed: float
    message: Optional[str] = None

    @property
    def status(self) -> ScanStatus:
        return self.job.status


class ScanWaiter:
    """
    Bounded polling state machine over a scan's status.

    QUEUED -> RUNNING -> {FINISHED, FAILED, CANCELED}

    Example:
        >>> waiter = ScanWaiter(transport, WaitConfig(poll_interval=5, max_wait=600))
        >>> outcome = await waiter.wait_for_completion(job)
        >>> outcome.status
        <ScanStatus.FINISHED: 'finished'>
    """

    def __init__(
        self,
        transport: Transport,
        config: Optional[WaitConfig] = None,
        clock: Clock = monotonic,
        sleeper: Sleeper = sleep,
        abort_event: Optional[asyncio.Event] = None,
    ):
        """
        Initialize the waiter.

        Args:
            transport: Used for status requests
            config: Polling limits (defaults if None)
            clock: Monotonic clock, must match the one that stamped the job
            sleeper: Async sleep between polls
            abort_event: Setting it stops polling with ScanAbortedError
        """
        self.transport = transport
        self.config = config or WaitConfig()
        self.clock = clock
        self.sleeper = sleeper
        self.abort_event = abort_event
        self.logger = structlog.get_logger(__name__)

    async def wait_for_completion(self, job: ScanJob) -> WaitOutcome:
        """
        Poll until the scan reaches a terminal status.

        Args:
            job: Scan to wait for; its started_at anchors elapsed time

        Returns:
            WaitOutcome whose job carries the terminal status

        Raises:
            ScanTimeoutError: max_wait elapsed without a terminal status
            RemoteCallError: Status could not be fetched
            ScanAbortedError: abort_event was set
        """
        cfg = self.config
        polls = 0
        consecutive_errors = 0

        self.logger.info(
            "waiting_for_scan",
            scan_id=job.scan_id,
            poll_interval=cfg.poll_interval,
            max_wait=cfg.max_wait,
        )

        while True:
            self._check_abort(job)
            polls += 1

            try:
                status, message = await self._fetch_status(job.scan_id)
                consecutive_errors = 0
            except TransportError as e:
                if not e.transient:
                    raise RemoteCallError("Error getting scan status", e) from e
                consecutive_errors += 1
                self.logger.warning(
                    "scan_status_poll_error",
                    scan_id=job.scan_id,
                    error=str(e),
                    attempt=consecutive_errors,
                    max_errors=cfg.max_poll_errors,
                )
                if consecutive_errors > cfg.max_poll_errors:
                    raise RemoteCallError(
                        f"Error getting scan status after {consecutive_errors} attempts", e
                    ) from e
                status, message = None, None

            elapsed = job.elapsed(self.clock)

            if status is not None:
                if status is not job.status:
                    self.logger.info(
                        "scan_status_changed",
                        scan_id=job.scan_id,
                        status=status.value,
                        elapsed=format_duration(elapsed),
                    )
                job = job.with_status(status)

                if status.is_terminal:
                    self.logger.info(
                        "scan_reached_terminal_status",
                        scan_id=job.scan_id,
                        status=status.value,
                        polls=polls,
                        elapsed=format_duration(elapsed),
                    )
                    return WaitOutcome(job=job, polls=polls, elapsed=elapsed, message=message)

            if elapsed >= cfg.max_wait:
                self.logger.error(
                    "scan_wait_timeout",
                    scan_id=job.scan_id,
                    last_status=job.status.value,
                    elapsed=format_duration(elapsed),
                )
                raise ScanTimeoutError(job.scan_id, elapsed, cfg.max_wait)

            await self._pause(job, min(cfg.poll_interval, cfg.max_wait - elapsed))

    async def _fetch_status(self, scan_id: str):
        payload = await self.transport.get(endpoints.scan_status(scan_id))
        try:
            response = ScanStatusResponse.model_validate(payload)
        except ValidationError as e:
            raise RemoteCallError("Error getting scan status: unexpected response", e) from e

        status = ScanStatus.from_remote(response.status.name)
        if status is None:
            self.logger.warning("unknown_scan_status", scan_id=scan_id, status=response.status.name)
            status = ScanStatus.RUNNING
        return status, response.status.message

    async def _pause(self, job: ScanJob, delay: float) -> None:
        """Suspend between polls; the only place a run can be interrupted"""
        if self.abort_event is None:
            await self.sleeper(delay)
            return

        sleeper = asyncio.ensure_future(self.sleeper(delay))
        aborted = asyncio.ensure_future(self.abort_event.wait())
        try:
            await asyncio.wait({sleeper, aborted}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            aborted.cancel()
        self._check_abort(job)

    def _check_abort(self, job: ScanJob) -> None:
        if self.abort_event is not None and self.abort_event.is_set():
            self.logger.warning("scan_wait_aborted", scan_id=job.scan_id, last_status=job.status.value)
            raise ScanAbortedError(f"Stopped waiting for scan {job.scan_id}")
