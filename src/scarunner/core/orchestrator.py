"""
Scan Orchestrator - Runs one SCA scan end to end.

Pipeline (strictly sequential, each step feeds the next):
1. Validate configuration (no network)
2. Package local source (no network)
3. Login and resolve the project
4. Submit the scan
5. Sync mode only: wait for completion, retrieve results, evaluate thresholds

Each run gets its own transport and RunContext, so concurrent scans in one
process share nothing mutable.
"""

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from ..client.schemas import ScanReport
from ..client.transport import HttpTransport, Transport
from ..sca.retriever import ResultRetriever
from ..sca.submitter import ScanSubmitter
from ..sca.waiter import ScanWaiter, WaitConfig
from ..source.packager import SourcePackager, build_source_filter, remove_archive
from .config import ScaConfig, ScanConfig
from .errors import ScanFailedError, TaskSkippedError
from .evaluator import ThresholdEvaluator
from .models import (
    LocalDirectorySource,
    RemoteRepositorySource,
    RunContext,
    SourceLocationType,
    SourceReference,
    ThresholdEvaluation,
)
from .stopwatch import Clock, Sleeper, Stopwatch, monotonic, sleep


TransportFactory = Callable[[ScaConfig], Transport]


def create_http_transport(config: ScaConfig) -> Transport:
    return HttpTransport(
        config.api_url,
        timeout=config.request_timeout,
        verify_ssl=config.verify_ssl,
    )


@dataclass(frozen=True)
class ScanResult:
    """
    Outcome of ScanOrchestrator.scan().

    ``report`` is only set in sync mode once the scan finished successfully.
    In async mode the caller gets identifiers and polls separately.
    """
    sync_mode: bool
    scan_id: str
    project_id: str
    report: Optional[ScanReport] = None
    threshold_evaluation: ThresholdEvaluation = field(default_factory=ThresholdEvaluation)
    elapsed: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "sync_mode": self.sync_mode,
            "scan_id": self.scan_id,
            "project_id": self.project_id,
            "elapsed_seconds": self.elapsed,
            "report": self.report.model_dump(mode="json", by_alias=True) if self.report else None,
            "threshold_violations": [
                {
                    "severity": v.severity.value,
                    "observed": v.observed,
                    "ceiling": v.ceiling,
                }
                for v in self.threshold_evaluation
            ],
        }


class ScanOrchestrator:
    """
    Single entry point for running SCA scans.

    Observers receive lifecycle events ("scan_submitted", "scan_finished",
    "scan_skipped", "scan_failed") as ``observer(event, data)``.

    Example:
        >>> orchestrator = ScanOrchestrator()
        >>> result = await orchestrator.scan(config)
        >>> result.threshold_evaluation.has_violations()
        False
    """

    def __init__(
        self,
        transport_factory: TransportFactory = create_http_transport,
        packager: Optional[SourcePackager] = None,
        evaluator: Optional[ThresholdEvaluator] = None,
        clock: Clock = monotonic,
        sleeper: Sleeper = sleep,
    ):
        self.transport_factory = transport_factory
        self.packager = packager or SourcePackager()
        self.evaluator = evaluator or ThresholdEvaluator()
        self.clock = clock
        self.sleeper = sleeper

        self.logger = structlog.get_logger(__name__)
        self.observers: List[Callable[[str, Dict[str, Any]], None]] = []

    def subscribe(self, observer: Callable[[str, Dict[str, Any]], None]):
        """Subscribe to scan lifecycle events"""
        self.observers.append(observer)
        self.logger.debug("observer_subscribed", observer=getattr(observer, "__name__", repr(observer)))

    def _notify_observers(self, event: str, data: Dict[str, Any]):
        for observer in self.observers:
            try:
                observer(event, data)
            except Exception as e:
                self.logger.error(
                    "observer_error",
                    observer=getattr(observer, "__name__", repr(observer)),
                    error=str(e),
                )

    async def scan(
        self,
        config: ScanConfig,
        abort_event: Optional[asyncio.Event] = None,
    ) -> ScanResult:
        """
        Run the complete scan pipeline.

        Args:
            config: What to scan and how
            abort_event: Set it to stop waiting for results (sync mode)

        Returns:
            ScanResult; ``report`` is populated in sync mode only

        Raises:
            ConfigurationError: Invalid configuration, before any remote call
            TaskSkippedError: Nothing to scan
            RemoteCallError: A remote step failed
            ScanTimeoutError: The scan did not finish within max_wait
            ScanFailedError: The service reported FAILED or CANCELED
            ScanAbortedError: abort_event was set while waiting
        """
        logger = self.logger.bind(project=config.project_name)
        watch = Stopwatch(self.clock)
        watch.start()
        logger.info(
            "scan_requested",
            source_type=config.sca.source_location_type.value,
            sync_mode=config.is_sync_mode,
        )

        source: Optional[SourceReference] = None
        try:
            config.validate_for_scan()
            source = await self._phase_packaging(config)

            transport = self.transport_factory(config.sca)
            try:
                result = await self._run(config, source, transport, abort_event, logger)
            finally:
                await transport.close()

        except TaskSkippedError as e:
            logger.info("scan_skipped", reason=str(e))
            self._notify_observers("scan_skipped", {"project": config.project_name, "reason": str(e)})
            raise

        except Exception as e:
            logger.error("scan_failed", error=str(e), error_type=type(e).__name__)
            self._notify_observers("scan_failed", {"project": config.project_name, "error": str(e)})
            raise

        finally:
            if isinstance(source, LocalDirectorySource):
                remove_archive(source.archive_path)

        logger.info("scan_finished", scan_id=result.scan_id, duration=watch.format())
        self._notify_observers("scan_finished", result.to_dict())
        return result

    async def _phase_packaging(self, config: ScanConfig) -> SourceReference:
        """Build the source reference; local sources are zipped off the event loop"""
        sca = config.sca
        if sca.source_location_type is SourceLocationType.REMOTE_REPOSITORY:
            return RemoteRepositorySource(url=sca.remote_repository_url)

        path_filter = build_source_filter(
            sca.dependency_file_extension,
            sca.dependency_folder_exclusion,
            sca.include_source,
        )
        packaging = asyncio.create_task(asyncio.to_thread(
            self.packager.package,
            Path(config.source_location),
            path_filter,
            include_source=sca.include_source,
            fingerprints_file_path=sca.fingerprints_file_path,
            fingerprints_write_required=sca.fingerprints_write_required,
        ))
        try:
            return await asyncio.shield(packaging)
        except asyncio.CancelledError:
            # The worker thread cannot be interrupted; let it finish and drop its archive
            try:
                source = await asyncio.shield(packaging)
            except Exception as e:
                self.logger.debug("packaging_cancelled", error=str(e))
            else:
                remove_archive(source.archive_path)
                self.logger.info("packaging_cancelled", archive=str(source.archive_path))
            raise

    async def _run(
        self,
        config: ScanConfig,
        source: SourceReference,
        transport: Transport,
        abort_event: Optional[asyncio.Event],
        logger,
    ) -> ScanResult:
        ctx = RunContext()

        # Phase 1: Login + project
        submitter = ScanSubmitter(transport, config.sca, clock=self.clock)
        await submitter.login()
        ctx = ctx.with_project(await submitter.resolve_project(config.project_name))

        # Phase 2: Submit
        try:
            job = await submitter.submit(ctx.project, source)
        finally:
            if isinstance(source, LocalDirectorySource):
                remove_archive(source.archive_path)
        ctx = ctx.with_job(job)

        logger.info("scan_submitted", scan_id=job.scan_id, project_id=ctx.project.project_id)
        self._notify_observers(
            "scan_submitted",
            {"scan_id": job.scan_id, "project_id": ctx.project.project_id},
        )

        if not config.is_sync_mode:
            logger.info("async_mode_results_skipped", scan_id=job.scan_id)
            return ScanResult(sync_mode=False, scan_id=job.scan_id, project_id=ctx.project.project_id)

        # Phase 3: Wait
        waiter = ScanWaiter(
            transport,
            WaitConfig(
                poll_interval=config.sca.poll_interval,
                max_wait=config.sca.max_wait,
                max_poll_errors=config.sca.max_poll_errors,
            ),
            clock=self.clock,
            sleeper=self.sleeper,
            abort_event=abort_event,
        )
        outcome = await waiter.wait_for_completion(ctx.job)
        ctx = ctx.with_job(outcome.job)
        if not outcome.status.is_success:
            raise ScanFailedError(job.scan_id, outcome.status, outcome.message)

        # Phase 4: Results
        retriever = ResultRetriever(transport, web_app_url=config.sca.web_app_url)
        report = await retriever.retrieve(ctx.project, ctx.job)

        # Phase 5: Thresholds
        evaluation = self.evaluator.evaluate(report.severity_counts(), config.sca.thresholds)

        logger.info(
            "scan_complete",
            scan_id=job.scan_id,
            findings=len(report.findings),
            packages=len(report.packages),
            threshold_violations=len(evaluation),
        )
        return ScanResult(
            sync_mode=True,
            scan_id=job.scan_id,
            project_id=ctx.project.project_id,
            report=report,
            threshold_evaluation=evaluation,
            elapsed=outcome.elapsed,
        )
