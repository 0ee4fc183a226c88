"""
Result Retriever - Assembles the report of a finished scan.

Summary, findings and packages are fetched concurrently and must all
succeed; a report is never returned with a missing part.
"""

import asyncio
from typing import Any, List

import structlog
from pydantic import TypeAdapter, ValidationError

from ..client import endpoints
from ..client.schemas import Finding, Package, ScanReport, SummaryReport
from ..client.transport import Transport
from ..core.errors import ConfigurationError, ResultRetrievalError, ScaError
from ..core.models import ProjectHandle, ScanJob


_FINDINGS = TypeAdapter(List[Finding])
_PACKAGES = TypeAdapter(List[Package])


class ResultRetriever:
    """
    Fetches and assembles a ScanReport.

    Example:
        >>> retriever = ResultRetriever(transport, web_app_url="https://sca.example.com")
        >>> report = await retriever.retrieve(project, job)
        >>> report.web_report_link
        'https://sca.example.com/#/projects/p-1/reports/r-9'
    """

    def __init__(self, transport: Transport, web_app_url: str = ""):
        self.transport = transport
        self.web_app_url = web_app_url
        self.logger = structlog.get_logger(__name__)

    async def retrieve(self, project: ProjectHandle, job: ScanJob) -> ScanReport:
        """
        Retrieve the results of a finished scan.

        Raises:
            ResultRetrievalError: Any failure, with the original cause attached
        """
        self.logger.info("retrieving_results", scan_id=job.scan_id)
        try:
            report_id = await self._get_report_id(job.scan_id)

            async with asyncio.TaskGroup() as tg:
                summary_task = tg.create_task(self._get_summary(report_id))
                findings_task = tg.create_task(self._get_findings(report_id))
                packages_task = tg.create_task(self._get_packages(report_id))

            report = ScanReport(
                scan_id=job.scan_id,
                project_id=project.project_id,
                summary=summary_task.result(),
                findings=findings_task.result(),
                packages=packages_task.result(),
                web_report_link=self._web_report_link(project.project_id, report_id),
            )

        except ExceptionGroup as group:
            cause = _first_leaf(group)
            self.logger.error("results_retrieval_failed", scan_id=job.scan_id, error=str(cause))
            raise ResultRetrievalError("Error retrieving SCA scan results", cause) from cause
        except (ScaError, ValidationError) as e:
            self.logger.error("results_retrieval_failed", scan_id=job.scan_id, error=str(e))
            raise ResultRetrievalError("Error retrieving SCA scan results", e) from e

        self._log_summary(job, report)
        if report.web_report_link:
            self.logger.info("results_location", link=report.web_report_link)
        self.logger.info("results_retrieved", scan_id=job.scan_id)
        return report

    async def _get_report_id(self, scan_id: str) -> str:
        self.logger.debug("getting_report_id", scan_id=scan_id)
        report_id = await self.transport.get(endpoints.report_id(scan_id))
        if not isinstance(report_id, str) or not report_id.strip():
            raise ScaError(f"No risk report found for scan {scan_id}")
        self.logger.info("report_id_resolved", report_id=report_id)
        return report_id.strip()

    async def _get_summary(self, report_id: str) -> SummaryReport:
        self.logger.debug("getting_summary_report", report_id=report_id)
        return SummaryReport.model_validate(await self.transport.get(endpoints.summary_report(report_id)))

    async def _get_findings(self, report_id: str) -> List[Finding]:
        self.logger.debug("getting_findings", report_id=report_id)
        return _FINDINGS.validate_python(await self.transport.get(endpoints.findings(report_id)) or [])

    async def _get_packages(self, report_id: str) -> List[Package]:
        self.logger.debug("getting_packages", report_id=report_id)
        return _PACKAGES.validate_python(await self.transport.get(endpoints.packages(report_id)) or [])

    def _web_report_link(self, project_id: str, report_id: str) -> str:
        """Never raises; an unusable link degrades to an empty string"""
        if not self.web_app_url:
            self.logger.warning("web_report_link_unavailable", reason="web app URL is not specified")
            return ""
        try:
            return endpoints.web_report(self.web_app_url, project_id, report_id)
        except ConfigurationError as e:
            self.logger.warning("web_report_link_unavailable", reason=str(e))
            return ""

    def _log_summary(self, job: ScanJob, report: ScanReport) -> None:
        summary = report.summary
        self.logger.info(
            "risk_report_summary",
            scan_id=job.scan_id,
            risk_report_id=summary.risk_report_id,
            created_on=summary.created_on.isoformat() if summary.created_on else None,
            direct_packages=summary.direct_packages,
            high=summary.high_vulnerability_count,
            medium=summary.medium_vulnerability_count,
            low=summary.low_vulnerability_count,
            risk_score=summary.risk_score,
            total_packages=summary.total_packages,
            total_outdated_packages=summary.total_outdated_packages,
        )


def _first_leaf(group: BaseExceptionGroup) -> BaseException:
    exc: Any = group
    while isinstance(exc, BaseExceptionGroup):
        exc = exc.exceptions[0]
    return exc
