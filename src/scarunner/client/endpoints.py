"""
Endpoints - Typed request builders for the SCA service API.

Identifiers are validated and percent-encoded here so a malformed scan or
report id fails before a request is ever sent.
"""

import re
from dataclasses import dataclass
from urllib.parse import quote

from ..core.errors import ConfigurationError


TOKEN_PATH = "identity/connect/token"
TENANT_HEADER_NAME = "Account-Name"

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]*$")


@dataclass(frozen=True)
class Endpoint:
    """A service API path relative to the API base URL"""
    method: str
    path: str

    def __str__(self) -> str:
        return f"{self.method} {self.path}"


def _identifier(value: str, kind: str) -> str:
    if not isinstance(value, str) or not _IDENTIFIER_RE.match(value):
        raise ConfigurationError(f"Malformed {kind}: {value!r}")
    return quote(value, safe="")


def projects() -> Endpoint:
    return Endpoint("GET", "/risk-management/projects")


def create_project() -> Endpoint:
    return Endpoint("POST", "/risk-management/projects")


def upload_url() -> Endpoint:
    return Endpoint("POST", "/api/uploads")


def create_scan() -> Endpoint:
    return Endpoint("POST", "/api/scans")


def scan_status(scan_id: str) -> Endpoint:
    return Endpoint("GET", f"/api/scans/{_identifier(scan_id, 'scan id')}")


def report_id(scan_id: str) -> Endpoint:
    return Endpoint(
        "GET",
        f"/risk-management/scans/{_identifier(scan_id, 'scan id')}/riskReportId",
    )


def summary_report(report_id: str) -> Endpoint:
    return Endpoint(
        "GET",
        f"/risk-management/riskReports/{_identifier(report_id, 'report id')}/summary",
    )


def findings(report_id: str) -> Endpoint:
    return Endpoint(
        "GET",
        f"/risk-management/riskReports/{_identifier(report_id, 'report id')}/vulnerabilities",
    )


def packages(report_id: str) -> Endpoint:
    return Endpoint(
        "GET",
        f"/risk-management/riskReports/{_identifier(report_id, 'report id')}/packages",
    )


def web_report(web_app_url: str, project_id: str, report_id: str) -> str:
    """Browser link to a risk report"""
    return (
        f"{web_app_url.rstrip('/')}/#/projects/"
        f"{_identifier(project_id, 'project id')}/reports/"
        f"{_identifier(report_id, 'report id')}"
    )
