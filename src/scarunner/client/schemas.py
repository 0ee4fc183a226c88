"""Payload schemas for the SCA service API."""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        frozen=True,
    )


class TokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    token_type: str = "Bearer"
    expires_in: Optional[int] = None


class ProjectPayload(_ApiModel):
    id: str = Field(min_length=1)
    name: str


class UploadUrlResponse(_ApiModel):
    url: str = Field(min_length=1)


class StartScanResponse(_ApiModel):
    id: Optional[str] = None


class ScanStatusDetail(_ApiModel):
    name: str
    message: Optional[str] = None


class ScanStatusResponse(_ApiModel):
    """GET /api/scans/{id}. ``status`` may be a bare name or an object."""

    id: Optional[str] = None
    status: ScanStatusDetail

    @field_validator("status", mode="before")
    @classmethod
    def _wrap_bare_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"name": value}
        return value


class SummaryReport(_ApiModel):
    """Risk report summary"""

    risk_report_id: str
    created_on: Optional[datetime] = None
    high_vulnerability_count: int = Field(ge=0)
    medium_vulnerability_count: int = Field(ge=0)
    low_vulnerability_count: int = Field(ge=0)
    total_packages: int = Field(default=0, ge=0)
    direct_packages: int = Field(default=0, ge=0)
    total_outdated_packages: int = Field(default=0, ge=0)
    risk_score: float = 0.0


class Finding(_ApiModel):
    """A vulnerability reported against a package"""

    model_config = ConfigDict(extra="allow")

    id: str
    cve_name: Optional[str] = None
    score: Optional[float] = None
    severity: str
    package_id: Optional[str] = None
    description: Optional[str] = None
    recommendations: Optional[str] = None
    references: List[str] = Field(default_factory=list)
    is_ignored: bool = False


class Package(_ApiModel):
    """A dependency found by the service"""

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    version: Optional[str] = None
    licenses: List[str] = Field(default_factory=list)
    high_vulnerability_count: int = 0
    medium_vulnerability_count: int = 0
    low_vulnerability_count: int = 0
    outdated: bool = False
    newest_version: Optional[str] = None
    is_direct_dependency: bool = False
    is_development: bool = False


class ScanReport(_ApiModel):
    """
    Results of a finished scan, assembled by the retriever.

    ``web_report_link`` is an empty string when no web app URL is configured.
    """

    scan_id: str
    project_id: str
    summary: SummaryReport
    findings: List[Finding] = Field(default_factory=list)
    packages: List[Package] = Field(default_factory=list)
    web_report_link: str = ""

    def severity_counts(self) -> dict:
        return {
            "high": self.summary.high_vulnerability_count,
            "medium": self.summary.medium_vulnerability_count,
            "low": self.summary.low_vulnerability_count,
        }
