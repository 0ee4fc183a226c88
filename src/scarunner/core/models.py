"""
Core data models for a single scan run.

Every value here is immutable. A run threads a RunContext from step to step
instead of stashing identifiers on long-lived objects, so two runs in the
same process never share state.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple, Union


class SourceLocationType(Enum):
    """Where the scanned source comes from"""
    REMOTE_REPOSITORY = "git"
    LOCAL_DIRECTORY = "upload"


class ScanStatus(Enum):
    """Scan job status as tracked by the waiter"""
    QUEUED = "queued"
    RUNNING = "running"
    FINISHED = "finished"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self is ScanStatus.FINISHED

    @classmethod
    def from_remote(cls, name: str) -> Optional["ScanStatus"]:
        """Map a status name reported by the service, None if unknown"""
        return _REMOTE_STATUS_NAMES.get(name.strip().lower().replace(" ", ""))


_TERMINAL_STATUSES = frozenset(
    {ScanStatus.FINISHED, ScanStatus.FAILED, ScanStatus.CANCELED}
)

_REMOTE_STATUS_NAMES = {
    "queued": ScanStatus.QUEUED,
    "created": ScanStatus.QUEUED,
    "pending": ScanStatus.QUEUED,
    "running": ScanStatus.RUNNING,
    "scanning": ScanStatus.RUNNING,
    "inprogress": ScanStatus.RUNNING,
    "done": ScanStatus.FINISHED,
    "finished": ScanStatus.FINISHED,
    "completed": ScanStatus.FINISHED,
    "failed": ScanStatus.FAILED,
    "error": ScanStatus.FAILED,
    "canceled": ScanStatus.CANCELED,
    "cancelled": ScanStatus.CANCELED,
}


class Severity(Enum):
    """Severity levels that thresholds apply to, in evaluation order"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class Credentials:
    """Login settings resolved for the access control service"""
    username: str
    password: str = field(repr=False)
    tenant: str
    access_control_url: str
    token_url: str
    client_id: str
    scopes: str
    is_cloud: bool = False


@dataclass(frozen=True)
class Session:
    """Authenticated session returned by the transport"""
    access_token: str = field(repr=False)
    token_type: str = "Bearer"
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class ProjectHandle:
    """A project resolved (or created) on the service"""
    project_id: str
    name: str


@dataclass(frozen=True)
class RemoteRepositorySource:
    """Source referenced by a repository URL the service clones itself"""
    url: str
    kind: SourceLocationType = field(
        default=SourceLocationType.REMOTE_REPOSITORY, init=False
    )


@dataclass(frozen=True)
class LocalDirectorySource:
    """Source zipped from a local directory, ready for upload"""
    archive_path: Path
    file_count: int
    kind: SourceLocationType = field(
        default=SourceLocationType.LOCAL_DIRECTORY, init=False
    )


SourceReference = Union[RemoteRepositorySource, LocalDirectorySource]


@dataclass(frozen=True)
class ScanJob:
    """
    A scan started on the service.

    ``started_at`` is a monotonic timestamp taken right after submission;
    elapsed time is always measured from it.
    """
    scan_id: str
    started_at: float
    submitted_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    status: ScanStatus = ScanStatus.QUEUED

    def with_status(self, status: ScanStatus) -> "ScanJob":
        return replace(self, status=status)

    def elapsed(self, clock: Callable[[], float]) -> float:
        return max(0.0, clock() - self.started_at)


@dataclass(frozen=True)
class ThresholdViolation:
    """A severity whose observed count exceeded its ceiling"""
    severity: Severity
    observed: int
    ceiling: int

    def __str__(self) -> str:
        return (
            f"{self.severity.value} severity results are above threshold. "
            f"Results: {self.observed}. Threshold: {self.ceiling}"
        )


@dataclass(frozen=True)
class ThresholdEvaluation:
    """Ordered threshold violations (high, medium, low)"""
    violations: Tuple[ThresholdViolation, ...] = ()

    def has_violations(self) -> bool:
        return len(self.violations) > 0

    def __iter__(self):
        return iter(self.violations)

    def __len__(self) -> int:
        return len(self.violations)


@dataclass(frozen=True)
class RunContext:
    """State accumulated by one run, rebuilt at every step"""
    project: Optional[ProjectHandle] = None
    job: Optional[ScanJob] = None

    def with_project(self, project: ProjectHandle) -> "RunContext":
        return replace(self, project=project)

    def with_job(self, job: ScanJob) -> "RunContext":
        return replace(self, job=job)

