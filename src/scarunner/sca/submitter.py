"""
Scan Submitter - Login, project resolution and scan creation.

The submitter keeps no per-run state: every method takes what it needs and
returns a new value (Session, ProjectHandle, ScanJob), so one instance can
serve concurrent runs.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, List, Optional, Type, TypeVar
from urllib.parse import urljoin

import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError

from ..client import endpoints
from ..client.schemas import ProjectPayload, StartScanResponse, UploadUrlResponse
from ..client.transport import Transport
from ..core.config import ScaConfig
from ..core.errors import ConfigurationError, RemoteCallError, TaskSkippedError, TransportError
from ..core.models import (
    Credentials,
    LocalDirectorySource,
    ProjectHandle,
    RemoteRepositorySource,
    ScanJob,
    Session,
    SourceReference,
)
from ..core.stopwatch import Clock, monotonic


T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

ON_PREMISE_AUTH_PATH = "CxRestAPI/auth/"

_PROJECT_LIST = TypeAdapter(List[ProjectPayload])


@dataclass(frozen=True)
class ClientType:
    """OAuth client used for the password grant"""
    client_id: str
    scopes: str


SCA_CLIENT = ClientType(client_id="sca_resource_owner", scopes="sca_api")
RESOURCE_OWNER_CLIENT = ClientType(
    client_id="resource_owner_sast_client",
    scopes="sca_api offline_access",
)


class ScanSubmitter:
    """
    Drives the remote steps that lead to a running scan.

    Example:
        >>> submitter = ScanSubmitter(transport, config.sca)
        >>> await submitter.login()
        >>> project = await submitter.resolve_project("my-app")
        >>> job = await submitter.submit(project, RemoteRepositorySource(url))
    """

    def __init__(self, transport: Transport, config: ScaConfig, clock: Clock = monotonic):
        self.transport = transport
        self.config = config
        self.clock = clock
        self.logger = structlog.get_logger(__name__)

    # Login

    def resolve_credentials(self) -> Credentials:
        """
        Pick the authentication flavour from the access control URL.

        Cloud access control is used as-is with the SCA client type; anything
        else is an on-premise server whose auth API lives under CxRestAPI.
        """
        config = self.config
        is_cloud = config.is_cloud
        base_url = config.access_control_url
        if not is_cloud:
            base_url = urljoin(base_url, ON_PREMISE_AUTH_PATH)

        client = SCA_CLIENT if is_cloud else RESOURCE_OWNER_CLIENT
        self.logger.info("authentication_mode", mode="cloud" if is_cloud else "on_premise")

        return Credentials(
            username=config.username,
            password=config.password.get_secret_value(),
            tenant=config.tenant,
            access_control_url=base_url,
            token_url=urljoin(base_url.rstrip("/") + "/", endpoints.TOKEN_PATH),
            client_id=client.client_id,
            scopes=client.scopes,
            is_cloud=is_cloud,
        )

    async def login(self, credentials: Optional[Credentials] = None) -> Session:
        self.logger.info("logging_in")
        credentials = credentials or self.resolve_credentials()
        session = await self._call("Error logging into SCA", self.transport.login(credentials))
        self.logger.info("login_complete")
        return session

    # Project

    async def resolve_project(self, name: str) -> ProjectHandle:
        """
        Find a project by name, creating it when absent.

        Lookup and creation are not atomic: two runs creating the same new
        project at once can both create it.

        Raises:
            ConfigurationError: If name is empty
            RemoteCallError: If listing or creating projects fails
        """
        if not name or not name.strip():
            raise ConfigurationError("Non-empty project name must be provided.")

        self.logger.info("resolving_project", name=name)
        step = "Error resolving project"
        payload = await self._call(step, self.transport.get(endpoints.projects()))
        try:
            projects = _PROJECT_LIST.validate_python(payload or [])
        except ValidationError as e:
            raise RemoteCallError(f"{step}: unexpected project list", e) from e

        for project in projects:
            if project.name == name:
                self.logger.info("project_found", project_id=project.id)
                return ProjectHandle(project_id=project.id, name=project.name)

        self.logger.info("project_not_found_creating", name=name)
        created = await self._call(
            "Error creating project",
            self.transport.post(endpoints.create_project(), {"name": name}),
        )
        project = self._parse("Error creating project", ProjectPayload, created)
        self.logger.info("project_created", project_id=project.id)
        return ProjectHandle(project_id=project.id, name=name)

    # Scan

    async def submit(self, project: ProjectHandle, source: SourceReference) -> ScanJob:
        """
        Start a scan of source in project.

        Remote repositories are referenced by URL. Local archives are first
        uploaded to a one-shot storage URL, and the scan references that URL.

        Raises:
            ConfigurationError: Missing repository URL or archive
            TaskSkippedError: Empty archive
            RemoteCallError: Upload or scan creation failed, or no scan id
        """
        if isinstance(source, RemoteRepositorySource):
            if not source.url:
                raise ConfigurationError(
                    "URL must be provided in SCA configuration when using source "
                    f"location of type {source.kind.value}."
                )
            self.logger.info("using_remote_repository", url=source.url)
            source_url = source.url

        elif isinstance(source, LocalDirectorySource):
            if source.file_count == 0:
                raise TaskSkippedError("Zip file is empty: no source to scan")
            if not Path(source.archive_path).is_file():
                raise ConfigurationError(f"Source archive not found: {source.archive_path}")
            self.logger.info("using_local_directory", files=source.file_count)
            source_url = await self._upload(Path(source.archive_path))

        else:
            raise ConfigurationError(f"Unsupported source reference: {type(source).__name__}")

        request = {
            "project": {
                "id": project.project_id,
                "type": source.kind.value,
                "handler": {"url": source_url},
            }
        }
        step = "Error creating SCA scan"
        self.logger.info("starting_scan", project_id=project.project_id, type=source.kind.value)
        response = await self._call(step, self.transport.post(endpoints.create_scan(), request))
        scan = self._parse(step, StartScanResponse, response or {})
        if not scan.id:
            raise RemoteCallError(f"{step}. Unable to obtain scan id")

        job = ScanJob(scan_id=scan.id, started_at=self.clock())
        self.logger.info("scan_started", scan_id=job.scan_id)
        return job

    async def _upload(self, archive_path: Path) -> str:
        step = "Unable to get the upload URL"
        payload = await self._call(step, self.transport.post(endpoints.upload_url(), {}))
        upload = self._parse(step, UploadUrlResponse, payload or {})

        self.logger.info("uploading_source", archive=str(archive_path))
        await self._call(
            "Error uploading source archive",
            self.transport.put_file(upload.url, archive_path),
        )
        return upload.url

    async def _call(self, step: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except TransportError as e:
            self.logger.error("remote_call_failed", step=step, error=str(e), status=e.status)
            raise RemoteCallError(step, e) from e

    @staticmethod
    def _parse(step: str, model: Type[M], payload: Any) -> M:
        try:
            return model.model_validate(payload)
        except ValidationError as e:
            raise RemoteCallError(f"{step}: unexpected response", e) from e
