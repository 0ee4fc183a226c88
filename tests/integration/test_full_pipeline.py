"""
Integration test for the full scan pipeline.

Runs ScanOrchestrator with the real HttpTransport against an in-process
aiohttp application that behaves like the SCA service:
1. Login (password grant)
2. Project lookup and creation
3. Source upload to a pre-signed URL
4. Scan creation and status polling
5. Risk report retrieval
"""

import zipfile
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils, web

from conftest import FINDINGS, PACKAGES, SUMMARY
from scarunner.core.config import ScaConfig, ScanConfig, ThresholdConfig
from scarunner.core.errors import RemoteCallError, TaskSkippedError
from scarunner.core.models import SourceLocationType
from scarunner.core.orchestrator import ScanOrchestrator
from scarunner.source.packager import SourcePackager


STATE = web.AppKey("state", dict)


def create_service(statuses=("Queued", "Running", "Done")):
    """Fake SCA service; records what it receives in app[STATE]"""
    routes = web.RouteTableDef()

    def authorized(request):
        if request.headers.get("Authorization") != "Bearer token-xyz":
            raise web.HTTPUnauthorized()
        if request.headers.get("Account-Name") != "acme":
            raise web.HTTPForbidden()

    @routes.post("/CxRestAPI/auth/identity/connect/token")
    async def token(request):
        form = await request.post()
        if (form.get("username"), form.get("password")) != ("scanner", "secret"):
            return web.json_response({"error": "invalid_grant"}, status=400)
        return web.json_response({"access_token": "token-xyz", "expires_in": 3600})

    @routes.get("/risk-management/projects")
    async def list_projects(request):
        authorized(request)
        return web.json_response(request.app[STATE]["projects"])

    @routes.post("/risk-management/projects")
    async def create_project(request):
        authorized(request)
        body = await request.json()
        project = {"id": f"p-{len(request.app[STATE]['projects']) + 1}", "name": body["name"]}
        request.app[STATE]["projects"].append(project)
        return web.json_response(project)

    @routes.post("/api/uploads")
    async def upload_url(request):
        authorized(request)
        return web.json_response({"url": str(request.url.with_path("/storage/upload-1").with_query(None))})

    @routes.put("/storage/upload-1")
    async def storage(request):
        if "Authorization" in request.headers:
            return web.Response(status=400, text="unexpected credentials")
        request.app[STATE]["uploaded"] = await request.read()
        return web.Response(status=200)

    @routes.post("/api/scans")
    async def start_scan(request):
        authorized(request)
        request.app[STATE]["scan_request"] = await request.json()
        return web.json_response({"id": "scan-42"})

    @routes.get("/api/scans/scan-42")
    async def scan_status(request):
        authorized(request)
        remaining = request.app[STATE]["statuses"]
        name = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return web.json_response({"id": "scan-42", "status": {"name": name}})

    @routes.get("/risk-management/scans/scan-42/riskReportId")
    async def report_id(request):
        authorized(request)
        return web.json_response("r-9")

    @routes.get("/risk-management/riskReports/r-9/summary")
    async def summary(request):
        authorized(request)
        return web.json_response(SUMMARY)

    @routes.get("/risk-management/riskReports/r-9/vulnerabilities")
    async def vulnerabilities(request):
        authorized(request)
        return web.json_response(FINDINGS)

    @routes.get("/risk-management/riskReports/r-9/packages")
    async def packages(request):
        authorized(request)
        return web.json_response(PACKAGES)

    app = web.Application()
    app.add_routes(routes)
    app[STATE] = {
        "projects": [{"id": "p-1", "name": "my-app"}],
        "statuses": list(statuses),
    }
    return app


@asynccontextmanager
async def running(app):
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


def scan_config(base_url, **overrides):
    sca = {
        "api_url": base_url,
        "access_control_url": base_url,
        "web_app_url": "https://sca.example.com",
        "username": "scanner",
        "password": "secret",
        "tenant": "acme",
        "remote_repository_url": "https://github.com/acme/my-app.git",
        "poll_interval": 0.01,
        "max_wait": 10.0,
        "thresholds": ThresholdConfig(enabled=True, high=1, medium=5, low=10),
    }
    sca.update(overrides.pop("sca", {}))
    values = {"project_name": "my-app", "sca": ScaConfig(**sca)}
    values.update(overrides)
    return ScanConfig(**values)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_remote_repository_pipeline():
    """Test a remote repository scan from login to threshold evaluation"""
    app = create_service()

    async with running(app) as base_url:
        result = await ScanOrchestrator().scan(scan_config(base_url))

    assert result.scan_id == "scan-42"
    assert result.project_id == "p-1"
    assert result.report.summary.risk_score == 7.5
    assert result.report.web_report_link == "https://sca.example.com/#/projects/p-1/reports/r-9"
    assert len(result.threshold_evaluation) == 2
    assert app[STATE]["scan_request"] == {
        "project": {
            "id": "p-1",
            "type": "git",
            "handler": {"url": "https://github.com/acme/my-app.git"},
        }
    }


@pytest.mark.integration
@pytest.mark.asyncio
async def test_local_directory_pipeline(dependency_tree, tmp_path):
    """Test a local scan uploads an archive into a newly created project"""
    app = create_service()
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()

    async with running(app) as base_url:
        config = scan_config(
            base_url,
            project_name="new-app",
            source_location=str(dependency_tree),
            sca={"source_location_type": SourceLocationType.LOCAL_DIRECTORY},
        )
        orchestrator = ScanOrchestrator(packager=SourcePackager(temp_dir=str(temp_dir)))
        result = await orchestrator.scan(config)

    assert result.project_id == "p-2"
    assert app[STATE]["projects"][-1] == {"id": "p-2", "name": "new-app"}
    assert app[STATE]["scan_request"]["project"]["type"] == "upload"
    assert app[STATE]["scan_request"]["project"]["handler"]["url"].endswith("/storage/upload-1")

    archive = tmp_path / "uploaded.zip"
    archive.write_bytes(app[STATE]["uploaded"])
    with zipfile.ZipFile(archive) as zf:
        assert "web/package.json" in zf.namelist()
        assert "web/index.js" not in zf.namelist()
    assert list(temp_dir.iterdir()) == []


@pytest.mark.integration
@pytest.mark.asyncio
async def test_async_mode_pipeline():
    """Test async mode stops after submission"""
    app = create_service()

    async with running(app) as base_url:
        result = await ScanOrchestrator().scan(scan_config(base_url, is_sync_mode=False))

    assert result.scan_id == "scan-42"
    assert result.report is None
    assert app[STATE]["statuses"] == ["Queued", "Running", "Done"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_wrong_password():
    """Test a rejected login stops the pipeline"""
    app = create_service()

    async with running(app) as base_url:
        with pytest.raises(RemoteCallError, match="Error logging into SCA"):
            await ScanOrchestrator().scan(scan_config(base_url, sca={"password": "wrong"}))

    assert "scan_request" not in app[STATE]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_empty_directory_is_skipped(tmp_path):
    """Test a directory without manifests never reaches the service"""
    app = create_service()
    root = tmp_path / "empty"
    root.mkdir()

    async with running(app) as base_url:
        config = scan_config(
            base_url,
            source_location=str(root),
            sca={"source_location_type": SourceLocationType.LOCAL_DIRECTORY},
        )
        with pytest.raises(TaskSkippedError):
            await ScanOrchestrator().scan(config)

    assert "scan_request" not in app[STATE]


if __name__ == "__main__":
    pytest.main([__file__, "-v", "-m", "integration"])
