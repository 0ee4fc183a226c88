"""
Shared test fixtures.

FakeTransport answers requests from a script keyed by "METHOD /path" and
records every call, so tests can assert both results and what was (or was
not) sent. FakeClock drives elapsed time without real sleeping.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from scarunner.core.config import ScaConfig, ScanConfig, ThresholdConfig
from scarunner.core.errors import TransportError
from scarunner.core.models import Session


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end tests against an in-process service")


class Script:
    """Successive responses for one endpoint; the last one repeats"""

    def __init__(self, *items: Any):
        self.items = list(items)

    def next(self) -> Any:
        if len(self.items) > 1:
            return self.items.pop(0)
        return self.items[0]


class FakeTransport:
    """In-memory Transport"""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[tuple] = []
        self.uploads: List[tuple] = []
        self.credentials = None
        self.login_error: Optional[BaseException] = None
        self.upload_error: Optional[BaseException] = None
        self.closed = False

    async def login(self, credentials) -> Session:
        self.calls.append(("LOGIN", credentials.token_url, None))
        if self.login_error is not None:
            raise self.login_error
        self.credentials = credentials
        return Session(access_token="token-123")

    async def get(self, endpoint) -> Any:
        return self._respond(endpoint, None)

    async def post(self, endpoint, body=None) -> Any:
        return self._respond(endpoint, body)

    async def put_file(self, url: str, path: Path) -> None:
        self.calls.append(("PUT", url, None))
        if self.upload_error is not None:
            raise self.upload_error
        self.uploads.append((url, Path(path).read_bytes()))

    async def close(self) -> None:
        self.closed = True

    def _respond(self, endpoint, body) -> Any:
        key = f"{endpoint.method} {endpoint.path}"
        self.calls.append((endpoint.method, endpoint.path, body))
        if key not in self.responses:
            raise TransportError(f"{key} failed with HTTP 404", status=404)

        value = self.responses[key]
        if isinstance(value, Script):
            value = value.next()
        if isinstance(value, BaseException):
            raise value
        return value

    def paths(self) -> List[str]:
        return [f"{method} {target}" for method, target, _ in self.calls]

    def body_of(self, method: str, path: str) -> Any:
        for m, target, body in self.calls:
            if m == method and target == path:
                return body
        raise AssertionError(f"{method} {path} was not called")


class FakeClock:
    """Monotonic clock advanced only by sleeping"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


SUMMARY = {
    "riskReportId": "r-9",
    "createdOn": "2024-05-01T10:00:00Z",
    "highVulnerabilityCount": 3,
    "mediumVulnerabilityCount": 8,
    "lowVulnerabilityCount": 4,
    "totalPackages": 12,
    "directPackages": 5,
    "totalOutdatedPackages": 2,
    "riskScore": 7.5,
}

FINDINGS = [
    {
        "id": "CVE-2021-23337",
        "cveName": "CVE-2021-23337",
        "score": 7.2,
        "severity": "High",
        "packageId": "Npm-lodash-4.17.15",
        "references": ["https://nvd.nist.gov/vuln/detail/CVE-2021-23337"],
        "isIgnored": False,
    },
]

PACKAGES = [
    {
        "id": "Npm-lodash-4.17.15",
        "name": "lodash",
        "version": "4.17.15",
        "licenses": ["MIT"],
        "highVulnerabilityCount": 1,
        "outdated": True,
        "newestVersion": "4.17.21",
        "isDirectDependency": True,
    },
]


def service_responses(scan_id: str = "s-1", statuses=("Done",)) -> Dict[str, Any]:
    """Responses for a complete successful run into existing project p-1"""
    return {
        "GET /risk-management/projects": [
            {"id": "p-0", "name": "other"},
            {"id": "p-1", "name": "my-app"},
        ],
        "POST /risk-management/projects": {"id": "p-new", "name": "created"},
        "POST /api/uploads": {"url": "https://storage.example.com/upload/abc"},
        "POST /api/scans": {"id": scan_id},
        f"GET /api/scans/{scan_id}": Script(*({"id": scan_id, "status": {"name": s}} for s in statuses)),
        f"GET /risk-management/scans/{scan_id}/riskReportId": "r-9",
        "GET /risk-management/riskReports/r-9/summary": SUMMARY,
        "GET /risk-management/riskReports/r-9/vulnerabilities": FINDINGS,
        "GET /risk-management/riskReports/r-9/packages": PACKAGES,
    }


def make_sca_config(**overrides) -> ScaConfig:
    values = {
        "api_url": "https://api.sca.example.com",
        "access_control_url": "https://ac.example.com",
        "web_app_url": "https://sca.example.com",
        "username": "scanner",
        "password": "secret",
        "tenant": "acme",
        "remote_repository_url": "https://github.com/acme/my-app.git",
        "poll_interval": 5.0,
        "max_wait": 600.0,
    }
    values.update(overrides)
    return ScaConfig(**values)


def make_scan_config(sca: Optional[ScaConfig] = None, **overrides) -> ScanConfig:
    values = {"project_name": "my-app", "is_sync_mode": True, "sca": sca or make_sca_config()}
    values.update(overrides)
    return ScanConfig(**values)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport(service_responses())


@pytest.fixture
def thresholds():
    return ThresholdConfig(enabled=True, high=1, medium=5, low=10)


@pytest.fixture
def dependency_tree(tmp_path):
    """A small project with manifests, sources and an excluded folder"""
    root = tmp_path / "repo"
    (root / "web").mkdir(parents=True)
    (root / "api").mkdir()
    (root / "node_modules" / "lodash").mkdir(parents=True)
    (root / ".git").mkdir()

    (root / "web" / "package.json").write_text('{"name": "web"}')
    (root / "web" / "index.js").write_text("console.log('hi')\n")
    (root / "api" / "requirements.txt").write_text("aiohttp==3.9.1\n")
    (root / "api" / "app.py").write_text("print('hi')\n")
    (root / "node_modules" / "lodash" / "package.json").write_text('{"name": "lodash"}')
    (root / ".git" / "config").write_text("[core]\n")
    return root
