"""
Transport - HTTP plumbing between scarunner and the SCA service.

The scan lifecycle only depends on the Transport protocol below. HttpTransport
is the aiohttp-backed implementation used in production; tests substitute an
in-memory fake.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import aiohttp
import structlog
from pydantic import ValidationError

from ..core.errors import TransportError
from ..core.models import Credentials, Session
from .endpoints import TENANT_HEADER_NAME, Endpoint
from .schemas import TokenResponse


DEFAULT_USER_AGENT = "scarunner/1.0"


class Transport(Protocol):
    """What the scan lifecycle needs from a transport"""

    async def login(self, credentials: Credentials) -> Session: ...

    async def get(self, endpoint: Endpoint) -> Any: ...

    async def post(self, endpoint: Endpoint, body: Optional[Dict[str, Any]] = None) -> Any: ...

    async def put_file(self, url: str, path: Path) -> None: ...

    async def close(self) -> None: ...


class HttpTransport:
    """
    aiohttp client for the SCA service API.

    After login() every API request carries the bearer token and the tenant
    header. Uploads go to pre-signed storage URLs and carry neither.

    Example:
        >>> async with HttpTransport("https://api.example.com") as transport:
        ...     await transport.login(credentials)
        ...     projects = await transport.get(endpoints.projects())
    """

    def __init__(
        self,
        api_url: str,
        timeout: float = 60.0,
        verify_ssl: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent

        self._session = session
        self._owns_session = session is None
        self._access_token: Optional[str] = None
        self._tenant: Optional[str] = None

        self.logger = structlog.get_logger(__name__)

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent},
                connector=aiohttp.TCPConnector(ssl=True if self.verify_ssl else False),
            )
            self._owns_session = True
        return self._session

    async def login(self, credentials: Credentials) -> Session:
        """Exchange username/password for an access token (password grant)"""
        form = {
            "grant_type": "password",
            "username": credentials.username,
            "password": credentials.password,
            "acr_values": f"Tenant:{credentials.tenant}",
            "scope": credentials.scopes,
            "client_id": credentials.client_id,
        }
        payload = await self._send("POST", credentials.token_url, data=form, authenticated=False)
        try:
            token = TokenResponse.model_validate(payload)
        except ValidationError as exc:
            raise TransportError(f"Unexpected login response: {exc.error_count()} invalid field(s)") from exc

        self._access_token = token.access_token
        self._tenant = credentials.tenant
        self.logger.debug("login_succeeded", token_url=credentials.token_url, cloud=credentials.is_cloud)
        return Session(
            access_token=token.access_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
        )

    async def get(self, endpoint: Endpoint) -> Any:
        return await self._send(endpoint.method, self.api_url + endpoint.path)

    async def post(self, endpoint: Endpoint, body: Optional[Dict[str, Any]] = None) -> Any:
        return await self._send(endpoint.method, self.api_url + endpoint.path, json=body or {})

    async def put_file(self, url: str, path: Path) -> None:
        """Upload a file to a pre-signed URL with no Content-Type header"""
        self.logger.debug("upload_started", path=str(path))
        data = await asyncio.to_thread(Path(path).read_bytes)
        await self._send(
            "PUT",
            url,
            data=data,
            authenticated=False,
            skip_auto_headers=("Content-Type",),
            expect_body=False,
        )
        self.logger.debug("upload_complete", path=str(path), size=len(data))

    def _auth_headers(self) -> Dict[str, str]:
        if self._access_token is None:
            raise TransportError("Not logged in")
        headers = {"Authorization": f"Bearer {self._access_token}"}
        if self._tenant:
            headers[TENANT_HEADER_NAME] = self._tenant
        return headers

    async def _send(
        self,
        method: str,
        url: str,
        authenticated: bool = True,
        expect_body: bool = True,
        **kwargs: Any,
    ) -> Any:
        headers = self._auth_headers() if authenticated else {}
        session = self._get_session()

        try:
            async with session.request(method, url, headers=headers, **kwargs) as resp:
                text = await resp.text()
                if resp.status >= 400:
                    raise TransportError(
                        f"{method} {url} failed with HTTP {resp.status}: {text[:200]}",
                        status=resp.status,
                        transient=resp.status >= 500 or resp.status == 429,
                    )
                if not expect_body or not text.strip():
                    return None
                if "json" not in resp.headers.get("Content-Type", "application/json"):
                    return text.strip()
                try:
                    return json.loads(text)
                except ValueError as exc:
                    raise TransportError(f"{method} {url} returned malformed JSON") from exc

        except asyncio.TimeoutError as exc:
            raise TransportError(f"{method} {url} timed out", transient=True) from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{method} {url} failed: {exc}", transient=True) from exc
