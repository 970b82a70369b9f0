# =============================================================================
# core/registry.py  —  Upstream HTTP client
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   One async client for every data source the sentinel talks to:
#
#     npm registry     https://registry.npmjs.org/{name}[/{tag}]
#                      https://registry.npmjs.org/-/v1/search?text=...&size=...
#     npm downloads    https://api.npmjs.org/downloads/point/{period}/{name}
#     Bundlephobia     https://bundlephobia.com/api/size?package={name[@version]}
#     npms.io          https://api.npms.io/v2/package/{name}
#     OSV              https://api.osv.dev/v1/query   (POST)
#     GitHub           https://api.github.com/repos/{owner}/{repo}[/releases]
#                      https://raw.githubusercontent.com/{owner}/{repo}/master/{file}
#
#   Each upstream is a named method (fetch_package, fetch_size, ...).  Tool
#   code only ever calls those methods and never builds URLs itself.
#
# ERROR MAPPING (the only exceptions that leave this module):
#   non-2xx response       -> RegistryError(status, reason phrase)
#   network / timeout      -> TransportError
#   2xx but not JSON       -> UpstreamFormatError
#
# TRANSPORT INJECTION:
#   Tests pass `transport=httpx.MockTransport(handler)`; production leaves it
#   as None and httpx opens real sockets.
# =============================================================================

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from core.errors import RegistryError, TransportError, UpstreamFormatError
from core.settings import DEFAULT_HTTP_TIMEOUT_S, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

NPM_REGISTRY_URL = "https://registry.npmjs.org"
NPM_DOWNLOADS_URL = "https://api.npmjs.org/downloads/point"
BUNDLEPHOBIA_URL = "https://bundlephobia.com/api/size"
NPMS_URL = "https://api.npms.io/v2/package"
OSV_QUERY_URL = "https://api.osv.dev/v1/query"
GITHUB_API_URL = "https://api.github.com"
GITHUB_RAW_URL = "https://raw.githubusercontent.com"


class RegistryClient:
    """Typed access to npm, Bundlephobia, npms.io, OSV and GitHub."""

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
        github_token: Optional[str] = None,
        transport: httpx.AsyncBaseTransport | None = None,
        registry_url: str = NPM_REGISTRY_URL,
        downloads_url: str = NPM_DOWNLOADS_URL,
        bundlephobia_url: str = BUNDLEPHOBIA_URL,
        npms_url: str = NPMS_URL,
        osv_url: str = OSV_QUERY_URL,
        github_api_url: str = GITHUB_API_URL,
        github_raw_url: str = GITHUB_RAW_URL,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self.github_token = github_token
        self.registry_url = registry_url.rstrip("/")
        self.downloads_url = downloads_url.rstrip("/")
        self.bundlephobia_url = bundlephobia_url
        self.npms_url = npms_url.rstrip("/")
        self.osv_url = osv_url
        self.github_api_url = github_api_url.rstrip("/")
        self.github_raw_url = github_raw_url.rstrip("/")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    # -------------------------------------------------------------------------
    # Plumbing
    # -------------------------------------------------------------------------
    def _http(self) -> httpx.AsyncClient:
        # Created lazily so the client binds to the event loop that uses it.
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _send(self, method: str, url: str, *, json_body: Any = None,
                    headers: Optional[dict[str, str]] = None) -> httpx.Response:
        try:
            response = await self._http().request(method, url, json=json_body, headers=headers)
        except httpx.HTTPError as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("%s %s failed: %s", method, url, reason)
            raise TransportError(reason, url=url) from exc

        if not response.is_success:
            logger.warning("%s %s -> %s %s", method, url, response.status_code, response.reason_phrase)
            raise RegistryError(response.status_code, response.reason_phrase, url=url)
        return response

    async def fetch_json(self, url: str, *, method: str = "GET", json_body: Any = None,
                         headers: Optional[dict[str, str]] = None) -> Any:
        response = await self._send(method, url, json_body=json_body, headers=headers)
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamFormatError(f"Response from {url} is not valid JSON", url=url) from exc

    async def fetch_text(self, url: str, *, headers: Optional[dict[str, str]] = None) -> str:
        response = await self._send("GET", url, headers=headers)
        return response.text

    def _github_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if self.github_token:
            headers["Authorization"] = f"Bearer {self.github_token}"
        return headers

    # -------------------------------------------------------------------------
    # npm registry
    # -------------------------------------------------------------------------
    async def fetch_package(self, name: str) -> Any:
        """Full packument: every version, dist-tags, time, maintainers."""
        return await self.fetch_json(f"{self.registry_url}/{name}")

    async def fetch_version(self, name: str, tag: str = "latest") -> Any:
        """Manifest of one version, dist-tag or range."""
        return await self.fetch_json(f"{self.registry_url}/{name}/{quote(tag, safe='')}")

    async def search(self, text: str, size: int) -> Any:
        return await self.fetch_json(
            f"{self.registry_url}/-/v1/search?text={quote(text, safe=':')}&size={size}"
        )

    async def fetch_downloads(self, period: str, name: str) -> Any:
        return await self.fetch_json(f"{self.downloads_url}/{period}/{name}")

    # -------------------------------------------------------------------------
    # Bundlephobia, npms.io, OSV
    # -------------------------------------------------------------------------
    async def fetch_size(self, query: str) -> Any:
        """`query` is "name" or "name@version", sent as-is."""
        return await self.fetch_json(f"{self.bundlephobia_url}?package={query}")

    async def fetch_scorecard(self, name: str) -> Any:
        return await self.fetch_json(f"{self.npms_url}/{quote(name, safe='')}")

    async def fetch_vulnerabilities(self, name: str, version: Optional[str] = None) -> Any:
        body: dict[str, Any] = {"package": {"name": name, "ecosystem": "npm"}}
        if version:
            body["version"] = version
        return await self.fetch_json(
            self.osv_url,
            method="POST",
            json_body=body,
            headers={"Content-Type": "application/json"},
        )

    # -------------------------------------------------------------------------
    # GitHub
    # -------------------------------------------------------------------------
    async def fetch_github_repo(self, owner: str, repo: str) -> Any:
        return await self.fetch_json(
            f"{self.github_api_url}/repos/{owner}/{repo}", headers=self._github_headers()
        )

    async def fetch_github_releases(self, owner: str, repo: str, per_page: int = 5) -> Any:
        return await self.fetch_json(
            f"{self.github_api_url}/repos/{owner}/{repo}/releases?per_page={per_page}",
            headers=self._github_headers(),
        )

    def raw_file_url(self, owner: str, repo: str, path: str, branch: str = "master") -> str:
        return f"{self.github_raw_url}/{owner}/{repo}/{branch}/{path}"

    async def fetch_raw_file(self, owner: str, repo: str, path: str, branch: str = "master") -> str:
        return await self.fetch_text(
            self.raw_file_url(owner, repo, path, branch), headers={"Accept": "text/plain"}
        )
