import json
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from core.cache import ResultCache
from core.lockfile import LockfileSentinel
from core.registry import RegistryClient
from core.sentinel import NpmSentinel

PROJECT_ROOT = Path("/project")

REGISTRY = "https://registry.npmjs.org"
DOWNLOADS = "https://api.npmjs.org/downloads/point"
BUNDLEPHOBIA = "https://bundlephobia.com/api/size"
NPMS = "https://api.npms.io/v2/package"
OSV = "https://api.osv.dev/v1/query"
GITHUB = "https://api.github.com"
GITHUB_RAW = "https://raw.githubusercontent.com"


class FakeUpstream:
    """Routes requests by exact URL and counts how often each URL was hit.

    Unknown URLs answer 404, like a registry asked for a missing package.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.calls: Counter[str] = Counter()
        self.requests: list[httpx.Request] = []

    def json(self, url: str, body: Any, status: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status, json=body)

    def text(self, url: str, body: str, status: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status, text=body)

    def status(self, url: str, status: int) -> None:
        self.routes[url] = lambda request: httpx.Response(status)

    def handler(self, url: str, fn: Callable[[httpx.Request], httpx.Response]) -> None:
        self.routes[url] = fn

    def count(self, url: str) -> int:
        return self.calls[url]

    @property
    def total(self) -> int:
        return sum(self.calls.values())

    def __call__(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls[url] += 1
        self.requests.append(request)
        route = self.routes.get(url)
        if route is None:
            return httpx.Response(404)
        return route(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


class MemoryFileSystem:
    def __init__(self, files: Optional[dict[Path, bytes]] = None) -> None:
        self.files: dict[Path, bytes] = dict(files or {})
        self.reads: list[Path] = []

    def write(self, name: str, content: str) -> None:
        self.files[PROJECT_ROOT / name] = content.encode("utf-8")

    def remove(self, name: str) -> None:
        self.files.pop(PROJECT_ROOT / name, None)

    def exists(self, path: Path) -> bool:
        return path in self.files

    def read_bytes(self, path: Path) -> bytes:
        self.reads.append(path)
        return self.files[path]


def payload(envelope: dict[str, Any]) -> dict[str, Any]:
    assert envelope["content"][0]["type"] == "text"
    return json.loads(envelope["content"][0]["text"])


def packument(name: str, versions: dict[str, dict[str, Any]], latest: str, **extra: Any) -> dict[str, Any]:
    return {
        "name": name,
        "dist-tags": {"latest": latest},
        "versions": {v: {"name": name, "version": v, **data} for v, data in versions.items()},
        **extra,
    }


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def fs() -> MemoryFileSystem:
    memory = MemoryFileSystem()
    memory.write("package-lock.json", '{"lockfileVersion": 3}')
    return memory


@pytest.fixture
def client(upstream: FakeUpstream) -> RegistryClient:
    return RegistryClient(transport=upstream.transport())


@pytest_asyncio.fixture
async def sentinel(client: RegistryClient, fs: MemoryFileSystem):
    service = NpmSentinel(client, ResultCache(), LockfileSentinel(PROJECT_ROOT, fs))
    yield service
    await service.aclose()
