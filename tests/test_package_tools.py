import httpx
import pytest

from tests.conftest import DOWNLOADS, REGISTRY, FakeUpstream, packument, payload


def _express_packument() -> dict:
    return packument(
        "express",
        {
            "4.18.1": {},
            "4.18.2": {
                "readme": "# Express\nFast web framework",
                "dependencies": {"body-parser": "1.20.1", "Bad_Name": "1.0.0"},
            },
        },
        latest="4.18.2",
        maintainers=[{"name": "wesleytodd", "email": "wes@example.com"}, "not-a-dict"],
        time={"4.18.2": "2022-10-08T20:12:24.177Z"},
    )


EXPRESS_MANIFEST = {
    "name": "express",
    "version": "4.18.2",
    "description": "Fast, unopinionated, minimalist web framework",
    "author": {"name": "TJ Holowaychuk"},
    "license": "MIT",
    "repository": {"type": "git", "url": "git+https://github.com/expressjs/express.git"},
    "bugs": "https://github.com/expressjs/express/issues",
    "dependencies": {"accepts": "~1.3.8", "body-parser": "1.20.1"},
    "devDependencies": {"mocha": "10.0.0"},
}


@pytest.fixture
def registry(upstream: FakeUpstream) -> FakeUpstream:
    upstream.json(f"{REGISTRY}/express", _express_packument())
    upstream.json(f"{REGISTRY}/express/latest", EXPRESS_MANIFEST)
    upstream.json(f"{REGISTRY}/express/4.18.2", EXPRESS_MANIFEST)
    return upstream


# -----------------------------------------------------------------------------
# Batch envelope
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_empty_package_list_is_a_whole_call_error(sentinel, upstream) -> None:
    envelope = await sentinel.versions([])

    assert envelope["isError"] is True
    assert payload(envelope) == {"queryPackages": [], "error": "No package names provided"}
    assert upstream.total == 0


@pytest.mark.asyncio
async def test_results_keep_input_order_with_partial_failure(sentinel, registry) -> None:
    query = ["express", "../../etc/passwd", "missing-pkg", "express"]

    envelope = await sentinel.versions(query)
    body = payload(envelope)

    assert envelope["isError"] is False
    assert body["queryPackages"] == query
    assert [r["packageInput"] for r in body["results"]] == query
    assert [r["status"] for r in body["results"]] == ["success", "error", "error", "success"]
    assert body["message"] == "Version information for 2 package(s). 2 failed."


@pytest.mark.asyncio
async def test_invalid_name_is_never_fetched(sentinel, upstream) -> None:
    body = payload(await sentinel.latest(["pkg;rm -rf /", "Upper"]))

    assert upstream.total == 0
    for row in body["results"]:
        assert row["status"] == "error"
        assert "Invalid package name" in row["error"]
        assert row["packageName"] == row["packageInput"]


@pytest.mark.asyncio
async def test_unexpected_exception_is_isolated(sentinel, registry, monkeypatch) -> None:
    from core import packages

    async def boom(client, spec):
        if spec.name == "express":
            raise RuntimeError("kaboom")
        return await original(client, spec)

    original = packages.fetch_versions
    monkeypatch.setattr(packages, "fetch_versions", boom)

    body = payload(await sentinel.versions(["express", "missing-pkg"]))

    first, second = body["results"]
    assert first["status"] == "error" and first["error"] == "kaboom"
    assert second["status"] == "error"


# -----------------------------------------------------------------------------
# Individual tools
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_versions(sentinel, registry) -> None:
    row = payload(await sentinel.versions(["express"]))["results"][0]

    assert row["status"] == "success"
    assert row["error"] is None
    assert row["data"] == {
        "allVersions": ["4.18.1", "4.18.2"],
        "tags": {"latest": "4.18.2"},
        "latestVersionTag": "4.18.2",
    }


@pytest.mark.asyncio
async def test_latest(sentinel, registry) -> None:
    body = payload(await sentinel.latest(["express"]))
    row = body["results"][0]

    assert row["versionQueried"] == "latest"
    assert row["data"]["version"] == "4.18.2"
    assert row["data"]["author"] == "TJ Holowaychuk"
    assert row["data"]["repositoryUrl"] == "git+https://github.com/expressjs/express.git"
    assert row["data"]["bugsUrl"] == "https://github.com/expressjs/express/issues"
    assert row["data"]["dependenciesCount"] == 2
    assert row["data"]["devDependenciesCount"] == 1
    assert body["message"] == "Latest version information for 1 package(s)."


@pytest.mark.asyncio
async def test_latest_unknown_version(sentinel, registry) -> None:
    row = payload(await sentinel.latest(["express@9.9.9"]))["results"][0]

    assert row["status"] == "error"
    assert row["error"] == "Package express@9.9.9 not found."
    assert row["versionQueried"] == "9.9.9"


@pytest.mark.asyncio
async def test_latest_accepts_range_and_bare_at(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(f"{REGISTRY}/lodash/%5E4.17.0", {"name": "lodash", "version": "4.17.21"})
    upstream.json(f"{REGISTRY}/lodash/latest", {"name": "lodash", "version": "4.17.21"})

    body = payload(await sentinel.latest(["lodash@^4.17.0", "lodash@"]))
    ranged, bare = body["results"]

    assert ranged["status"] == "success"
    assert ranged["versionQueried"] == "^4.17.0"
    assert ranged["data"]["version"] == "4.17.21"
    assert bare["status"] == "success"
    assert bare["packageInput"] == "lodash@"
    assert bare["versionQueried"] == "latest"


@pytest.mark.asyncio
async def test_network_failure_is_isolated_to_one_package(sentinel, registry) -> None:
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    registry.handler(f"{REGISTRY}/koa", refuse)

    body = payload(await sentinel.versions(["koa", "express"]))
    koa, express = body["results"]

    assert koa["status"] == "error"
    assert koa["error"] == "Failed to fetch koa: connection refused"
    assert express["status"] == "success"
    assert express["error"] is None
    assert body["message"] == "Version information for 1 package(s). 1 failed."


@pytest.mark.asyncio
async def test_dependencies(sentinel, registry) -> None:
    row = payload(await sentinel.dependencies(["express"]))["results"][0]

    assert row["resolvedVersion"] == "4.18.2"
    assert row["data"]["dependencies"] == [
        {"name": "accepts", "version": "~1.3.8"},
        {"name": "body-parser", "version": "1.20.1"},
    ]
    assert row["data"]["peerDependencies"] == []
    assert row["message"] == "Dependencies for express@4.18.2"


@pytest.mark.asyncio
async def test_types_finds_definitely_typed(sentinel, registry) -> None:
    registry.json(f"{REGISTRY}/@types/express/latest", {"name": "@types/express", "version": "4.17.17"})

    data = payload(await sentinel.types(["express"]))["results"][0]["data"]

    assert data["mainPackage"]["hasBuiltInTypes"] is False
    assert data["typesPackage"] == {"name": "@types/express", "version": "4.17.17", "isAvailable": True}


@pytest.mark.asyncio
async def test_types_without_definitely_typed(sentinel, upstream) -> None:
    upstream.json(f"{REGISTRY}/zod/latest", {"name": "zod", "version": "3.22.4", "types": "index.d.ts"})

    data = payload(await sentinel.types(["zod"]))["results"][0]["data"]

    assert data["mainPackage"] == {
        "name": "zod", "version": "3.22.4", "hasBuiltInTypes": True, "typesPath": "index.d.ts",
    }
    assert data["typesPackage"]["isAvailable"] is False


def test_types_name_for_scoped_package() -> None:
    from core.packages import types_package_name

    assert types_package_name("@babel/core") == "@types/babel__core"
    assert types_package_name("lodash") == "@types/lodash"


@pytest.mark.asyncio
async def test_maintainers(sentinel, registry) -> None:
    data = payload(await sentinel.maintainers(["express"]))["results"][0]["data"]

    assert data["maintainersCount"] == 1
    assert data["maintainers"][0] == {"name": "wesleytodd", "email": "wes@example.com", "url": None}


@pytest.mark.asyncio
async def test_maintainers_unknown_package(sentinel) -> None:
    row = payload(await sentinel.maintainers(["missing-pkg"]))["results"][0]
    assert row["error"] == "Package missing-pkg not found in the npm registry."


@pytest.mark.asyncio
async def test_readme(sentinel, registry) -> None:
    row = payload(await sentinel.readme(["express"]))["results"][0]

    assert row["versionQueried"] == "latest"
    assert row["versionFetched"] == "4.18.2"
    assert row["data"]["hasReadme"] is True
    assert row["data"]["readme"].startswith("# Express")


@pytest.mark.asyncio
async def test_readme_unknown_version(sentinel, registry) -> None:
    row = payload(await sentinel.readme(["express@0.0.1"]))["results"][0]

    assert row["status"] == "error"
    assert row["error"] == "Version 0.0.1 not found or no version data available."
    assert row["versionQueried"] == "0.0.1"


@pytest.mark.asyncio
async def test_deprecated_checks_dependencies(sentinel, registry) -> None:
    registry.json(
        f"{REGISTRY}/body-parser",
        packument("body-parser", {"1.20.1": {"deprecated": "use express.json()"}}, latest="1.20.1"),
    )

    row = payload(await sentinel.deprecated(["express"]))["results"][0]
    data = row["data"]

    assert row["resolvedVersion"] == "4.18.2"
    assert data["isPackageDeprecated"] is False
    body_parser, bad = data["dependencies"]["direct"]
    assert body_parser["isDeprecated"] is True
    assert body_parser["deprecationMessage"] == "use express.json()"
    assert bad["isDeprecated"] is False
    assert bad["statusMessage"].startswith("Error processing dependency 'Bad_Name'")
    assert data["dependencySummary"]["totalDependencies"] == 2
    assert data["dependencySummary"]["unverifiableDependencies"] == 1
    assert row["message"].startswith("Deprecation status for express@4.18.2. Processed 2 total")
    # the malformed name never reached the registry
    assert registry.count(f"{REGISTRY}/Bad_Name") == 0


@pytest.mark.asyncio
async def test_compare(sentinel, registry) -> None:
    registry.json(f"{DOWNLOADS}/last-month/express", {"downloads": 123456, "package": "express"})

    row = payload(await sentinel.compare(["express"]))["results"][0]

    assert row["versionQueried"] == "latest"
    assert row["data"]["monthlyDownloads"] == 123456
    assert row["data"]["publishDate"] == "2022-10-08T20:12:24.177Z"
    assert row["data"]["license"] == "MIT"


@pytest.mark.asyncio
async def test_compare_without_download_data(sentinel, registry) -> None:
    data = payload(await sentinel.compare(["express"]))["results"][0]["data"]
    assert data["monthlyDownloads"] is None


# -----------------------------------------------------------------------------
# Search
# -----------------------------------------------------------------------------
SEARCH_BODY = {
    "total": 2,
    "objects": [
        {
            "package": {
                "name": "react",
                "version": "18.2.0",
                "description": "React is a JavaScript library for building user interfaces.",
                "keywords": ["react"],
                "publisher": {"username": "gnoff", "email": "g@example.com"},
                "links": {"npm": "https://www.npmjs.com/package/react"},
            },
            "score": {"final": 0.9, "detail": {"quality": 0.8, "popularity": 0.95, "maintenance": 1}},
            "searchScore": 100000.1,
        },
    ],
}


@pytest.mark.asyncio
async def test_search(sentinel, upstream) -> None:
    upstream.json(f"{REGISTRY}/-/v1/search?text=react&size=5", SEARCH_BODY)

    envelope = await sentinel.search("react", limit=5)
    body = payload(envelope)

    assert envelope["isError"] is False
    assert body["limitUsed"] == 5
    assert body["totalResults"] == 2
    assert body["resultsCount"] == 1
    assert body["results"][0]["publisher"] == {"username": "gnoff", "email": "g@example.com"}
    assert body["results"][0]["score"]["detail"]["popularity"] == 0.95
    assert body["message"] == "Search completed. Found 2 total packages, returning 1."


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 251, True])
async def test_search_limit_out_of_range(sentinel, upstream, limit) -> None:
    envelope = await sentinel.search("react", limit=limit)
    body = payload(envelope)

    assert envelope["isError"] is True
    assert body["error"] == "Error searching packages: Limit must be between 1 and 250."
    assert body["results"] == []
    assert upstream.total == 0


@pytest.mark.asyncio
async def test_search_upstream_failure(sentinel, upstream) -> None:
    upstream.status(f"{REGISTRY}/-/v1/search?text=react&size=10", 500)

    envelope = await sentinel.search("react")
    body = payload(envelope)

    assert envelope["isError"] is True
    assert body["error"].startswith("Error searching packages: 500")
    assert body["limitUsed"] == 10
    assert body["resultsCount"] == 0
