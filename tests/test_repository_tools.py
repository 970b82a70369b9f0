import pytest

from core.repository import parse_github_repo

from tests.conftest import DOWNLOADS, GITHUB, GITHUB_RAW, REGISTRY, FakeUpstream, packument, payload

EXPRESS_REPO = {"type": "git", "url": "git+https://github.com/expressjs/express.git"}


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("git+https://github.com/expressjs/express.git", ("expressjs", "express")),
        ("https://github.com/facebook/react", ("facebook", "react")),
        ("git@github.com:lodash/lodash.git", ("lodash", "lodash")),
        ("git+ssh://git@github.com/vuejs/core.git", ("vuejs", "core")),
        ("https://gitlab.com/group/project", None),
    ],
)
def test_parse_github_repo(url, expected) -> None:
    assert parse_github_repo(url) == expected


# -----------------------------------------------------------------------------
# npmRepoStats
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_repo_stats(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(f"{REGISTRY}/express/latest", {"name": "express", "version": "4.18.2", "repository": EXPRESS_REPO})
    upstream.json(
        f"{GITHUB}/repos/expressjs/express",
        {
            "stargazers_count": 64000,
            "forks_count": 15000,
            "open_issues_count": 180,
            "watchers_count": 64000,
            "default_branch": "master",
            "has_wiki": True,
            "topics": ["nodejs", "server"],
        },
    )

    row = payload(await sentinel.repo_stats(["express"]))["results"][0]

    assert row["status"] == "success"
    assert row["data"]["githubRepoUrl"] == "https://github.com/expressjs/express"
    assert row["data"]["stars"] == 64000
    assert row["data"]["topics"] == ["nodejs", "server"]


@pytest.mark.asyncio
async def test_repo_stats_without_repository_is_success(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(f"{REGISTRY}/tiny/latest", {"name": "tiny", "version": "1.0.0"})

    row = payload(await sentinel.repo_stats(["tiny"]))["results"][0]

    assert row["status"] == "success"
    assert row["data"] == {"repositoryUrl": None}
    assert row["message"] == "No repository URL found in package data for tiny."
    assert upstream.total == 1


@pytest.mark.asyncio
async def test_repo_stats_non_github(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(
        f"{REGISTRY}/glab/latest",
        {"name": "glab", "version": "1.0.0", "repository": "https://gitlab.com/group/glab"},
    )

    row = payload(await sentinel.repo_stats(["glab"]))["results"][0]

    assert row["status"] == "success"
    assert row["data"] == {"repositoryUrl": "https://gitlab.com/group/glab"}
    assert "is not a standard GitHub URL" in row["message"]


@pytest.mark.asyncio
async def test_repo_stats_github_failure(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(f"{REGISTRY}/express/latest", {"name": "express", "version": "4.18.2", "repository": EXPRESS_REPO})
    upstream.status(f"{GITHUB}/repos/expressjs/express", 403)

    row = payload(await sentinel.repo_stats(["express"]))["results"][0]

    assert row["status"] == "error"
    assert row["error"] == "Failed to fetch GitHub repo stats for expressjs/express: 403 Forbidden"


# -----------------------------------------------------------------------------
# npmChangelogAnalysis
# -----------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_changelog(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(
        f"{REGISTRY}/express",
        packument("express", {"4.9.0": {}, "4.10.0": {}, "0.14.0": {}}, latest="4.10.0", repository=EXPRESS_REPO),
    )
    history = "\n".join(f"line {i}" for i in range(80))
    upstream.text(f"{GITHUB_RAW}/expressjs/express/master/HISTORY.md", history)
    upstream.json(
        f"{GITHUB}/repos/expressjs/express/releases?per_page=5",
        [{"tag_name": "4.10.0", "name": "4.10.0", "published_at": "2024-09-10T00:00:00Z", "body": "..."}],
    )

    row = payload(await sentinel.changelog(["express"]))["results"][0]
    data = row["data"]

    assert data["hasChangelogFile"] is True
    assert data["changelogSourceUrl"] == f"{GITHUB_RAW}/expressjs/express/master/HISTORY.md"
    assert data["changelogContent"].split("\n")[-1] == "line 49..."
    assert data["githubReleases"] == [
        {"tag_name": "4.10.0", "name": "4.10.0", "published_at": "2024-09-10T00:00:00Z"}
    ]
    assert data["npmVersionHistory"] == {
        "totalVersions": 3,
        "latestVersion": "4.10.0",
        "firstVersion": "0.14.0",
    }
    assert row["message"] == "Changelog and release information retrieved for express."
    # earlier candidates were probed in order, later ones never
    assert upstream.count(f"{GITHUB_RAW}/expressjs/express/master/CHANGELOG.md") == 1
    assert upstream.count(f"{GITHUB_RAW}/expressjs/express/master/NEWS.md") == 0


@pytest.mark.asyncio
async def test_changelog_nothing_found(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(
        f"{REGISTRY}/express",
        packument("express", {"1.0.0": {}}, latest="1.0.0", repository=EXPRESS_REPO),
    )

    row = payload(await sentinel.changelog(["express"]))["results"][0]

    assert row["status"] == "success"
    assert row["data"]["hasChangelogFile"] is False
    assert row["data"]["changelogContent"] is None
    assert row["message"] == "No changelog file or GitHub releases found for express."


# -----------------------------------------------------------------------------
# npmAlternatives
# -----------------------------------------------------------------------------
def _hit(name: str, score: float) -> dict:
    return {
        "package": {
            "name": name,
            "version": "1.0.0",
            "description": f"{name} web framework",
            "keywords": ["express", "framework"],
            "links": {"repository": f"https://github.com/x/{name}"},
        },
        "score": {"final": score},
    }


@pytest.mark.asyncio
async def test_alternatives(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(
        f"{REGISTRY}/-/v1/search?text=keywords:express&size=10",
        {"total": 4, "objects": [_hit("express", 0.9), _hit("koa", 0.8), _hit("Not Valid", 0.1), _hit("fastify", 0.7)]},
    )
    upstream.json(f"{DOWNLOADS}/last-month/express", {"downloads": 1000})
    upstream.json(f"{DOWNLOADS}/last-month/koa", {"downloads": 300})

    row = payload(await sentinel.alternatives(["express"]))["results"][0]
    data = row["data"]

    assert data["originalPackageStats"] == {
        "name": "express",
        "monthlyDownloads": 1000,
        "keywords": ["express", "framework"],
    }
    assert [a["name"] for a in data["alternatives"]] == ["koa", "Not Valid", "fastify"]
    assert [a["monthlyDownloads"] for a in data["alternatives"]] == [300, 0, 0]
    assert data["alternatives"][0]["score"] == 0.8
    assert row["message"] == "Found 3 alternative(s) for express."
    assert upstream.count(f"{DOWNLOADS}/last-month/Not Valid") == 0


@pytest.mark.asyncio
async def test_alternatives_none_found(sentinel, upstream: FakeUpstream) -> None:
    upstream.json(
        f"{REGISTRY}/-/v1/search?text=keywords:solo&size=10",
        {"total": 1, "objects": [_hit("solo", 0.5)]},
    )

    row = payload(await sentinel.alternatives(["solo"]))["results"][0]

    assert row["status"] == "success"
    assert row["data"]["alternatives"] == []
    assert row["message"] == "No significant alternatives found for solo based on keyword search."
