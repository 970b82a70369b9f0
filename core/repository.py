# =============================================================================
# core/repository.py  —  Source repository lookups
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Follows a package's `repository` field out to GitHub:
#
#     fetch_repo_stats     stars, forks, issues, topics from the GitHub API
#     fetch_changelog      CHANGELOG-style file + latest GitHub releases
#     fetch_alternatives   packages sharing the name as an npm keyword
#
# MISSING PREREQUISITES ARE NOT ERRORS:
#   A package with no repository URL, or one hosted somewhere other than
#   GitHub, is a perfectly valid answer.  Those rows come back with status
#   "success" and a message explaining what could not be looked at.
# =============================================================================

import asyncio
import logging
import re
from typing import Any, Optional

from core.errors import InvalidPackageNameError, PackageLookupError, RegistryError, UpstreamError
from core.models import PackageResult, PackageSpec
from core.packages import fetch_monthly_downloads, is_manifest, is_packument, repository_url
from core.registry import RegistryClient
from core.security import version_parts
from core.validation import validate_package_name

logger = logging.getLogger(__name__)

GITHUB_REPO_PATTERN = re.compile(r"github\.com[:/]([^/]+)/([^/.]+)")

CHANGELOG_CANDIDATES: tuple[str, ...] = (
    "CHANGELOG.md",
    "changelog.md",
    "CHANGES.md",
    "changes.md",
    "HISTORY.md",
    "history.md",
    "NEWS.md",
    "news.md",
    "RELEASES.md",
    "releases.md",
)
CHANGELOG_PREVIEW_LINES = 50
MAX_ALTERNATIVES = 5


def parse_github_repo(url: str) -> Optional[tuple[str, str]]:
    """(owner, repo) from any GitHub URL form (https, git+https, git@, ssh)."""
    match = GITHUB_REPO_PATTERN.search(url)
    if not match:
        return None
    return match.group(1), match.group(2)


# =============================================================================
# Repository statistics
# =============================================================================
async def fetch_repo_stats(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        manifest = await client.fetch_version(spec.name, "latest")
    except RegistryError as exc:
        raise PackageLookupError(
            f"Failed to fetch npm info for {spec.name}: {exc}",
            f"Could not retrieve NPM package data for {spec.name}.",
        ) from exc
    if not is_manifest(manifest):
        raise PackageLookupError(
            "Invalid NPM package data format received.",
            f"Malformed NPM package data for {spec.name}.",
        )

    repo_url = repository_url(manifest)
    if not repo_url:
        return PackageResult.success(
            spec, {"repositoryUrl": None},
            f"No repository URL found in package data for {spec.name}.",
        )
    github = parse_github_repo(repo_url)
    if github is None:
        return PackageResult.success(
            spec, {"repositoryUrl": repo_url},
            f"Repository URL found ({repo_url}) is not a standard GitHub URL.",
        )

    owner, repo = github
    try:
        stats = await client.fetch_github_repo(owner, repo)
    except RegistryError as exc:
        raise PackageLookupError(
            f"Failed to fetch GitHub repo stats for {owner}/{repo}: {exc}",
            f"Could not retrieve GitHub repository statistics for {owner}/{repo}.",
        ) from exc
    if not isinstance(stats, dict):
        raise PackageLookupError(f"Invalid GitHub repository data for {owner}/{repo}")

    data = {
        "githubRepoUrl": f"https://github.com/{owner}/{repo}",
        "stars": stats.get("stargazers_count"),
        "forks": stats.get("forks_count"),
        "openIssues": stats.get("open_issues_count"),
        "watchers": stats.get("watchers_count"),
        "createdAt": stats.get("created_at"),
        "updatedAt": stats.get("updated_at"),
        "defaultBranch": stats.get("default_branch"),
        "hasWiki": stats.get("has_wiki"),
        "topics": stats.get("topics") or [],
    }
    return PackageResult.success(spec, data, "GitHub repository statistics fetched successfully.")


# =============================================================================
# Changelog analysis
# =============================================================================
async def _find_changelog(client: RegistryClient, owner: str, repo: str) -> tuple[Optional[str], Optional[str]]:
    # First file that exists wins.
    for filename in CHANGELOG_CANDIDATES:
        try:
            content = await client.fetch_raw_file(owner, repo, filename)
        except UpstreamError:
            continue
        return content, client.raw_file_url(owner, repo, filename)
    return None, None


async def _recent_releases(client: RegistryClient, owner: str, repo: str) -> list[dict[str, Any]]:
    try:
        releases = await client.fetch_github_releases(owner, repo, per_page=5)
    except UpstreamError as exc:
        logger.debug("No GitHub releases for %s/%s: %s", owner, repo, exc)
        return []
    if not isinstance(releases, list):
        return []
    return [
        {
            "tag_name": r.get("tag_name") or None,
            "name": r.get("name") or None,
            "published_at": r.get("published_at") or None,
        }
        for r in releases
        if isinstance(r, dict)
    ]


def _version_history(info: dict[str, Any]) -> dict[str, Any]:
    versions = sorted((info.get("versions") or {}).keys(), key=version_parts)
    return {
        "totalVersions": len(versions),
        "latestVersion": (info.get("dist-tags") or {}).get("latest") or (versions[-1] if versions else None),
        "firstVersion": versions[0] if versions else None,
    }


async def fetch_changelog(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        info = await client.fetch_package(spec.name)
    except RegistryError as exc:
        raise PackageLookupError(
            f"Failed to fetch npm info for {spec.name}: {exc}",
            f"Could not retrieve NPM package data for {spec.name}.",
        ) from exc
    if not is_packument(info):
        raise PackageLookupError(
            "Invalid NPM package info data received",
            f"Received malformed NPM package data for {spec.name}.",
        )

    repo_url = repository_url(info)
    if not repo_url:
        return PackageResult.success(
            spec, {"repositoryUrl": None},
            f"No repository URL found in package data for {spec.name}.",
        )
    github = parse_github_repo(repo_url)
    if github is None:
        return PackageResult.success(
            spec, {"repositoryUrl": repo_url},
            f"Repository URL ({repo_url}) is not a standard GitHub URL.",
        )

    owner, repo = github
    (content, source_url), releases = await asyncio.gather(
        _find_changelog(client, owner, repo),
        _recent_releases(client, owner, repo),
    )
    preview = None
    if content:
        preview = "\n".join(content.split("\n")[:CHANGELOG_PREVIEW_LINES]) + "..."

    if content or releases:
        message = f"Changelog and release information retrieved for {spec.name}."
    else:
        message = f"No changelog file or GitHub releases found for {spec.name}."

    data = {
        "repositoryUrl": repo_url,
        "changelogSourceUrl": source_url,
        "changelogContent": preview,
        "hasChangelogFile": content is not None,
        "githubReleases": releases,
        "npmVersionHistory": _version_history(info),
    }
    return PackageResult.success(spec, data, message)


# =============================================================================
# Alternatives
# =============================================================================
async def _downloads_or_zero(client: RegistryClient, name: str) -> int:
    try:
        validate_package_name(name)
    except InvalidPackageNameError:
        return 0
    return await fetch_monthly_downloads(client, name) or 0


async def fetch_alternatives(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        found = await client.search(f"keywords:{spec.name}", 10)
    except RegistryError as exc:
        raise PackageLookupError(
            f"Failed to search for alternatives: {exc}",
            "Could not perform search for alternatives.",
        ) from exc
    objects = [
        obj for obj in ((found or {}).get("objects") or [])
        if isinstance(obj, dict) and isinstance(obj.get("package"), dict)
    ]

    own = next((o["package"] for o in objects if o["package"].get("name") == spec.name), {})
    original_stats = {
        "name": spec.name,
        "monthlyDownloads": await _downloads_or_zero(client, spec.name),
        "keywords": own.get("keywords") or [],
    }

    others = [o for o in objects if o["package"].get("name") != spec.name][:MAX_ALTERNATIVES]
    if not others:
        return PackageResult.success(
            spec, {"originalPackageStats": original_stats, "alternatives": []},
            f"No significant alternatives found for {spec.name} based on keyword search.",
        )

    downloads = await asyncio.gather(*(
        _downloads_or_zero(client, o["package"].get("name") or "") for o in others
    ))
    alternatives = [
        {
            "name": o["package"].get("name"),
            "description": o["package"].get("description") or None,
            "version": o["package"].get("version"),
            "monthlyDownloads": count,
            "score": (o.get("score") or {}).get("final"),
            "repositoryUrl": (o["package"].get("links") or {}).get("repository") or None,
            "keywords": o["package"].get("keywords") or [],
        }
        for o, count in zip(others, downloads)
    ]
    return PackageResult.success(
        spec, {"originalPackageStats": original_stats, "alternatives": alternatives},
        f"Found {len(alternatives)} alternative(s) for {spec.name}.",
    )
