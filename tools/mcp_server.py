# =============================================================================
# tools/mcp_server.py  —  FastMCP Tool Server (ALL tools in one place)
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Defines every MCP tool the sentinel exposes.  Each tool is a thin wrapper
#   around one NpmSentinel coroutine: log the call, await the envelope, hand
#   its JSON text back to the client.
#
# HOW IT WORKS (the flow):
#   1. An MCP client (an IDE assistant, an agent) calls a tool by name,
#      e.g. "npmVulnerabilities" with {"packages": ["lodash@4.17.20"]}
#   2. FastMCP routes the call to the decorated function below
#   3. The function awaits core.sentinel.NpmSentinel, which validates,
#      consults the cache and fans out to the upstream APIs
#   4. The JSON envelope text goes back to the client; a whole-call failure
#      (empty package list, bad search limit) is raised as ToolError so the
#      protocol marks the result isError=true
#
# TOOL NAMING:
#   The wire names are camelCase (npmVersions, npmLatest, ...) and so are the
#   argument names (packages, ignoreCache).  Existing MCP client configs use
#   exactly these names, so they are part of the contract.
#
# CACHING:
#   Every tool accepts ignoreCache.  It skips the cache READ only; the fresh
#   result is still written back for later callers.  Editing the project's
#   lockfile (pnpm-lock.yaml / package-lock.json / yarn.lock) invalidates
#   everything automatically.
#
# RUNNING THIS SERVER:
#   a) Standalone:  python -m tools.mcp_server
#   b) Via main.py: python main.py   (loads .env first)
# =============================================================================

import json
import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError

# The tools layer depends on core/ and nothing else.
from core.sentinel import NpmSentinel
from core.settings import Settings

# =============================================================================
# Logging Setup
# =============================================================================
# STDOUT is the MCP transport; anything printed there corrupts the JSON-RPC
# stream.  All logging goes to STDERR.
#
# ANSI COLOR CODES:
#   CYAN for incoming requests, GREEN for response previews, YELLOW for
#   intermediate status lines.
# =============================================================================

_CYAN = "\033[36m"     # Requests (tool calls with params)
_GREEN = "\033[32m"    # Responses (JSON preview)
_YELLOW = "\033[33m"   # Status/progress messages
_RESET = "\033[0m"

_PREVIEW_CHARS = 300

settings = Settings.from_env()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s [MCP] %(message)s",
    datefmt="%H:%M:%S",
    stream=sys.stderr,
)


def _log_request(tool_name: str, **params) -> None:
    """Log an incoming tool call with its parameters in CYAN."""
    param_str = ", ".join(f"{k}={v!r}" for k, v in params.items())
    logging.info(f"{_CYAN}{tool_name} called with: {param_str}{_RESET}")


def _log_status(message: str) -> None:
    """Log an intermediate status message in YELLOW."""
    logging.info(f"{_YELLOW}  → {message}{_RESET}")


def _log_response(tool_name: str, text: str) -> str:
    """Log a compact, truncated preview of the response in GREEN, then return it."""
    try:
        compact = json.dumps(json.loads(text), separators=(",", ":"))
    except ValueError:
        compact = text
    if len(compact) > _PREVIEW_CHARS:
        compact = compact[:_PREVIEW_CHARS] + f"... ({len(compact)} chars)"
    logging.info(f"{_GREEN}  ← {tool_name} response: {compact}{_RESET}")
    return text


def _finish(tool_name: str, envelope: dict[str, Any]) -> str:
    """Turn a sentinel envelope into the tool's return value.

    isError envelopes are raised as ToolError so FastMCP reports them as
    errors; the JSON text is the error message either way.
    """
    text = envelope["content"][0]["text"]
    if envelope.get("isError"):
        _log_status(f"{tool_name} failed as a whole")
        _log_response(tool_name, text)
        raise ToolError(text)
    return _log_response(tool_name, text)


# =============================================================================
# Create the FastMCP server instance
# =============================================================================
# One NpmSentinel per process: it owns the result cache, so every tool call
# in this process shares the same cache and lockfile sentinel.  The lifespan
# hook closes its HTTP client when the server shuts down.
# =============================================================================
sentinel = NpmSentinel.from_settings(settings)


@asynccontextmanager
async def _lifespan(server: FastMCP) -> AsyncIterator[None]:
    try:
        yield
    finally:
        _log_status("closing upstream HTTP client")
        await sentinel.aclose()


mcp = FastMCP("npm-sentinel-mcp", lifespan=_lifespan)


# =============================================================================
# Registry tools
# =============================================================================
@mcp.tool(name="npmVersions")
async def npm_versions(packages: list[str], ignoreCache: bool = False) -> str:
    """List every published version and dist-tag of one or more npm packages.

    WHEN TO CALL THIS: When you need to know which versions exist, or what
    "latest"/"next" currently point to, before pinning or upgrading.

    Args:
        packages: Package names, e.g. ["react", "@types/node"].
        ignoreCache: Force a fresh registry fetch.

    Returns:
        JSON with queryPackages, one result per package
        (data: allVersions, tags, latestVersionTag) and a summary message.
    """
    _log_request("npmVersions", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmVersions", await sentinel.versions(packages, ignoreCache))


@mcp.tool(name="npmLatest")
async def npm_latest(packages: list[str], ignoreCache: bool = False) -> str:
    """Get manifest details of the latest (or a pinned) version.

    WHEN TO CALL THIS: To see description, license, homepage, repository,
    dependency counts and tarball info of a specific release.

    Args:
        packages: "name" or "name@version" / "name@tag", e.g. ["express@4.18.2"].
        ignoreCache: Force a fresh registry fetch.
    """
    _log_request("npmLatest", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmLatest", await sentinel.latest(packages, ignoreCache))


@mcp.tool(name="npmDeps")
async def npm_deps(packages: list[str], ignoreCache: bool = False) -> str:
    """List dependencies, devDependencies and peerDependencies of a release.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force a fresh registry fetch.
    """
    _log_request("npmDeps", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmDeps", await sentinel.dependencies(packages, ignoreCache))


@mcp.tool(name="npmTypes")
async def npm_types(packages: list[str], ignoreCache: bool = False) -> str:
    """Check TypeScript support: bundled typings and a matching @types package.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force a fresh registry fetch.
    """
    _log_request("npmTypes", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmTypes", await sentinel.types(packages, ignoreCache))


@mcp.tool(name="npmMaintainers")
async def npm_maintainers(packages: list[str], ignoreCache: bool = False) -> str:
    """List the npm maintainers of one or more packages.

    Args:
        packages: Package names; a pinned version is ignored.
        ignoreCache: Force a fresh registry fetch.
    """
    _log_request("npmMaintainers", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmMaintainers", await sentinel.maintainers(packages, ignoreCache))


@mcp.tool(name="npmPackageReadme")
async def npm_package_readme(packages: list[str], ignoreCache: bool = False) -> str:
    """Fetch the README of the latest (or a pinned) version.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force a fresh registry fetch.
    """
    _log_request("npmPackageReadme", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmPackageReadme", await sentinel.readme(packages, ignoreCache))


@mcp.tool(name="npmDeprecated")
async def npm_deprecated(packages: list[str], ignoreCache: bool = False) -> str:
    """Check whether a release and each of its dependencies are deprecated.

    WHEN TO CALL THIS: Before adopting or upgrading a package, to spot
    abandoned dependencies.  Every dependency costs one extra registry call.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force fresh registry fetches.
    """
    _log_request("npmDeprecated", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmDeprecated", await sentinel.deprecated(packages, ignoreCache))


@mcp.tool(name="npmCompare")
async def npm_compare(packages: list[str], ignoreCache: bool = False) -> str:
    """Side-by-side comparison: license, dependency counts, monthly downloads, publish date.

    Args:
        packages: Two or more package names (optionally "name@version").
        ignoreCache: Force fresh fetches.
    """
    _log_request("npmCompare", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmCompare", await sentinel.compare(packages, ignoreCache))


@mcp.tool(name="npmSearch")
async def npm_search(query: str, limit: Optional[int] = 10, ignoreCache: bool = False) -> str:
    """Search the npm registry.

    WHEN TO CALL THIS: When the user describes a need ("date formatting",
    "keywords:react state") rather than naming a package.

    Args:
        query: Free text; npm qualifiers such as keywords:, author: work.
        limit: Number of results, 1-250 (default 10).
        ignoreCache: Force a fresh search.
    """
    _log_request("npmSearch", query=query, limit=limit, ignoreCache=ignoreCache)
    return _finish("npmSearch", await sentinel.search(query, limit, ignoreCache))


# =============================================================================
# Metrics tools
# =============================================================================
@mcp.tool(name="npmSize")
async def npm_size(packages: list[str], ignoreCache: bool = False) -> str:
    """Bundle size (minified and gzipped, in KB) and dependency count from Bundlephobia.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force a fresh Bundlephobia fetch.
    """
    _log_request("npmSize", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmSize", await sentinel.size(packages, ignoreCache))


@mcp.tool(name="npmScore")
async def npm_score(packages: list[str], ignoreCache: bool = False) -> str:
    """Overall npms.io score with quality, popularity and maintenance breakdown.

    Args:
        packages: Package names; npms.io always scores the latest version.
        ignoreCache: Force a fresh npms.io fetch.
    """
    _log_request("npmScore", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmScore", await sentinel.score(packages, ignoreCache))


@mcp.tool(name="npmQuality")
async def npm_quality(packages: list[str], ignoreCache: bool = False) -> str:
    """npms.io quality sub-score.

    Args:
        packages: Package names.
        ignoreCache: Force a fresh npms.io fetch.
    """
    _log_request("npmQuality", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmQuality", await sentinel.quality(packages, ignoreCache))


@mcp.tool(name="npmMaintenance")
async def npm_maintenance(packages: list[str], ignoreCache: bool = False) -> str:
    """npms.io maintenance sub-score.

    Args:
        packages: Package names.
        ignoreCache: Force a fresh npms.io fetch.
    """
    _log_request("npmMaintenance", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmMaintenance", await sentinel.maintenance(packages, ignoreCache))


@mcp.tool(name="npmTrends")
async def npm_trends(packages: list[str], period: str = "last-month",
                     ignoreCache: bool = False) -> str:
    """Download counts over a period, per package and in total.

    Args:
        packages: Package names.
        period: "last-week", "last-month" (default) or "last-year".
        ignoreCache: Force fresh downloads API calls.
    """
    _log_request("npmTrends", packages=packages, period=period, ignoreCache=ignoreCache)
    return _finish("npmTrends", await sentinel.trends(packages, period, ignoreCache))


# =============================================================================
# Security tools
# =============================================================================
@mcp.tool(name="npmVulnerabilities")
async def npm_vulnerabilities(packages: list[str], ignoreCache: bool = False) -> str:
    """Known vulnerabilities from the OSV database.

    WHEN TO CALL THIS: Before installing or upgrading.  Pin a version
    ("lodash@4.17.20") to get advisories for that release and whether each
    one is already fixed in it; without a version every advisory ever filed
    is listed with its affected ranges.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force a fresh OSV query.
    """
    _log_request("npmVulnerabilities", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmVulnerabilities", await sentinel.vulnerabilities(packages, ignoreCache))


@mcp.tool(name="npmLicenseCompatibility")
async def npm_license_compatibility(packages: list[str], ignoreCache: bool = False) -> str:
    """Licenses of several packages plus a basic compatibility analysis.

    The analysis flags GPL code, GPL mixed with permissive licenses and
    unknown licenses.  It is a heuristic, not legal advice.

    Args:
        packages: "name" or "name@version".
        ignoreCache: Force fresh registry fetches.
    """
    _log_request("npmLicenseCompatibility", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmLicenseCompatibility",
                   await sentinel.license_compatibility(packages, ignoreCache))


# =============================================================================
# Repository tools
# =============================================================================
@mcp.tool(name="npmRepoStats")
async def npm_repo_stats(packages: list[str], ignoreCache: bool = False) -> str:
    """GitHub statistics (stars, forks, issues, topics) of each package's repository.

    Args:
        packages: Package names.
        ignoreCache: Force fresh npm and GitHub fetches.
    """
    _log_request("npmRepoStats", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmRepoStats", await sentinel.repo_stats(packages, ignoreCache))


@mcp.tool(name="npmChangelogAnalysis")
async def npm_changelog_analysis(packages: list[str], ignoreCache: bool = False) -> str:
    """Changelog preview, recent GitHub releases and npm version history.

    Args:
        packages: Package names.
        ignoreCache: Force fresh fetches.
    """
    _log_request("npmChangelogAnalysis", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmChangelogAnalysis", await sentinel.changelog(packages, ignoreCache))


@mcp.tool(name="npmAlternatives")
async def npm_alternatives(packages: list[str], ignoreCache: bool = False) -> str:
    """Find alternative packages that share the package's name as a keyword.

    Args:
        packages: Package names.
        ignoreCache: Force fresh searches.
    """
    _log_request("npmAlternatives", packages=packages, ignoreCache=ignoreCache)
    return _finish("npmAlternatives", await sentinel.alternatives(packages, ignoreCache))


# =============================================================================
# Server entry point
# =============================================================================
if __name__ == "__main__":
    mcp.run()
