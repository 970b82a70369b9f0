# =============================================================================
# core/sentinel.py  —  NpmSentinel, the service behind every tool
# =============================================================================
#
# WHAT THIS FILE DOES:
#   Wires the pieces together and exposes ONE coroutine per tool.  Each
#   coroutine returns the finished envelope:
#
#       {"content": [{"type": "text", "text": "<json>"}], "isError": bool}
#
# THE FLOW FOR A PACKAGE TOOL:
#   packages ──► empty? ──yes──► isError "No package names provided"
#                  │ no
#                  ▼
#   PackageAggregator.collect()   validate → fingerprint → cache → fetch
#                  │
#                  ▼
#   batch_envelope()              queryPackages + results + summary message
#
# OWNERSHIP:
#   One NpmSentinel per process.  It owns the ResultCache, the
#   LockfileSentinel and the RegistryClient; tests build their own with a
#   mock transport and an in-memory filesystem.
#
# ERROR POLICY:
#   Per-package failures live inside `results`.  Only an empty package list
#   or an unexpected exception at batch level yields isError=true, and even
#   then the caller gets a well-formed envelope, never a raised exception.
# =============================================================================

import functools
import logging
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

import httpx

from core import metrics, packages, repository, security
from core.aggregator import PackageAggregator, PackageFetch, default_key, no_details
from core.cache import ResultCache
from core.errors import NoPackagesProvidedError, UpstreamError
from core.lockfile import FileSystem, LockfileSentinel
from core.models import PackageResult, PackageSpec
from core.registry import RegistryClient
from core.responses import batch_envelope, fatal_envelope, text_envelope
from core.settings import Settings

logger = logging.getLogger(__name__)

SEARCH_DEFAULT_LIMIT = 10
SEARCH_MAX_LIMIT = 250


def _name_only(spec: PackageSpec) -> list[Any]:
    return [spec.name]


def _name_and_version(spec: PackageSpec) -> list[Any]:
    # Vulnerability queries distinguish "no version" from "latest".
    return [spec.name, spec.version]


def _version_queried(spec: PackageSpec) -> dict[str, Any]:
    return {"versionQueried": spec.tag}


def _readme_details(spec: PackageSpec) -> dict[str, Any]:
    return {"versionQueried": spec.tag, "versionFetched": None}


class NpmSentinel:
    def __init__(self, client: RegistryClient, cache: Optional[ResultCache] = None,
                 lockfile: Optional[LockfileSentinel] = None) -> None:
        self.client = client
        self.cache = cache if cache is not None else ResultCache()
        self.lockfile = lockfile if lockfile is not None else LockfileSentinel(Path.cwd())
        self.aggregator = PackageAggregator(self.cache, self.lockfile)

    @classmethod
    def from_settings(cls, settings: Settings, *,
                      transport: httpx.AsyncBaseTransport | None = None,
                      filesystem: Optional[FileSystem] = None) -> "NpmSentinel":
        client = RegistryClient(
            timeout=settings.http_timeout_s,
            user_agent=settings.user_agent,
            github_token=settings.github_token,
            transport=transport,
        )
        return cls(client, ResultCache(), LockfileSentinel(settings.project_root, filesystem))

    async def aclose(self) -> None:
        await self.client.aclose()

    # =========================================================================
    # Shared batch runner
    # =========================================================================
    async def _run_batch(
        self,
        tool_name: str,
        label: str,
        packages_in: Optional[Sequence[Any]],
        fetch: Callable[[RegistryClient, PackageSpec], Any],
        *,
        ignore_cache: bool = False,
        key: Callable[[PackageSpec], list[Any]] = default_key,
        details: Callable[[PackageSpec], dict[str, Any]] = no_details,
        extras: Optional[Callable[[list[PackageResult]], dict[str, Any]]] = None,
        general_error: str = "General error",
    ) -> dict[str, Any]:
        query = list(packages_in or [])
        try:
            if not query:
                raise NoPackagesProvidedError()
            bound: PackageFetch = functools.partial(fetch, self.client)
            results = await self.aggregator.collect(
                tool_name, query, bound, ignore_cache=ignore_cache, key=key, details=details,
            )
            extra = extras(results) if extras else {}
            return batch_envelope(query, results, label, **extra)
        except NoPackagesProvidedError as exc:
            logger.warning("%s called without packages", tool_name)
            return fatal_envelope(str(exc), queryPackages=query)
        except Exception as exc:
            logger.exception("%s failed for the whole batch", tool_name)
            return fatal_envelope(f"{general_error}: {exc}", queryPackages=query, results=[])

    # =========================================================================
    # Registry tools
    # =========================================================================
    async def versions(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmVersions", "Version information", packages_in, packages.fetch_versions,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error fetching versions",
        )

    async def latest(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmLatest", "Latest version information", packages_in, packages.fetch_latest,
            ignore_cache=ignore_cache, details=_version_queried,
            general_error="General error fetching latest package information",
        )

    async def dependencies(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmDeps", "Dependency information", packages_in, packages.fetch_dependencies,
            ignore_cache=ignore_cache, general_error="General error fetching dependencies",
        )

    async def types(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmTypes", "TypeScript information", packages_in, packages.fetch_types,
            ignore_cache=ignore_cache, general_error="General error checking TypeScript types",
        )

    async def maintainers(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmMaintainers", "Maintainer information", packages_in, packages.fetch_maintainers,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error fetching maintainer information",
        )

    async def readme(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmPackageReadme", "README information", packages_in, packages.fetch_readme,
            ignore_cache=ignore_cache, details=_readme_details,
            general_error="General error fetching READMEs",
        )

    async def deprecated(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmDeprecated", "Deprecation status", packages_in, packages.fetch_deprecation,
            ignore_cache=ignore_cache, general_error="General error checking deprecated packages",
        )

    async def compare(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmCompare", "Comparison data", packages_in, packages.fetch_comparison,
            ignore_cache=ignore_cache, details=_version_queried,
            general_error="General error comparing packages",
        )

    # =========================================================================
    # Metrics tools
    # =========================================================================
    async def size(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmSize", "Size information", packages_in, metrics.fetch_size,
            ignore_cache=ignore_cache, key=_name_and_version,
            general_error="General error fetching package sizes",
        )

    async def score(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmScore", "Score information", packages_in, metrics.fetch_score,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error fetching package scores",
        )

    async def quality(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmQuality", "Quality information", packages_in, metrics.fetch_quality,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error fetching quality metrics",
        )

    async def maintenance(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmMaintenance", "Maintenance information", packages_in, metrics.fetch_maintenance,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error fetching maintenance metrics",
        )

    async def trends(self, packages_in, period: Optional[str] = None,
                     ignore_cache: bool = False) -> dict[str, Any]:
        if period not in metrics.PERIOD_DAYS:
            period = metrics.DEFAULT_PERIOD
        return await self._run_batch(
            "npmTrends", "Download trends", packages_in,
            functools.partial(metrics.fetch_trends, period=period),
            ignore_cache=ignore_cache,
            key=lambda spec: [spec.name, period],
            extras=lambda results: {"summary": metrics.trends_summary(results, period)},
            general_error="General error fetching download trends",
        )

    # =========================================================================
    # Security tools
    # =========================================================================
    async def vulnerabilities(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmVulnerabilities", "Vulnerability information", packages_in,
            security.fetch_vulnerabilities,
            ignore_cache=ignore_cache, key=_name_and_version,
            general_error="General error checking vulnerabilities",
        )

    async def license_compatibility(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmLicenseCompatibility", "License information", packages_in, security.fetch_license,
            ignore_cache=ignore_cache, details=_version_queried,
            extras=lambda results: {"analysis": security.analyze_licenses(results)},
            general_error="General error analyzing license compatibility",
        )

    # =========================================================================
    # Repository tools
    # =========================================================================
    async def repo_stats(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmRepoStats", "Repository statistics", packages_in, repository.fetch_repo_stats,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error analyzing repository stats",
        )

    async def changelog(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmChangelogAnalysis", "Changelog information", packages_in, repository.fetch_changelog,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error analyzing changelogs",
        )

    async def alternatives(self, packages_in, ignore_cache: bool = False) -> dict[str, Any]:
        return await self._run_batch(
            "npmAlternatives", "Alternatives", packages_in, repository.fetch_alternatives,
            ignore_cache=ignore_cache, key=_name_only,
            general_error="General error finding alternatives",
        )

    # =========================================================================
    # Search (query string, not a package list)
    # =========================================================================
    async def search(self, query: str, limit: Optional[int] = None,
                     ignore_cache: bool = False) -> dict[str, Any]:
        limit = SEARCH_DEFAULT_LIMIT if limit is None else limit
        try:
            if (isinstance(limit, bool) or not isinstance(limit, int)
                    or not 1 <= limit <= SEARCH_MAX_LIMIT):
                raise ValueError(f"Limit must be between 1 and {SEARCH_MAX_LIMIT}.")
            if not isinstance(query, str) or not query.strip():
                raise ValueError("Search query must be a non-empty string.")
            payload = await self.aggregator.cached_call(
                "npmSearch", [query, limit],
                lambda: packages.search_packages(self.client, query, limit),
                ignore_cache=ignore_cache,
            )
            return text_envelope(payload)
        except (ValueError, UpstreamError) as exc:
            logger.warning("npmSearch failed: %s", exc)
            error = f"Error searching packages: {exc}"
        except Exception as exc:
            logger.exception("npmSearch failed unexpectedly")
            error = f"Error searching packages: {exc}"
        return fatal_envelope(
            error, query=query, limitUsed=limit, totalResults=0, resultsCount=0, results=[],
        )
