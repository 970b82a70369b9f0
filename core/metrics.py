# =============================================================================
# core/metrics.py  —  Size, score and download metrics
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Per-package numbers that come from services other than the registry:
#
#     fetch_size         Bundlephobia bundle size (bytes -> KB, 2 decimals)
#     fetch_score        npms.io final score + quality/popularity/maintenance
#     fetch_quality      npms.io quality sub-score
#     fetch_maintenance  npms.io maintenance sub-score
#     fetch_trends       npm downloads API point count for a period
#     trends_summary     batch-level totals over the trends rows
#
# npms.io analyses the LATEST published version only, so any version the
# caller pins is ignored for the three npms-backed lookups.
# =============================================================================

import math
from datetime import datetime
from typing import Any, Optional, Sequence

from core.errors import PackageLookupError, RegistryError
from core.models import PackageResult, PackageSpec
from core.registry import RegistryClient


PERIOD_DAYS: dict[str, int] = {"last-week": 7, "last-month": 30, "last-year": 365}
DEFAULT_PERIOD = "last-month"


def _to_kb(value: float) -> float:
    return round(value / 1024, 2)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Bundlephobia
# =============================================================================
async def fetch_size(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    query = spec.label
    try:
        raw = await client.fetch_size(query)
    except RegistryError as exc:
        if exc.not_found:
            raise PackageLookupError(
                f"Package {query} not found or version not available on Bundlephobia.",
                f"Could not retrieve size information for {query}.",
            ) from exc
        raise PackageLookupError(
            f"Failed to fetch package size: {exc}",
            f"Could not retrieve size information for {query}.",
        ) from exc

    if isinstance(raw, dict) and raw.get("error"):
        err = raw["error"]
        detail = err.get("message") if isinstance(err, dict) else str(err)
        raise PackageLookupError(
            f"Bundlephobia error: {detail or 'Unknown error'}",
            f"Bundlephobia reported an error for {query}.",
        )
    if not (isinstance(raw, dict) and _is_number(raw.get("size")) and _is_number(raw.get("gzip"))
            and _is_number(raw.get("dependencyCount"))):
        raise PackageLookupError(
            "Invalid package data received from Bundlephobia",
            f"Received malformed size data for {query}.",
        )

    data = {
        "name": raw.get("name") or spec.name,
        "version": raw.get("version") or spec.version or "latest_resolved",
        "sizeInKb": _to_kb(raw["size"]),
        "gzipInKb": _to_kb(raw["gzip"]),
        "dependencyCount": raw["dependencyCount"],
    }
    return PackageResult.success(spec, data, f"Size information for {query}")


# =============================================================================
# npms.io
# =============================================================================
def is_scorecard(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    score = data.get("score")
    if not isinstance(score, dict) or not _is_number(score.get("final")):
        return False
    if not isinstance(score.get("detail"), dict):
        return False
    metadata = (data.get("collected") or {}).get("metadata")
    return (
        isinstance(metadata, dict)
        and isinstance(metadata.get("name"), str)
        and isinstance(metadata.get("version"), str)
    )


async def _scorecard(client: RegistryClient, spec: PackageSpec, kind: str) -> dict[str, Any]:
    try:
        data = await client.fetch_scorecard(spec.name)
    except RegistryError as exc:
        if exc.not_found:
            raise PackageLookupError(
                f"Package {spec.name} not found on npms.io.",
                f"Could not retrieve {kind} information for {spec.name}.",
            ) from exc
        raise PackageLookupError(
            f"Failed to fetch {kind} data: {exc}",
            f"Could not retrieve {kind} information for {spec.name}.",
        ) from exc
    if not is_scorecard(data):
        raise PackageLookupError(
            "Invalid or incomplete response from npms.io API",
            f"Received malformed {kind} data for {spec.name}.",
        )
    return data


def _span_days(start: Any, end: Any) -> Optional[int]:
    try:
        first = datetime.fromisoformat(str(start).replace("Z", "+00:00"))
        last = datetime.fromisoformat(str(end).replace("Z", "+00:00"))
    except ValueError:
        return None
    if (first.tzinfo is None) != (last.tzinfo is None):
        return None
    return math.ceil(abs((last - first).total_seconds()) / 86400)


def monthly_download_count(periods: Any) -> int:
    """Count of the first ~monthly (28-31 day) period, else the first one."""
    if not isinstance(periods, list) or not periods:
        return 0
    for period in periods:
        if not isinstance(period, dict):
            continue
        days = _span_days(period.get("from"), period.get("to"))
        if days is not None and 28 <= days <= 31 and period.get("count"):
            return period["count"]
    first = periods[0]
    return (first.get("count") if isinstance(first, dict) else None) or 0


def _github_stats(github: Any) -> Optional[dict[str, Any]]:
    if not isinstance(github, dict):
        return None
    issues = github.get("issues") or {}
    return {
        "starsCount": github.get("starsCount"),
        "forksCount": github.get("forksCount"),
        "subscribersCount": github.get("subscribersCount"),
        "issues": {"count": issues.get("count"), "openCount": issues.get("openCount")},
    }


async def fetch_score(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    raw = await _scorecard(client, spec, "score")
    score, collected = raw["score"], raw["collected"]
    detail, metadata = score["detail"], collected["metadata"]
    npm = collected.get("npm") or {}

    data = {
        "analyzedAt": raw.get("analyzedAt"),
        "versionInScore": metadata["version"],
        "score": {
            "final": score["final"],
            "detail": {
                "quality": detail.get("quality"),
                "popularity": detail.get("popularity"),
                "maintenance": detail.get("maintenance"),
            },
        },
        "packageInfoFromScore": {
            "name": metadata["name"],
            "version": metadata["version"],
            "description": metadata.get("description") or None,
        },
        "npmStats": {
            "downloadsLastMonth": monthly_download_count(npm.get("downloads")),
            "starsCount": npm.get("starsCount"),
        },
        "githubStats": _github_stats(collected.get("github")),
    }
    return PackageResult.success(
        spec, data,
        f"Successfully fetched score data for {spec.name} (version analyzed: {metadata['version']}).",
    )


async def fetch_quality(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    raw = await _scorecard(client, spec, "quality")
    version = raw["collected"]["metadata"]["version"]
    data = {
        "analyzedAt": raw.get("analyzedAt"),
        "versionInScore": version,
        "qualityScore": raw["score"]["detail"].get("quality"),
    }
    return PackageResult.success(
        spec, data, f"Successfully fetched quality score for {spec.name} (version analyzed: {version})."
    )


async def fetch_maintenance(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    raw = await _scorecard(client, spec, "maintenance")
    version = raw["collected"]["metadata"]["version"]
    data = {
        "analyzedAt": raw.get("analyzedAt"),
        "versionInScore": version,
        "maintenanceScore": raw["score"]["detail"].get("maintenance"),
    }
    return PackageResult.success(
        spec, data,
        f"Successfully fetched maintenance score for {spec.name} (version analyzed: {version}).",
    )


# =============================================================================
# npm downloads API
# =============================================================================
async def fetch_trends(client: RegistryClient, spec: PackageSpec,
                       period: str = DEFAULT_PERIOD) -> PackageResult:
    try:
        raw = await client.fetch_downloads(period, spec.name)
    except RegistryError as exc:
        if exc.not_found:
            raise PackageLookupError(
                f"Package {spec.name} not found or no download data for the period."
            ) from exc
        raise PackageLookupError(f"Failed to fetch download trends: {exc}") from exc

    if not (isinstance(raw, dict) and _is_number(raw.get("downloads"))
            and isinstance(raw.get("start"), str) and isinstance(raw.get("end"), str)):
        raise PackageLookupError("Invalid response format from npm downloads API")

    data = {
        "downloads": raw["downloads"],
        "period": period,
        "startDate": raw["start"],
        "endDate": raw["end"],
        "averageDailyDownloads": _round_half_up(raw["downloads"] / PERIOD_DAYS[period]),
    }
    return PackageResult.success(
        spec, data, f"Successfully fetched download trends for {spec.name} ({period})."
    )


def trends_summary(results: Sequence[PackageResult], period: str) -> dict[str, Any]:
    successful = [r for r in results if r.ok and r.data]
    total_downloads = sum(r.data["downloads"] for r in successful)
    days = PERIOD_DAYS[period]
    return {
        "totalPackagesProcessed": len(results),
        "totalSuccessful": len(successful),
        "totalFailed": len(results) - len(successful),
        "overallTotalDownloads": total_downloads,
        "overallAverageDailyDownloads": (
            _round_half_up(total_downloads / days / len(successful)) if successful else 0
        ),
    }
