# =============================================================================
# core/packages.py  —  npm registry lookups
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Everything that can be answered from registry.npmjs.org alone (plus the
#   downloads API for npmCompare):
#
#     fetch_versions      every published version + dist-tags
#     fetch_latest        manifest summary of one version / tag
#     fetch_dependencies  dependencies, devDependencies, peerDependencies
#     fetch_types         built-in typings + the matching @types package
#     fetch_maintainers   maintainer list
#     fetch_readme        README of a resolved version
#     fetch_deprecation   deprecation of a version and of its dependencies
#     fetch_comparison    one row of a side-by-side comparison
#     search_packages     free-text registry search (not per package)
#
# CONTRACT:
#   Each fetch_* coroutine takes (client, spec) and either returns a success
#   PackageResult or raises.  PackageLookupError carries the caller-facing
#   error text; the aggregator turns everything else into a generic error
#   row.  None of them touch the cache.
# =============================================================================

import asyncio
import logging
from typing import Any, Optional

from core.errors import (
    InvalidPackageNameError,
    PackageLookupError,
    RegistryError,
    UpstreamError,
    UpstreamFormatError,
)
from core.models import PackageResult, PackageSpec
from core.registry import RegistryClient
from core.validation import validate_package_name

logger = logging.getLogger(__name__)


# =============================================================================
# Shape checks
# =============================================================================
# Only the fields we index into are checked.
# =============================================================================
def is_packument(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("name"), str)
        and isinstance(data.get("dist-tags"), dict)
        and isinstance(data.get("versions"), dict)
    )


def is_manifest(data: Any) -> bool:
    return (
        isinstance(data, dict)
        and isinstance(data.get("name"), str)
        and isinstance(data.get("version"), str)
    )


def repository_url(manifest: dict[str, Any]) -> Optional[str]:
    """`repository` is either {"type", "url"} or a bare string."""
    repo = manifest.get("repository")
    if isinstance(repo, str):
        return repo or None
    if isinstance(repo, dict):
        return repo.get("url") or None
    return None


def _author_name(author: Any) -> Optional[str]:
    if isinstance(author, str):
        return author or None
    if isinstance(author, dict):
        return author.get("name") or None
    return None


def _bugs_url(bugs: Any) -> Optional[str]:
    if isinstance(bugs, str):
        return bugs or None
    if isinstance(bugs, dict):
        return bugs.get("url") or None
    return None


def resolve_version(packument: dict[str, Any], tag: str) -> Optional[str]:
    """Map a dist-tag ("latest", "next") or exact version to a version key."""
    tags = packument.get("dist-tags") or {}
    return tags.get(tag) or (None if tag == "latest" else tag)


async def _packument(client: RegistryClient, spec: PackageSpec,
                     not_found: Optional[str] = None) -> dict[str, Any]:
    try:
        data = await client.fetch_package(spec.name)
    except RegistryError as exc:
        if exc.not_found and not_found:
            raise PackageLookupError(not_found) from exc
        raise PackageLookupError(
            f"Failed to fetch package info: {exc}",
            f"Could not retrieve information for package {spec.name}.",
        ) from exc
    if not is_packument(data):
        raise PackageLookupError(
            "Invalid package info format received from registry",
            f"Received malformed data for package {spec.name}.",
        )
    return data


async def _manifest(client: RegistryClient, spec: PackageSpec,
                    not_found: Optional[str] = None) -> dict[str, Any]:
    try:
        data = await client.fetch_version(spec.name, spec.tag)
    except RegistryError as exc:
        if exc.not_found and not_found:
            raise PackageLookupError(not_found) from exc
        raise PackageLookupError(
            f"Failed to fetch package info: {exc}",
            f"Could not retrieve information for {spec.label}.",
        ) from exc
    if not is_manifest(data):
        raise PackageLookupError(
            "Invalid package data format received for version",
            f"Received malformed data for {spec.name}@{spec.tag}.",
        )
    return data


def _dependency_counts(manifest: dict[str, Any]) -> dict[str, int]:
    return {
        "dependenciesCount": len(manifest.get("dependencies") or {}),
        "devDependenciesCount": len(manifest.get("devDependencies") or {}),
        "peerDependenciesCount": len(manifest.get("peerDependencies") or {}),
    }


# =============================================================================
# Per-package lookups
# =============================================================================
async def fetch_versions(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    info = await _packument(client, spec)
    tags = info.get("dist-tags") or {}
    data = {
        "allVersions": list((info.get("versions") or {}).keys()),
        "tags": tags,
        "latestVersionTag": tags.get("latest"),
    }
    return PackageResult.success(spec, data, f"Successfully fetched versions for {spec.name}.")


async def fetch_latest(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    manifest = await _manifest(client, spec, not_found=f"Package {spec.name}@{spec.tag} not found.")
    data = {
        "name": manifest["name"],
        "version": manifest["version"],
        "description": manifest.get("description") or None,
        "author": _author_name(manifest.get("author")),
        "license": manifest.get("license") or None,
        "homepage": manifest.get("homepage") or None,
        "repositoryUrl": repository_url(manifest),
        "bugsUrl": _bugs_url(manifest.get("bugs")),
        **_dependency_counts(manifest),
        "dist": manifest.get("dist") or None,
        "types": manifest.get("types") or manifest.get("typings") or None,
    }
    return PackageResult.success(
        spec, data, f"Successfully fetched details for {manifest['name']}@{manifest['version']}."
    )


def _dependency_list(deps: Any) -> list[dict[str, str]]:
    if not isinstance(deps, dict):
        return []
    return [{"name": name, "version": version} for name, version in deps.items()]


async def fetch_dependencies(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    manifest = await _manifest(client, spec)
    data = {
        "dependencies": _dependency_list(manifest.get("dependencies")),
        "devDependencies": _dependency_list(manifest.get("devDependencies")),
        "peerDependencies": _dependency_list(manifest.get("peerDependencies")),
    }
    return PackageResult.success(
        spec, data, f"Dependencies for {spec.name}@{manifest['version']}",
        resolvedVersion=manifest["version"],
    )


def types_package_name(name: str) -> str:
    """DefinitelyTyped name: @babel/core -> @types/babel__core."""
    return "@types/" + name.replace("@", "", 1).replace("/", "__", 1)


async def fetch_types(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    manifest = await _manifest(client, spec)
    typings = manifest.get("types") or manifest.get("typings") or None

    types_name = types_package_name(spec.name)
    types_package = {"name": types_name, "version": None, "isAvailable": False}
    try:
        types_manifest = await client.fetch_version(types_name, "latest")
    except UpstreamError as exc:
        logger.debug("No %s available: %s", types_name, exc)
    else:
        if isinstance(types_manifest, dict):
            types_package = {
                "name": types_name,
                "version": types_manifest.get("version") or "unknown",
                "isAvailable": True,
            }

    data = {
        "mainPackage": {
            "name": spec.name,
            "version": manifest["version"],
            "hasBuiltInTypes": bool(typings),
            "typesPath": typings,
        },
        "typesPackage": types_package,
    }
    return PackageResult.success(spec, data, f"TypeScript information for {spec.name}@{manifest['version']}")


async def fetch_maintainers(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    info = await _packument(client, spec, not_found=f"Package {spec.name} not found in the npm registry.")
    maintainers = [
        {"name": m.get("name"), "email": m.get("email") or None, "url": m.get("url") or None}
        for m in (info.get("maintainers") or [])
        if isinstance(m, dict)
    ]
    data = {"maintainers": maintainers, "maintainersCount": len(maintainers)}
    return PackageResult.success(spec, data, f"Successfully fetched maintainer information for {spec.name}.")


async def fetch_readme(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    info = await _packument(client, spec, not_found=f"Package {spec.name} not found.")
    version = resolve_version(info, spec.tag)
    version_data = (info.get("versions") or {}).get(version) if version else None
    if not isinstance(version_data, dict):
        raise PackageLookupError(
            f"Version {version or 'requested'} not found or no version data available.",
            versionFetched=version,
        )

    readme = version_data.get("readme") or info.get("readme") or None
    return PackageResult.success(
        spec,
        {"readme": readme, "hasReadme": bool(readme)},
        f"Successfully fetched README for {spec.name}@{version}.",
        versionFetched=version,
    )


# -----------------------------------------------------------------------------
# Deprecation
# -----------------------------------------------------------------------------
async def _check_dependency(client: RegistryClient, dep_name: str, dep_range: str) -> dict[str, Any]:
    row = {
        "name": dep_name,
        "version": dep_range,
        "lookedUpAs": dep_name,
        "isDeprecated": False,
        "deprecationMessage": None,
    }
    try:
        validate_package_name(dep_name)
        dep_info = await client.fetch_package(dep_name)
    except RegistryError as exc:
        row["statusMessage"] = (
            f"Could not fetch dependency info for '{dep_name}' (status: {exc.status}). "
            "Deprecation status unknown."
        )
        return row
    except (InvalidPackageNameError, UpstreamError) as exc:
        row["statusMessage"] = (
            f"Error processing dependency '{dep_name}': {exc}. Deprecation status unknown."
        )
        return row

    latest = ((dep_info or {}).get("dist-tags") or {}).get("latest")
    latest_info = ((dep_info or {}).get("versions") or {}).get(latest) if latest else None
    deprecated = (latest_info or {}).get("deprecated")
    row["isDeprecated"] = bool(deprecated)
    row["deprecationMessage"] = deprecated or None
    row["statusMessage"] = f"Successfully checked '{dep_name}'."
    return row


async def _check_dependencies(client: RegistryClient, deps: Any) -> list[dict[str, Any]]:
    if not isinstance(deps, dict):
        return []
    return list(await asyncio.gather(*(
        _check_dependency(client, name, version) for name, version in deps.items()
    )))


def _is_unverifiable(row: dict[str, Any]) -> bool:
    status = row["statusMessage"].lower()
    return "could not fetch" in status or "error processing" in status


async def fetch_deprecation(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    info = await _packument(client, spec)
    version = resolve_version(info, spec.tag)
    version_info = (info.get("versions") or {}).get(version) if version else None
    if not isinstance(version_info, dict):
        raise PackageLookupError(
            f"Version {version or spec.tag} not found for package {spec.name}.",
            f"Specified version for {spec.name} does not exist.",
        )

    direct, development, peer = await asyncio.gather(
        _check_dependencies(client, version_info.get("dependencies")),
        _check_dependencies(client, version_info.get("devDependencies")),
        _check_dependencies(client, version_info.get("peerDependencies")),
    )
    all_deps = [*direct, *development, *peer]
    unverifiable = sum(1 for row in all_deps if _is_unverifiable(row))

    summary = f"Processed {len(all_deps)} total dependencies."
    if unverifiable:
        summary += (
            f" Could not verify the status for {unverifiable} dependencies (e.g., package name"
            " not found in registry or network issues). Their deprecation status is unknown."
        )

    deprecated = version_info.get("deprecated")
    data = {
        "isPackageDeprecated": bool(deprecated),
        "packageDeprecationMessage": deprecated or None,
        "dependencies": {"direct": direct, "development": development, "peer": peer},
        "dependencySummary": {
            "totalDependencies": len(all_deps),
            "unverifiableDependencies": unverifiable,
            "message": summary,
        },
    }
    return PackageResult.success(
        spec, data, f"Deprecation status for {spec.name}@{version}. {summary}",
        resolvedVersion=version,
    )


# -----------------------------------------------------------------------------
# Comparison
# -----------------------------------------------------------------------------
async def fetch_monthly_downloads(client: RegistryClient, name: str) -> Optional[int]:
    """Last-month download count, or None when the downloads API has nothing."""
    try:
        data = await client.fetch_downloads("last-month", name)
    except UpstreamError as exc:
        logger.debug("No download data for %s: %s", name, exc)
        return None
    downloads = data.get("downloads") if isinstance(data, dict) else None
    return downloads if isinstance(downloads, int) else None


async def fetch_comparison(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        manifest = await client.fetch_version(spec.name, spec.tag)
    except RegistryError as exc:
        raise PackageLookupError(
            f"Failed to fetch package info for {spec.name}@{spec.tag}: {exc}"
        ) from exc
    if not is_manifest(manifest):
        raise PackageLookupError(f"Invalid package data format for {spec.name}@{spec.tag}")

    monthly_downloads = await fetch_monthly_downloads(client, spec.name)

    publish_date = None
    try:
        info = await client.fetch_package(spec.name)
    except UpstreamError as exc:
        logger.debug("No publish time for %s: %s", spec.name, exc)
    else:
        if is_packument(info) and isinstance(info.get("time"), dict):
            publish_date = info["time"].get(manifest["version"])

    data = {
        "name": manifest["name"],
        "version": manifest["version"],
        "description": manifest.get("description") or None,
        "license": manifest.get("license") or None,
        **_dependency_counts(manifest),
        "monthlyDownloads": monthly_downloads,
        "publishDate": publish_date,
        "repositoryUrl": repository_url(manifest),
    }
    return PackageResult.success(
        spec, data, f"Successfully fetched comparison data for {spec.name}@{manifest['version']}."
    )


# =============================================================================
# Search
# =============================================================================
def _search_row(obj: dict[str, Any]) -> dict[str, Any]:
    pkg = obj.get("package") or {}
    score = obj.get("score") or {}
    detail = score.get("detail") or {}
    links = pkg.get("links") or {}
    publisher = pkg.get("publisher")
    return {
        "name": pkg.get("name"),
        "version": pkg.get("version"),
        "description": pkg.get("description") or None,
        "keywords": pkg.get("keywords") or [],
        "publisher": (
            {"username": publisher.get("username"), "email": publisher.get("email") or None}
            if isinstance(publisher, dict) else None
        ),
        "date": pkg.get("date") or None,
        "links": {
            "npm": links.get("npm") or None,
            "homepage": links.get("homepage") or None,
            "repository": links.get("repository") or None,
            "bugs": links.get("bugs") or None,
        },
        "score": {
            "final": score.get("final"),
            "detail": {
                "quality": detail.get("quality"),
                "popularity": detail.get("popularity"),
                "maintenance": detail.get("maintenance"),
            },
        },
        "searchScore": obj.get("searchScore"),
    }


async def search_packages(client: RegistryClient, query: str, limit: int) -> dict[str, Any]:
    """Run a registry search and shape the response payload.

    Raises:
        UpstreamError: on any upstream failure or an unexpected body.
    """
    raw = await client.search(query, limit)
    objects = raw.get("objects") if isinstance(raw, dict) else None
    total = raw.get("total") if isinstance(raw, dict) else None
    if not isinstance(objects, list) or not isinstance(total, int):
        raise UpstreamFormatError("Invalid search results data received from NPM registry.")

    results = [_search_row(obj) for obj in objects if isinstance(obj, dict)]
    return {
        "query": query,
        "limitUsed": limit,
        "totalResults": total,
        "resultsCount": len(results),
        "results": results,
        "message": f"Search completed. Found {total} total packages, returning {len(results)}.",
    }
