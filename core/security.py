# =============================================================================
# core/security.py  —  Vulnerabilities and license compatibility
# =============================================================================
#
# VULNERABILITIES (OSV):
#   One POST per package to https://api.osv.dev/v1/query.  When the caller
#   pinned a version ("lodash@4.17.20") it goes in the query body and each
#   advisory gets an isFixedInQueriedVersion verdict; without a version OSV
#   returns every advisory ever filed and we list the affected ranges.
#
# LICENSES:
#   fetch_license reads the `license` field of each manifest;
#   analyze_licenses then looks at the whole batch at once (GPL mixed with
#   permissive licenses, unknown licenses, failed lookups).  The analysis is
#   a heuristic, not legal advice, and the response says so.
# =============================================================================

from typing import Any, Optional, Sequence

from core.errors import PackageLookupError, RegistryError
from core.models import PackageResult, PackageSpec
from core.packages import is_manifest
from core.registry import RegistryClient


# =============================================================================
# OSV
# =============================================================================
def _severity(vuln: dict[str, Any]) -> str:
    severity = vuln.get("severity")
    if isinstance(severity, dict):
        return severity.get("type") or "Unknown"
    if isinstance(severity, list) and severity and isinstance(severity[0], dict):
        return severity[0].get("type") or "Unknown"
    return severity or "Unknown"


def version_parts(version: str) -> list[int]:
    parts = []
    for piece in version.split("."):
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return parts


def is_fixed_in(queried: str, fixed: str) -> bool:
    """True when `queried` is at or past the `fixed` release.

    Dotted numeric comparison; missing components count as 0, and on a full
    tie the fix counts only if it has no more components than the query.
    """
    queried_parts, fixed_parts = version_parts(queried), version_parts(fixed)
    width = max(len(queried_parts), len(fixed_parts))
    for i in range(width):
        q = queried_parts[i] if i < len(queried_parts) else 0
        f = fixed_parts[i] if i < len(fixed_parts) else 0
        if f < q:
            return True
        if f > q:
            return False
    return len(fixed_parts) <= len(queried_parts)


def _lifecycle(vuln: dict[str, Any]) -> dict[str, str]:
    affected = vuln.get("affected") or []
    ranges = (affected[0].get("ranges") or []) if affected and isinstance(affected[0], dict) else []
    events = (ranges[0].get("events") or []) if ranges and isinstance(ranges[0], dict) else []
    lifecycle: dict[str, str] = {}
    introduced = next((e["introduced"] for e in events if e.get("introduced")), None)
    fixed = next((e["fixed"] for e in events if e.get("fixed")), None)
    if introduced:
        lifecycle["introduced"] = introduced
    if fixed:
        lifecycle["fixed"] = fixed
    return lifecycle


def summarize_vulnerability(vuln: dict[str, Any], version: Optional[str]) -> dict[str, Any]:
    details: dict[str, Any] = {
        "summary": vuln.get("summary"),
        "severity": _severity(vuln),
        "references": [ref.get("url") for ref in vuln.get("references") or [] if isinstance(ref, dict)],
    }
    if vuln.get("id"):
        details["id"] = vuln["id"]

    lifecycle = _lifecycle(vuln)
    if lifecycle:
        details["lifecycle"] = lifecycle
        if version and "fixed" in lifecycle:
            details["isFixedInQueriedVersion"] = is_fixed_in(version, lifecycle["fixed"])

    if not version:
        ranges: list[dict[str, Any]] = []
        versions: list[str] = []
        for affected in vuln.get("affected") or []:
            if not isinstance(affected, dict):
                continue
            for rng in affected.get("ranges") or []:
                ranges.append({"type": rng.get("type"), "events": rng.get("events")})
            versions.extend(affected.get("versions") or [])
        if ranges:
            details["affectedRanges"] = ranges
        if versions:
            details["affectedVersionsListed"] = versions
    return details


async def fetch_vulnerabilities(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        raw = await client.fetch_vulnerabilities(spec.name, spec.version)
    except RegistryError as exc:
        raise PackageLookupError(
            f"OSV API Error: {exc.status_text or exc.status}",
            f"Could not check vulnerabilities for {spec.label}.",
        ) from exc

    vulns = [v for v in (raw.get("vulns") or []) if isinstance(v, dict)] if isinstance(raw, dict) else []
    suffix = " for the specified version" if spec.version else ""
    if vulns:
        message = f"{len(vulns)} vulnerability(ies) found{suffix}."
    else:
        message = f"No known vulnerabilities found{suffix}."

    data = {
        "vulnerabilities": [summarize_vulnerability(v, spec.version) for v in vulns],
        "vulnerabilityCount": len(vulns),
        "versionQueried": spec.version,
    }
    return PackageResult.success(spec, data, message)


# =============================================================================
# Licenses
# =============================================================================
async def fetch_license(client: RegistryClient, spec: PackageSpec) -> PackageResult:
    try:
        manifest = await client.fetch_version(spec.name, spec.tag)
    except RegistryError as exc:
        if exc.not_found:
            raise PackageLookupError(f"Package {spec.name}@{spec.tag} not found.") from exc
        raise PackageLookupError(f"Failed to fetch package info: {exc}") from exc
    if not is_manifest(manifest):
        raise PackageLookupError("Invalid package version data format received")

    license_name = manifest.get("license")
    if isinstance(license_name, dict):
        # Legacy {"type": "MIT", "url": ...} form.
        license_name = license_name.get("type")
    return PackageResult.success(
        spec,
        {"license": license_name or "UNKNOWN"},
        f"Successfully fetched license info for {spec.name}@{manifest['version']}.",
        versionFetched=manifest["version"],
    )


def analyze_licenses(results: Sequence[PackageResult]) -> dict[str, Any]:
    found = [str(r.data["license"]).upper() for r in results if r.ok and r.data]
    unique = list(dict.fromkeys(found))

    has_gpl = any("GPL" in lic for lic in unique)
    has_mit = any(lic == "MIT" for lic in unique)
    has_apache = any("APACHE" in lic for lic in unique)
    has_unknown = any(lic == "UNKNOWN" for lic in unique)
    all_success = all(r.ok for r in results)

    warnings: list[str] = []
    if not all_success:
        warnings.append("Could not fetch license information for all packages.")
    if has_unknown and found:
        warnings.append("Some packages have unknown or unspecified licenses. Manual review recommended.")
    if has_gpl:
        warnings.append("Contains GPL licensed code. Resulting work may need to be GPL licensed.")
        if has_mit or has_apache:
            warnings.append(
                "Mixed GPL with potentially incompatible licenses (e.g., MIT, Apache). "
                "Review carefully for compliance."
            )

    summary = "License compatibility analysis completed."
    if warnings:
        summary = "License compatibility analysis completed with warnings."
    elif not found and all_success:
        summary = "No license information found for the queried packages."
    elif found and not has_gpl and not has_unknown:
        summary = "Licenses found appear to be generally compatible (non-GPL, known licenses)."

    return {"summary": summary, "warnings": warnings, "uniqueLicensesFound": unique}
