# =============================================================================
# core/models.py  —  Data Models (the "nouns" of the system)
# =============================================================================
#
# These dataclasses define the *shape* of every piece of information that flows
# through the sentinel.  They carry almost no behavior: a PackageResult knows
# how to turn itself into the wire dict, and that is about it.
#
# NAMING ON THE WIRE:
#   Python attributes are snake_case; the JSON the MCP client sees is
#   camelCase (packageInput, packageName, ...).  to_dict() is the single place
#   where that translation happens.
# =============================================================================

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional


# -----------------------------------------------------------------------------
# PackageSpec — one validated entry from a tool call's `packages` list
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PackageSpec:
    """A package reference that already passed name validation.

    `raw` is exactly what the caller sent ("express@4.18.2"), `name` and
    `version` are the parsed halves.  `version` is None when the caller did
    not pin one.
    """

    raw: str
    name: str
    version: Optional[str] = None

    @property
    def tag(self) -> str:
        """Version or dist-tag to ask the registry for."""
        return self.version or "latest"

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}" if self.version else self.name


# -----------------------------------------------------------------------------
# PackageResult — one row of a batch response
# -----------------------------------------------------------------------------
# One instance per requested package.  A failure here never affects the
# sibling rows of the same call.
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PackageResult:
    package_input: str
    package_name: str
    status: str                      # "success" | "error"
    data: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, spec: PackageSpec, data: Optional[dict[str, Any]], message: str,
                **details: Any) -> "PackageResult":
        return cls(
            package_input=spec.raw,
            package_name=spec.name,
            status="success",
            data=data,
            message=message,
            details=details,
        )

    @classmethod
    def failure(cls, package_input: str, package_name: str, error: str, message: str,
                **details: Any) -> "PackageResult":
        return cls(
            package_input=package_input,
            package_name=package_name,
            status="error",
            error=error,
            message=message,
            details=details,
        )

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def for_input(self, package_input: str) -> "PackageResult":
        """Same result, re-labelled for the input of the current call."""
        if package_input == self.package_input:
            return self
        return replace(self, package_input=package_input)

    def to_dict(self) -> dict[str, Any]:
        return {
            "packageInput": self.package_input,
            "packageName": self.package_name,
            **self.details,
            "status": self.status,
            "error": self.error,
            "data": self.data,
            "message": self.message,
        }


# -----------------------------------------------------------------------------
# Cache + lockfile records
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class CacheEntry:
    """A computed result stored under its fingerprint.

    `lockfile_digest` is the digest that was baked into the fingerprint; the
    store uses it to drop entries once the project's lockfile changes.
    """

    fingerprint: str
    result: Any
    created_at: float
    lockfile_digest: str


@dataclass(frozen=True)
class LockfileSnapshot:
    """The lockfile that won the probe, or path=None when there is none."""

    path: Optional[Path]
    raw_content_hash: str
