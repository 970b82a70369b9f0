# =============================================================================
# core/validation.py  —  Package name validation
# =============================================================================
#
# Every entry of a tool call's `packages` list passes through here before a
# single byte goes upstream.  Names end up in registry URLs, so anything that
# is not a plain lowercase npm identifier (path traversal, shell
# metacharacters, spaces, uppercase, leading "." or "_") is rejected.
#
# A rejected entry becomes an error row for that package only; the rest of
# the batch carries on.
# =============================================================================

import re
from typing import Any

from core.errors import InvalidPackageNameError
from core.models import PackageSpec

PACKAGE_NAME_PATTERN = re.compile(r"^(@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$")

# A version may be an exact version, a dist-tag or a range ("^4.17.0"); it is
# passed upstream as-is.  Only characters that would escape its URL segment
# or break the request line are refused.
UNSAFE_VERSION_CHARS = re.compile(r"[/\\\s\x00-\x1f\x7f]")

MAX_NAME_LENGTH = 214


def validate_package_name(name: str) -> None:
    """Raise InvalidPackageNameError unless `name` is a valid npm name."""
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidPackageNameError(
            name, f"Invalid package name: '{name[:40]}...' exceeds {MAX_NAME_LENGTH} characters"
        )
    if not PACKAGE_NAME_PATTERN.match(name):
        raise InvalidPackageNameError(name, f"Invalid package name: '{name}'")


def parse_package_input(raw: Any) -> PackageSpec:
    """Split "name" / "name@version" and validate both halves.

    The split happens at the LAST "@" past position 0, so scoped names like
    "@types/node@20.1.0" keep their leading "@".  A trailing "@" with nothing
    after it means no version.
    """
    if not isinstance(raw, str):
        raise InvalidPackageNameError(str(raw), "Invalid package name: input must be a string")

    at = raw.rfind("@")
    if at > 0:
        name, version = raw[:at], raw[at + 1:] or None
    else:
        name, version = raw, None

    validate_package_name(name)
    if version is not None and UNSAFE_VERSION_CHARS.search(version):
        raise InvalidPackageNameError(
            raw, f"Invalid package name: unsafe version '{version}' for {name}"
        )
    return PackageSpec(raw=raw, name=name, version=version)
