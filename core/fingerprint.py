"""Cache fingerprint derivation."""

import hashlib
import json
from typing import Any, Sequence

# Request flags that change HOW a call is served, never WHAT it answers.
BYPASS_FLAGS = frozenset({"ignoreCache", "ignore_cache"})


def build_fingerprint(tool_name: str, args: Sequence[Any], lockfile_digest: str) -> str:
    """sha256 over the canonical JSON of (tool, args, lockfile digest).

    `args` is order-sensitive; dicts inside it are serialized with sorted
    keys so logically identical calls hash identically.  Bypass flags are
    stripped from any dict argument.
    """
    payload = {
        "tool": tool_name,
        "args": [_normalize(arg) for arg in args],
        "lockfile": lockfile_digest,
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _normalize(v) for k, v in value.items() if k not in BYPASS_FLAGS}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    return value
