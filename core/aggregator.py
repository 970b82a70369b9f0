# =============================================================================
# core/aggregator.py  —  Per-package fan-out
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Takes the `packages` list of one tool call and turns it into one
#   PackageResult per entry, in the SAME order as the input (duplicates
#   included), whatever order the upstream calls finish in.
#
# HOW ONE ENTRY IS PROCESSED:
#   1. parse + validate the name      -> error row on failure, nothing fetched
#   2. fingerprint (tool, key, lockfile digest)
#   3. cache lookup                   -> skipped when ignoreCache is set
#   4. run the tool's fetch function  -> may call several upstreams in turn
#   5. store the result               -> success rows only, and only if
#                                        the lockfile did not move meanwhile
#
# FAILURE ISOLATION:
#   Step 4 never raises out of collect().  A PackageLookupError becomes the
#   tool's own error text; any other upstream error becomes a generic
#   "Failed to fetch ..." row; anything unexpected is logged with its
#   traceback and becomes an error row carrying the exception message.
#
# CONCURRENCY:
#   Entries run concurrently with asyncio.gather.  The only shared state is
#   the ResultCache, written without locks (last write wins).
# =============================================================================

import asyncio
import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Optional, Sequence

from core.cache import ResultCache
from core.errors import InvalidPackageNameError, PackageLookupError, UpstreamError
from core.fingerprint import build_fingerprint
from core.lockfile import LockfileSentinel
from core.models import PackageResult, PackageSpec
from core.validation import parse_package_input

logger = logging.getLogger(__name__)

PackageFetch = Callable[[PackageSpec], Awaitable[PackageResult]]
CacheKey = Callable[[PackageSpec], list[Any]]
Details = Callable[[PackageSpec], dict[str, Any]]


def default_key(spec: PackageSpec) -> list[Any]:
    return [spec.name, spec.tag]


def no_details(spec: PackageSpec) -> dict[str, Any]:
    return {}


class PackageAggregator:
    def __init__(self, cache: ResultCache, lockfile: LockfileSentinel) -> None:
        self.cache = cache
        self.lockfile = lockfile

    def lockfile_digest(self) -> str:
        """Probe the lockfile and prune cache entries from an older one."""
        digest = self.lockfile.current_digest()
        self.cache.activate(digest)
        return digest

    async def collect(
        self,
        tool_name: str,
        packages: Sequence[Any],
        fetch: PackageFetch,
        *,
        ignore_cache: bool = False,
        key: CacheKey = default_key,
        details: Details = no_details,
    ) -> list[PackageResult]:
        """Run `fetch` for every entry of `packages`.

        Args:
            tool_name: Wire name of the tool, part of every fingerprint.
            packages: Raw entries as the caller sent them.
            fetch: Coroutine producing the success result for one package.
            ignore_cache: Skip cache reads (fresh results are still stored).
            key: Fingerprint arguments for one package.
            details: Tool-specific fields added to every row, including
                error rows (e.g. versionQueried).

        Returns:
            One PackageResult per entry, in input order.
        """
        digest = self.lockfile_digest()
        return list(await asyncio.gather(*(
            self._one(tool_name, raw, fetch, digest, ignore_cache, key, details)
            for raw in packages
        )))

    async def _one(self, tool_name: str, raw: Any, fetch: PackageFetch, digest: str,
                   ignore_cache: bool, key: CacheKey, details: Details) -> PackageResult:
        try:
            spec = parse_package_input(raw)
        except InvalidPackageNameError as exc:
            return PackageResult.failure(
                package_input=exc.package_input,
                package_name=exc.package_input,
                error=str(exc),
                message="Package name failed validation; nothing was fetched.",
            )

        base = details(spec)
        fingerprint = build_fingerprint(tool_name, key(spec), digest)
        if not ignore_cache:
            entry = self.cache.get(fingerprint)
            if entry is not None:
                return entry.result.for_input(spec.raw)

        result = await self._compute(spec, fetch, base)
        if result.ok:
            self._store(fingerprint, result, digest)
        return result

    async def _compute(self, spec: PackageSpec, fetch: PackageFetch,
                       base: dict[str, Any]) -> PackageResult:
        try:
            result = await fetch(spec)
        except PackageLookupError as exc:
            return PackageResult.failure(
                spec.raw, spec.name, exc.error,
                exc.message or f"Could not retrieve information for {spec.label}.",
                **{**base, **exc.details},
            )
        except UpstreamError as exc:
            return PackageResult.failure(
                spec.raw, spec.name, f"Failed to fetch {spec.label}: {exc}",
                f"Could not retrieve information for {spec.label}.",
                **base,
            )
        except Exception as exc:
            logger.exception("Unexpected error while processing %s", spec.raw)
            return PackageResult.failure(
                spec.raw, spec.name, str(exc) or exc.__class__.__name__,
                f"An unexpected error occurred while processing {spec.label}.",
                **base,
            )
        if base:
            result = replace(result, details={**base, **result.details})
        return result

    async def cached_call(self, tool_name: str, args: Sequence[Any],
                          compute: Callable[[], Awaitable[Any]], *,
                          ignore_cache: bool = False,
                          should_store: Optional[Callable[[Any], bool]] = None) -> Any:
        """Cache an arbitrary computation that is not a per-package batch."""
        digest = self.lockfile_digest()
        fingerprint = build_fingerprint(tool_name, args, digest)
        if not ignore_cache:
            entry = self.cache.get(fingerprint)
            if entry is not None:
                return entry.result
        value = await compute()
        if should_store is None or should_store(value):
            self._store(fingerprint, value, digest)
        return value

    def _store(self, fingerprint: str, value: Any, digest: str) -> None:
        # The lockfile may have moved while the fetch was in flight; an entry
        # keyed to the superseded digest could never be read again.
        if digest != self.cache.active_digest:
            logger.debug("Not caching %s: lockfile changed during fetch", fingerprint[:12])
            return
        self.cache.put(fingerprint, value, digest)
