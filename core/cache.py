# =============================================================================
# core/cache.py  —  In-process result cache
# =============================================================================
#
# A plain dict from fingerprint to CacheEntry, owned by one NpmSentinel for
# the life of the process.  Nothing is persisted.
#
# POLICY:
#   - No TTL and no size-based eviction.
#   - An entry is "destroyed" logically when the lockfile digest moves: the
#     new fingerprints never match the old ones.  activate() additionally
#     drops the old-digest entries so memory does not grow with every
#     `npm install`.
#   - Concurrent writers for the same fingerprint: last write wins.
# =============================================================================

import logging
import time
from typing import Any, Callable, Optional

from core.models import CacheEntry

logger = logging.getLogger(__name__)


class ResultCache:
    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock
        self._active_digest: Optional[str] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    @property
    def active_digest(self) -> Optional[str]:
        return self._active_digest

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        entry = self._entries.get(fingerprint)
        logger.debug("cache %s %s", "hit" if entry else "miss", fingerprint[:12])
        return entry

    def put(self, fingerprint: str, result: Any, lockfile_digest: str) -> CacheEntry:
        entry = CacheEntry(
            fingerprint=fingerprint,
            result=result,
            created_at=self._clock(),
            lockfile_digest=lockfile_digest,
        )
        self._entries[fingerprint] = entry
        return entry

    def activate(self, lockfile_digest: str) -> int:
        """Record the digest requests are now served under.

        When it differs from the previous one, entries computed under any
        other digest are pruned.  Returns how many were dropped.
        """
        if lockfile_digest == self._active_digest:
            return 0
        self._active_digest = lockfile_digest
        return self.prune(keep_digest=lockfile_digest)

    def prune(self, keep_digest: str) -> int:
        stale = [fp for fp, entry in self._entries.items() if entry.lockfile_digest != keep_digest]
        for fp in stale:
            del self._entries[fp]
        if stale:
            logger.info("Dropped %d cached result(s) from a previous lockfile", len(stale))
        return len(stale)

    def clear(self) -> None:
        self._entries.clear()
        self._active_digest = None
