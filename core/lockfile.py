# =============================================================================
# core/lockfile.py  —  Lockfile invalidation sentinel
# =============================================================================
#
# WHAT THIS MODULE DOES:
#   Reads the active project's lockfile and turns its raw bytes into a
#   digest.  That digest is baked into every cache fingerprint, so the moment
#   a dependency install rewrites the lockfile, every previously cached
#   answer stops matching and the next request goes upstream again.
#
# PROBE ORDER:
#   pnpm-lock.yaml, then package-lock.json, then yarn.lock.  The FIRST file
#   that exists wins; the others are never read.  No lockfile at all gives a
#   fixed "no-lockfile" marker so fingerprints stay deterministic.
#
# NO WATCHER:
#   The digest is recomputed synchronously on every request.  Lockfiles are
#   small and this keeps the module free of threads and inotify.
#
# TESTABILITY:
#   probe_lockfile() is a pure function of (root, filesystem).  Tests pass an
#   in-memory FileSystem; production uses LocalFileSystem.
# =============================================================================

import hashlib
import logging
from pathlib import Path
from typing import Optional, Protocol

from core.models import LockfileSnapshot

logger = logging.getLogger(__name__)

LOCKFILE_CANDIDATES: tuple[str, ...] = ("pnpm-lock.yaml", "package-lock.json", "yarn.lock")
NO_LOCKFILE_DIGEST = "no-lockfile"


class FileSystem(Protocol):
    def exists(self, path: Path) -> bool: ...

    def read_bytes(self, path: Path) -> bytes: ...


class LocalFileSystem:
    """The real disk."""

    def exists(self, path: Path) -> bool:
        return path.is_file()

    def read_bytes(self, path: Path) -> bytes:
        return path.read_bytes()


def probe_lockfile(root: Path, fs: FileSystem,
                   candidates: tuple[str, ...] = LOCKFILE_CANDIDATES) -> LockfileSnapshot:
    """Return a snapshot of the first lockfile present under `root`.

    Args:
        root: Project directory to look in.
        fs: Filesystem to probe (LocalFileSystem in production).
        candidates: File names in priority order.

    Returns:
        LockfileSnapshot with the sha256 of the raw bytes, or a snapshot with
        path=None and the "no-lockfile" marker when none of them exist.
    """
    for candidate in candidates:
        path = root / candidate
        if fs.exists(path):
            digest = hashlib.sha256(fs.read_bytes(path)).hexdigest()
            return LockfileSnapshot(path=path, raw_content_hash=digest)
    return LockfileSnapshot(path=None, raw_content_hash=NO_LOCKFILE_DIGEST)


class LockfileSentinel:
    """Tracks the lockfile digest across requests and reports changes."""

    def __init__(self, project_root: Path, filesystem: Optional[FileSystem] = None) -> None:
        self.project_root = Path(project_root)
        self.filesystem = filesystem or LocalFileSystem()
        self._last_digest: Optional[str] = None

    @property
    def last_digest(self) -> Optional[str]:
        return self._last_digest

    def snapshot(self) -> LockfileSnapshot:
        return probe_lockfile(self.project_root, self.filesystem)

    def current_digest(self) -> str:
        """Probe now and return the digest; logs when it moved since last time."""
        snapshot = self.snapshot()
        digest = snapshot.raw_content_hash
        if self._last_digest is not None and digest != self._last_digest:
            logger.info(
                "Lockfile changed (%s): cached results are now stale",
                snapshot.path.name if snapshot.path else "removed",
            )
        self._last_digest = digest
        return digest
