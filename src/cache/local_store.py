# src/cache/local_store.py - v1
"""Content-addressed on-disk package cache (default backend).

Layout under CACHE_ROOT:

    packages/<k[:2]>/<k[2:4]>/<key>/content/     package tree
    packages/<k[:2]>/<k[2:4]>/<key>/entry.json   CacheEntry metadata
    tmp/                                         staging and tombstones

An entry becomes visible only through a single os.rename of a fully written
staging directory, so readers never see a partial entry and concurrent
writers (threads or processes) need no lock. Same fingerprint implies same
bytes, so whichever rename lands first is kept and the loser's staging copy
is discarded.
"""

from __future__ import annotations

import asyncio
import errno
import json
import logging
import os
import shutil
import tempfile
import time
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path

from flashinstall.cache.base_cache_store import BaseCacheStore
from flashinstall.cache.fingerprint import hash_directory, shard_path
from flashinstall.cache.models import CacheEntry, CacheStats, PruneReport
from flashinstall.core.errors import CacheCorruption, CacheEntryNotFound, OrchestratorFatal
from flashinstall.core.models import PackageFingerprint

logger = logging.getLogger(__name__)

CONTENT_DIR = "content"
ENTRY_FILE = "entry.json"
STALE_STAGING_AGE_S = 6 * 3600


class LocalCacheStore(BaseCacheStore):
    """Fingerprint-keyed package store with atomic publication."""

    def __init__(self, cache_root: Path | str) -> None:
        self._root = Path(cache_root).expanduser()
        self._packages = self._root / "packages"
        self._tmp = self._root / "tmp"

    @property
    def root(self) -> Path:
        return self._root

    def entry_dir(self, fingerprint: PackageFingerprint) -> Path:
        """Final directory of an entry (may not exist)."""
        return self._packages / shard_path(fingerprint.key)

    def ensure_writable(self) -> None:
        """Create the cache layout and probe it with a throwaway write.

        Raises:
            OrchestratorFatal: If the directory cannot be created or written.
        """
        try:
            self._packages.mkdir(parents=True, exist_ok=True)
            self._tmp.mkdir(parents=True, exist_ok=True)
            probe = self._tmp / f".probe-{uuid.uuid4().hex}"
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as exc:
            raise OrchestratorFatal(
                f"Cache directory {self._root} is not writable: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # BaseCacheStore
    # ------------------------------------------------------------------

    async def has(self, fingerprint: PackageFingerprint) -> bool:
        return await asyncio.to_thread(self._has_sync, fingerprint)

    async def get(self, fingerprint: PackageFingerprint, verify: bool = False) -> Path:
        """Return the content directory of an entry and record the access.

        Raises:
            CacheEntryNotFound: No complete entry for the fingerprint.
            CacheCorruption: ``verify`` is set and the digest does not match.
        """
        return await asyncio.to_thread(self._get_sync, fingerprint, verify)

    async def put(self, fingerprint: PackageFingerprint, source_path: Path) -> CacheEntry:
        """Copy source_path (directory or single file) into the cache."""
        return await asyncio.to_thread(self._put_sync, fingerprint, Path(source_path))

    async def evict(self, fingerprint: PackageFingerprint) -> None:
        await asyncio.to_thread(self._evict_sync, fingerprint)

    async def entry(self, fingerprint: PackageFingerprint) -> CacheEntry | None:
        return await asyncio.to_thread(self._read_entry, self.entry_dir(fingerprint))

    async def list_entries(self) -> list[CacheEntry]:
        return await asyncio.to_thread(self._list_sync)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def stats(self) -> CacheStats:
        entries = await self.list_entries()
        if not entries:
            return CacheStats()
        return CacheStats(
            entries=len(entries),
            total_size_bytes=sum(e.size_bytes for e in entries),
            oldest_access=min(e.last_accessed_at for e in entries),
            newest_access=max(e.last_accessed_at for e in entries),
        )

    async def verify(self) -> int:
        """Recompute every digest and evict corrupted entries.

        Returns:
            Number of entries evicted.
        """
        removed = 0
        for entry in await self.list_entries():
            try:
                await self.get(entry.fingerprint, verify=True)
            except CacheCorruption as exc:
                logger.warning("%s; evicting", exc)
                await self.evict(entry.fingerprint)
                removed += 1
            except CacheEntryNotFound:
                continue
        return removed

    async def prune(
        self,
        max_age_days: int | None = None,
        max_size_bytes: int | None = None,
    ) -> PruneReport:
        """Explicit eviction: drop entries unused for max_age_days, then the
        least recently used ones until the total fits max_size_bytes.

        Nothing is evicted when both limits are None.
        """
        entries = sorted(await self.list_entries(), key=lambda e: e.last_accessed_at)
        evicted: list[CacheEntry] = []

        if max_age_days is not None:
            cutoff = datetime.now(timezone.utc) - timedelta(days=max_age_days)
            evicted.extend(e for e in entries if e.last_accessed_at < cutoff)

        if max_size_bytes is not None:
            kept = [e for e in entries if e not in evicted]
            total = sum(e.size_bytes for e in kept)
            for e in kept:
                if total <= max_size_bytes:
                    break
                evicted.append(e)
                total -= e.size_bytes

        for e in evicted:
            await self.evict(e.fingerprint)

        if evicted:
            logger.info(
                "Pruned %d cache entries (%d bytes)",
                len(evicted), sum(e.size_bytes for e in evicted),
            )
        return PruneReport(
            evicted=[e.fingerprint.spec for e in evicted],
            freed_bytes=sum(e.size_bytes for e in evicted),
            remaining_entries=len(entries) - len(evicted),
        )

    async def clear(self) -> int:
        """Evict every entry. Returns the number removed."""
        entries = await self.list_entries()
        for e in entries:
            await self.evict(e.fingerprint)
        await asyncio.to_thread(self._sweep_staging, 0)
        return len(entries)

    async def sweep_staging(self) -> int:
        """Remove staging leftovers of crashed processes."""
        return await asyncio.to_thread(self._sweep_staging, STALE_STAGING_AGE_S)

    # ------------------------------------------------------------------
    # Blocking implementation (always run in a worker thread)
    # ------------------------------------------------------------------

    def _has_sync(self, fingerprint: PackageFingerprint) -> bool:
        final = self.entry_dir(fingerprint)
        return (final / ENTRY_FILE).is_file() and (final / CONTENT_DIR).exists()

    def _get_sync(self, fingerprint: PackageFingerprint, verify: bool) -> Path:
        final = self.entry_dir(fingerprint)
        entry = self._read_entry(final)
        content = final / CONTENT_DIR
        if entry is None or not content.exists():
            raise CacheEntryNotFound(fingerprint.key)

        if verify:
            actual = hash_directory(content)
            if actual != entry.content_digest:
                raise CacheCorruption(fingerprint.key, entry.content_digest, actual)

        self._touch(final, entry)
        return content

    def _put_sync(self, fingerprint: PackageFingerprint, source: Path) -> CacheEntry:
        if not source.exists():
            raise FileNotFoundError(f"Cache source does not exist: {source}")

        final = self.entry_dir(fingerprint)
        existing = self._read_entry(final)
        if existing is not None:
            return existing

        self._tmp.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f"put-{fingerprint.key[:12]}-", dir=self._tmp))
        try:
            content = staging / CONTENT_DIR
            if source.is_dir():
                shutil.copytree(source, content, symlinks=True)
            else:
                content.mkdir()
                shutil.copy2(source, content / source.name)

            now = datetime.now(timezone.utc)
            entry = CacheEntry(
                fingerprint=fingerprint,
                storage_path=str(final / CONTENT_DIR),
                size_bytes=_tree_size(content),
                content_digest=hash_directory(content),
                created_at=now,
                last_accessed_at=now,
            )
            (staging / ENTRY_FILE).write_text(entry.model_dump_json(indent=2), encoding="utf-8")

            final.parent.mkdir(parents=True, exist_ok=True)
            return self._publish(staging, final, fingerprint, entry)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

    def _publish(
        self,
        staging: Path,
        final: Path,
        fingerprint: PackageFingerprint,
        entry: CacheEntry,
    ) -> CacheEntry:
        try:
            os.rename(staging, final)
            logger.debug("Cached %s at %s", fingerprint.spec, final)
            return entry
        except OSError as exc:
            if exc.errno not in (errno.EEXIST, errno.ENOTEMPTY) and not final.exists():
                raise

        winner = self._read_entry(final)
        if winner is not None:
            logger.debug("Concurrent put for %s already published", fingerprint.spec)
            return winner

        # A directory without entry.json is not a valid entry; replace it.
        logger.warning("Replacing incomplete cache directory %s", final)
        self._evict_sync(fingerprint)
        os.rename(staging, final)
        return entry

    def _evict_sync(self, fingerprint: PackageFingerprint) -> None:
        final = self.entry_dir(fingerprint)
        if not final.exists():
            return
        self._tmp.mkdir(parents=True, exist_ok=True)
        tomb = self._tmp / f"evict-{fingerprint.key[:12]}-{uuid.uuid4().hex[:8]}"
        try:
            os.rename(final, tomb)
        except FileNotFoundError:
            return
        shutil.rmtree(tomb, ignore_errors=True)
        logger.debug("Evicted %s", fingerprint.spec)

    def _list_sync(self) -> list[CacheEntry]:
        entries: list[CacheEntry] = []
        if not self._packages.is_dir():
            return entries
        for path in sorted(self._packages.glob(f"*/*/*/{ENTRY_FILE}")):
            entry = self._read_entry(path.parent)
            if entry is not None:
                entries.append(entry)
        return entries

    def _read_entry(self, final: Path) -> CacheEntry | None:
        path = final / ENTRY_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to read cache entry %s: %s", path, exc)
            return None
        try:
            return CacheEntry(**data)
        except ValueError as exc:
            logger.warning("Malformed cache entry %s: %s", path, exc)
            return None

    def _touch(self, final: Path, entry: CacheEntry) -> None:
        """Rewrite entry.json with a fresh last_accessed_at (best effort)."""
        updated = entry.model_copy(update={"last_accessed_at": datetime.now(timezone.utc)})
        tmp = final / f".{ENTRY_FILE}.{uuid.uuid4().hex[:8]}"
        try:
            tmp.write_text(updated.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp, final / ENTRY_FILE)
        except OSError as exc:
            logger.debug("Could not update access time for %s: %s", entry.fingerprint.spec, exc)
            tmp.unlink(missing_ok=True)

    def _sweep_staging(self, min_age_s: float) -> int:
        if not self._tmp.is_dir():
            return 0
        now = time.time()
        removed = 0
        for path in self._tmp.iterdir():
            try:
                age = now - path.lstat().st_mtime
            except FileNotFoundError:
                continue
            if age < min_age_s:
                continue
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink(missing_ok=True)
            removed += 1
        return removed


def _tree_size(root: Path) -> int:
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            total += os.lstat(os.path.join(dirpath, name)).st_size
    return total
