# src/cache/models.py - v2
"""Cache domain models: CacheEntry, CacheStats, PruneReport."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from flashinstall.core.models import PackageFingerprint


class CacheEntry(BaseModel):
    """Single materialized package in the local cache.

    Written to ``entry.json`` next to the ``content`` directory before the
    entry becomes visible, so it is never observed partially.
    """

    fingerprint: PackageFingerprint
    storage_path: str
    size_bytes: int
    content_digest: str
    created_at: datetime
    last_accessed_at: datetime

    @property
    def key(self) -> str:
        return self.fingerprint.key


class CacheStats(BaseModel):
    """Aggregate view of the local cache (``clean``/``analyze`` output)."""

    entries: int = 0
    total_size_bytes: int = 0
    oldest_access: datetime | None = None
    newest_access: datetime | None = None

    @property
    def avg_size_bytes(self) -> float:
        return self.total_size_bytes / self.entries if self.entries else 0.0


class PruneReport(BaseModel):
    """Result of an explicit eviction pass."""

    evicted: list[str]
    freed_bytes: int
    remaining_entries: int
