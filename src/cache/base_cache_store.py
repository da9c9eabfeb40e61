# src/cache/base_cache_store.py - v2
"""Abstract cache store interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from flashinstall.cache.models import CacheEntry
from flashinstall.core.models import PackageFingerprint


class BaseCacheStore(ABC):
    """Unified interface for fingerprint-keyed package storage."""

    @abstractmethod
    async def has(self, fingerprint: PackageFingerprint) -> bool:
        """True if a complete entry exists for the fingerprint."""

    @abstractmethod
    async def get(self, fingerprint: PackageFingerprint, verify: bool = False) -> Path:
        """Return the content path; raises CacheEntryNotFound on miss."""

    @abstractmethod
    async def put(self, fingerprint: PackageFingerprint, source_path: Path) -> CacheEntry:
        """Store a copy of source_path under the fingerprint."""

    @abstractmethod
    async def evict(self, fingerprint: PackageFingerprint) -> None:
        """Remove an entry. Idempotent."""

    @abstractmethod
    async def entry(self, fingerprint: PackageFingerprint) -> CacheEntry | None:
        """Return entry metadata without touching access time."""

    @abstractmethod
    async def list_entries(self) -> list[CacheEntry]:
        """List all complete entries."""
