# src/cache/cache_factory.py - v3
"""Factory for cache store instantiation."""

from __future__ import annotations

from flashinstall.cache.local_store import LocalCacheStore
from flashinstall.config.settings import Settings


def create_cache_store(settings: Settings | None = None) -> LocalCacheStore:
    """Instantiate the local cache backend.

    Args:
        settings: Application settings. Defaults to ``~/.flash-install/cache``.

    Returns:
        LocalCacheStore rooted at the configured CACHE_ROOT.
    """
    if settings is None:
        settings = Settings()
    return LocalCacheStore(cache_root=settings.cache_root_path)
