# src/plugins/hooks.py - v1
"""Closed set of lifecycle hook points."""

from __future__ import annotations

from enum import Enum


class HookPoint(str, Enum):
    PRE_INSTALL = "preInstall"
    POST_INSTALL = "postInstall"
    PRE_PACKAGE_INSTALL = "prePackageInstall"
    POST_PACKAGE_INSTALL = "postPackageInstall"
    PACKAGE_ERROR = "packageError"
    PACKAGE_CACHE_HIT = "packageCacheHit"
    PACKAGE_CACHE_MISS = "packageCacheMiss"
    PRE_DOWNLOAD = "preDownload"
    POST_DOWNLOAD = "postDownload"
    DOWNLOAD_ERROR = "downloadError"
    DEPENDENCY_RESOLUTION_ERROR = "dependencyResolutionError"
    PRE_SNAPSHOT = "preSnapshot"
    POST_SNAPSHOT = "postSnapshot"
    PRE_RESTORE = "preRestore"
    POST_RESTORE = "postRestore"
    PRE_SYNC = "preSync"
    POST_SYNC = "postSync"
    PRE_CLEAN = "preClean"
    POST_CLEAN = "postClean"
    PLUGIN_ERROR = "pluginError"


# A failing handler on these aborts the current operation.
GATING_HOOKS = frozenset({HookPoint.DEPENDENCY_RESOLUTION_ERROR, HookPoint.PRE_INSTALL})
