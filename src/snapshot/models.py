# src/snapshot/models.py - v1
"""Snapshot domain models."""

from __future__ import annotations

import hashlib
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from flashinstall.core.models import PackageFingerprint, ResolvedPackage

MANIFEST_FORMAT_VERSION = 1


class Snapshot(BaseModel):
    """A whole-tree archive of an installed node_modules.

    Valid only while the project's lockfile hash equals
    ``project_manifest_hash``.
    """

    id: str
    project_manifest_hash: str
    entries: list[PackageFingerprint] = Field(default_factory=list)
    archive_path: str
    created_at: datetime


class SnapshotManifest(BaseModel):
    """First member of every archive (``.flashpack-manifest.json``)."""

    format_version: int = MANIFEST_FORMAT_VERSION
    snapshot_id: str
    project_manifest_hash: str
    created_at: datetime
    packages: list[ResolvedPackage] = Field(default_factory=list)

    def to_snapshot(self, archive_path: Path) -> Snapshot:
        return Snapshot(
            id=self.snapshot_id,
            project_manifest_hash=self.project_manifest_hash,
            entries=[p.fingerprint for p in self.packages],
            archive_path=str(archive_path),
            created_at=self.created_at,
        )


def snapshot_id_for(project_manifest_hash: str, packages: list[ResolvedPackage]) -> str:
    """Deterministic id: same lockfile and package set give the same id."""
    digest = hashlib.sha256(project_manifest_hash.encode("utf-8"))
    for package in sorted(packages, key=lambda p: p.target):
        digest.update(f"|{package.target}={package.fingerprint.key}".encode("utf-8"))
    return digest.hexdigest()[:32]
