# src/core/models.py - v1
"""Shared Pydantic domain models used across modules.

PackageFingerprint and ResolvedPackage are imported from here by the cache,
snapshot, cloud and installer sub-packages; no module redefines them.
"""

from __future__ import annotations

import hashlib
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field


# === PACKAGE IDENTITY ===


class PackageFingerprint(BaseModel):
    """Immutable identity of one resolved package artifact.

    Two fingerprints with identical fields are interchangeable: equality and
    hashing are by value, and ``key`` is derived from the fields alone.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    integrity_hash: str = ""
    resolved_url: str = ""

    @property
    def canonical(self) -> str:
        """Canonical identity string ``name|version|integrity_hash``."""
        return f"{self.name}|{self.version}|{self.integrity_hash}"

    @property
    def key(self) -> str:
        """SHA-256 hex digest of the canonical string."""
        return hashlib.sha256(self.canonical.encode("utf-8")).hexdigest()

    @property
    def spec(self) -> str:
        return f"{self.name}@{self.version}"


class ResolvedPackage(BaseModel):
    """A fingerprinted package plus where it must be materialized.

    ``target`` is relative to the project directory, e.g.
    ``node_modules/lodash`` or ``node_modules/a/node_modules/b``.
    """

    fingerprint: PackageFingerprint
    target: str
    dependencies: list[str] = Field(default_factory=list)
    dev: bool = False
    optional: bool = False

    @property
    def name(self) -> str:
        return self.fingerprint.name

    @property
    def version(self) -> str:
        return self.fingerprint.version

    @property
    def target_parts(self) -> tuple[str, ...]:
        return PurePosixPath(self.target).parts
