# src/installer/models.py - v1
"""Installer options, per-package outcomes and run results."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from flashinstall.cloud.models import SyncPolicy
from flashinstall.config.settings import MAX_CONCURRENCY, MIN_CONCURRENCY, Settings


class InstallStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"
    FALLBACK = "fallback"


class PackageSource(str, Enum):
    LOCAL_CACHE = "local-cache"
    CLOUD = "cloud"
    REGISTRY = "registry"


class InstallOptions(BaseModel):
    """Per-run installer options."""

    concurrency: int = 4
    use_cache: bool = True
    cloud_enabled: bool = False
    sync_policy: SyncPolicy = SyncPolicy.UPLOAD_IF_MISSING
    fallback_to_npm: bool = False
    package_manager: Literal["npm", "yarn", "pnpm", "bun"] = "npm"
    run_scripts: bool = True
    offline: bool = False
    verify_cache: bool = False

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:  # noqa: N805
        if not MIN_CONCURRENCY <= v <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        return v

    @classmethod
    def from_settings(cls, settings: Settings) -> InstallOptions:
        return cls(
            concurrency=settings.concurrency,
            use_cache=settings.cache_enabled,
            cloud_enabled=settings.cloud_enabled,
            sync_policy=SyncPolicy(settings.cloud_sync_policy),
            fallback_to_npm=settings.fallback_to_npm,
            package_manager=settings.package_manager,
            run_scripts=settings.run_scripts,
            offline=settings.offline,
            verify_cache=settings.cache_verify,
        )


class PackageOutcome(BaseModel):
    """What happened to one package."""

    spec: str
    target: str
    source: PackageSource | None = None
    skipped: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


class InstallResult(BaseModel):
    """Aggregated result of one install run.

    ``exit_code`` is 0 only if no package ultimately failed and the run was
    not interrupted.
    """

    status: InstallStatus
    succeeded: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
    skipped: list[str] = Field(default_factory=list)
    pending: list[str] = Field(default_factory=list)
    cache_hits: int = 0
    cloud_hits: int = 0
    network_downloads: int = 0
    duration_ms: int = 0
    exit_code: int = 0
    fallback_command: list[str] | None = None

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped) + len(self.pending)
