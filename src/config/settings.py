# src/config/settings.py - v2
"""Typed configuration loaded from .env and FLASH_* variables via pydantic-settings.

Single source of truth for all deployment-specific settings. CLI flags are
applied on top through load_settings(**overrides).
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MIN_CONCURRENCY = 1
MAX_CONCURRENCY = 16


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file and environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FLASH_",
        extra="ignore",
    )

    # === Local cache ===
    cache_enabled: bool = True
    cache_root: Path = Path("~/.flash-install/cache")
    cache_verify: bool = False
    # Eviction is opt-in; unset means unbounded retention.
    cache_max_age_days: int | None = None
    cache_max_size_mb: int | None = None

    # === Install ===
    concurrency: int = 4
    package_manager: Literal["npm", "yarn", "pnpm", "bun"] = "npm"
    fallback_to_npm: bool = False
    run_scripts: bool = True
    offline: bool = False
    include_dev_dependencies: bool = True
    registry_url: str = "https://registry.npmjs.org"
    registry_timeout_s: float = 60.0
    interactive: bool = True

    # === Cloud cache ===
    cloud_enabled: bool = False
    cloud_provider: Literal["s3", "azure", "gcp"] = "s3"
    cloud_bucket: str = ""
    cloud_region: str = ""
    cloud_endpoint: str = ""
    cloud_prefix: str = ""
    cloud_team_id: str = ""
    cloud_sync_policy: Literal["always-upload", "upload-if-missing"] = (
        "upload-if-missing"
    )
    cloud_access_key_id: str = ""
    cloud_secret_access_key: str = ""
    cloud_session_token: str = ""
    cloud_account_name: str = ""
    cloud_connection_string: str = ""
    cloud_project: str = ""
    cloud_credentials_file: str = ""

    # === Snapshot ===
    snapshot_name: str = ".flashpack"
    snapshot_compression_level: int = 6

    # === Plugins ===
    plugins_enabled: bool = True
    plugins_dir: Path = Path("~/.flash-install/plugins")

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    # --- Validators ---

    @field_validator("concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:  # noqa: N805
        if not MIN_CONCURRENCY <= v <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        return v

    @field_validator("snapshot_compression_level")
    @classmethod
    def validate_compression_level(cls, v: int) -> int:  # noqa: N805
        if not 0 <= v <= 9:
            raise ValueError("snapshot_compression_level must be between 0 and 9")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.cloud_enabled and not self.cloud_bucket:
            errors.append("FLASH_CLOUD_ENABLED requires FLASH_CLOUD_BUCKET")

        if (
            self.cloud_enabled
            and self.cloud_provider == "azure"
            and not (self.cloud_account_name or self.cloud_connection_string)
        ):
            errors.append(
                "Azure cloud cache requires FLASH_CLOUD_ACCOUNT_NAME "
                "or FLASH_CLOUD_CONNECTION_STRING"
            )

        if self.offline and self.cloud_enabled:
            errors.append("FLASH_OFFLINE cannot be combined with FLASH_CLOUD_ENABLED")

        if self.cache_max_size_mb is not None and self.cache_max_size_mb <= 0:
            errors.append("FLASH_CACHE_MAX_SIZE_MB must be > 0")

        if self.cache_max_age_days is not None and self.cache_max_age_days <= 0:
            errors.append("FLASH_CACHE_MAX_AGE_DAYS must be > 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def cache_root_path(self) -> Path:
        return Path(self.cache_root).expanduser()

    @property
    def plugins_dir_path(self) -> Path:
        return Path(self.plugins_dir).expanduser()

    @property
    def eviction_configured(self) -> bool:
        return self.cache_max_age_days is not None or self.cache_max_size_mb is not None


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (CLI flags, tests). ``None`` values
            are dropped so unset flags keep the environment value.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    clean = {k: v for k, v in overrides.items() if v is not None}
    return Settings(**clean)  # type: ignore[arg-type]
