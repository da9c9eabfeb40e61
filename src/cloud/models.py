# src/cloud/models.py - v1
"""Cloud cache configuration and sync-state models."""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from flashinstall.config.settings import Settings


class SyncPolicy(str, Enum):
    """When a local entry is pushed to the remote cache."""

    ALWAYS_UPLOAD = "always-upload"
    UPLOAD_IF_MISSING = "upload-if-missing"


class SyncState(str, Enum):
    LOCAL_ONLY = "local-only"
    UPLOADED = "uploaded"
    STALE = "stale"


class SyncDirection(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    BOTH = "both"


class CloudCredentials(BaseModel):
    """Provider credentials. Empty fields fall back to the SDK's default chain."""

    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""
    account_name: str = ""
    connection_string: str = ""
    project: str = ""
    credentials_file: str = ""


class CloudProviderConfig(BaseModel):
    provider: Literal["s3", "azure", "gcp"] = "s3"
    bucket: str
    region: str = ""
    endpoint: str = ""
    credentials: CloudCredentials = Field(default_factory=CloudCredentials)
    prefix: str = ""
    team_id: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> CloudProviderConfig:
        return cls(
            provider=settings.cloud_provider,
            bucket=settings.cloud_bucket,
            region=settings.cloud_region,
            endpoint=settings.cloud_endpoint,
            prefix=settings.cloud_prefix,
            team_id=settings.cloud_team_id,
            credentials=CloudCredentials(
                access_key_id=settings.cloud_access_key_id,
                secret_access_key=settings.cloud_secret_access_key,
                session_token=settings.cloud_session_token,
                account_name=settings.cloud_account_name,
                connection_string=settings.cloud_connection_string,
                project=settings.cloud_project,
                credentials_file=settings.cloud_credentials_file,
            ),
        )


class CloudObject(BaseModel):
    """Remote counterpart of a local cache entry or snapshot."""

    remote_key: str
    subject_id: str
    sync_state: SyncState = SyncState.LOCAL_ONLY
    size_bytes: int | None = None


class SyncReport(BaseModel):
    """Outcome of a bulk ``sync`` run."""

    direction: SyncDirection
    uploaded: list[str] = Field(default_factory=list)
    downloaded: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: dict[str, str] = Field(default_factory=dict)
