# src/cloud/s3_provider.py - v1
"""S3-compatible cloud cache provider (CLOUD_PROVIDER=s3).

Supports AWS S3, MinIO and other S3-compatible storage through
``endpoint``. Credentials not given explicitly come from the boto3
default chain (environment, profile, instance role).
"""

from __future__ import annotations

import logging
from pathlib import Path

from flashinstall.cloud.base_provider import BaseCloudProvider, classify_error
from flashinstall.cloud.models import CloudProviderConfig
from flashinstall.core.errors import CloudAuthError, CloudError

logger = logging.getLogger(__name__)


class S3Provider(BaseCloudProvider):
    """Cloud cache objects stored in an S3 bucket."""

    name = "s3"

    def __init__(self, config: CloudProviderConfig, client: object | None = None) -> None:
        """Initialize the S3 provider.

        Args:
            config: Provider configuration (bucket, region, endpoint, credentials).
            client: Pre-built boto3 S3 client (tests); built from config if None.
        """
        self._bucket = config.bucket
        self._s3 = client if client is not None else self._build_client(config)

    @staticmethod
    def _build_client(config: CloudProviderConfig) -> object:
        try:
            import boto3
        except ImportError as e:
            raise ImportError(
                "boto3 package required for the S3 cloud cache: pip install boto3"
            ) from e

        kwargs: dict = {}
        if config.region:
            kwargs["region_name"] = config.region
        if config.endpoint:
            kwargs["endpoint_url"] = config.endpoint
        creds = config.credentials
        if creds.access_key_id and creds.secret_access_key:
            kwargs["aws_access_key_id"] = creds.access_key_id
            kwargs["aws_secret_access_key"] = creds.secret_access_key
            if creds.session_token:
                kwargs["aws_session_token"] = creds.session_token
        return boto3.client("s3", **kwargs)

    def _upload_sync(self, local_path: Path, remote_key: str) -> None:
        self._s3.upload_file(str(local_path), self._bucket, remote_key)
        logger.debug("S3 upload: s3://%s/%s", self._bucket, remote_key)

    def _download_sync(self, remote_key: str, local_path: Path) -> None:
        self._s3.download_file(self._bucket, remote_key, str(local_path))
        logger.debug("S3 download: s3://%s/%s", self._bucket, remote_key)

    def _delete_sync(self, remote_key: str) -> None:
        self._s3.delete_object(Bucket=self._bucket, Key=remote_key)

    def _list_sync(self, prefix: str) -> list[str]:
        paginator = self._s3.get_paginator("list_objects_v2")
        keys: list[str] = []
        for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
            keys.extend(obj["Key"] for obj in page.get("Contents", []))
        return sorted(keys)

    def _size_sync(self, remote_key: str) -> int | None:
        response = self._s3.head_object(Bucket=self._bucket, Key=remote_key)
        return int(response["ContentLength"])

    def _translate(self, exc: Exception, operation: str, remote_key: str) -> CloudError:
        from botocore.exceptions import NoCredentialsError, PartialCredentialsError

        if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
            return CloudAuthError(f"s3 {operation} {remote_key}: {exc}", remote_key)
        return classify_error(exc, f"s3 {operation} s3://{self._bucket}/{remote_key}", remote_key)
