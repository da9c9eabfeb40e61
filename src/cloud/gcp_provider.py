# src/cloud/gcp_provider.py - v1
"""Google Cloud Storage cloud cache provider (CLOUD_PROVIDER=gcp).

Requires the 'gcp' extra: pip install flash-install[gcp].
"""

from __future__ import annotations

import logging
from pathlib import Path

from flashinstall.cloud.base_provider import BaseCloudProvider
from flashinstall.cloud.models import CloudProviderConfig

logger = logging.getLogger(__name__)


class GCPProvider(BaseCloudProvider):
    """Cloud cache objects stored in a GCS bucket."""

    name = "gcp"

    def __init__(self, config: CloudProviderConfig, bucket: object | None = None) -> None:
        self._bucket_name = config.bucket
        self._bucket = bucket if bucket is not None else self._build_bucket(config)

    @staticmethod
    def _build_bucket(config: CloudProviderConfig) -> object:
        try:
            from google.cloud import storage
        except ImportError as e:
            raise ImportError(
                "google-cloud-storage package required for the GCP cloud cache: "
                "pip install flash-install[gcp]"
            ) from e

        creds = config.credentials
        if creds.credentials_file:
            client = storage.Client.from_service_account_json(
                creds.credentials_file, project=creds.project or None
            )
        else:
            client = storage.Client(project=creds.project or None)
        return client.bucket(config.bucket)

    def _upload_sync(self, local_path: Path, remote_key: str) -> None:
        self._bucket.blob(remote_key).upload_from_filename(str(local_path))
        logger.debug("GCS upload: gs://%s/%s", self._bucket_name, remote_key)

    def _download_sync(self, remote_key: str, local_path: Path) -> None:
        self._bucket.blob(remote_key).download_to_filename(str(local_path))
        logger.debug("GCS download: gs://%s/%s", self._bucket_name, remote_key)

    def _delete_sync(self, remote_key: str) -> None:
        self._bucket.blob(remote_key).delete()

    def _list_sync(self, prefix: str) -> list[str]:
        return sorted(blob.name for blob in self._bucket.list_blobs(prefix=prefix or None))

    def _size_sync(self, remote_key: str) -> int | None:
        blob = self._bucket.get_blob(remote_key)
        return None if blob is None else int(blob.size)
