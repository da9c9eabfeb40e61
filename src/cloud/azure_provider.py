# src/cloud/azure_provider.py - v1
"""Azure Blob Storage cloud cache provider (CLOUD_PROVIDER=azure).

Requires the 'azure' extra: pip install flash-install[azure].
``bucket`` is the container name.
"""

from __future__ import annotations

import logging
from pathlib import Path

from flashinstall.cloud.base_provider import BaseCloudProvider
from flashinstall.cloud.models import CloudProviderConfig

logger = logging.getLogger(__name__)


class AzureProvider(BaseCloudProvider):
    """Cloud cache objects stored as blobs in one container."""

    name = "azure"

    def __init__(self, config: CloudProviderConfig, container: object | None = None) -> None:
        self._container_name = config.bucket
        self._container = container if container is not None else self._build_container(config)

    @staticmethod
    def _build_container(config: CloudProviderConfig) -> object:
        try:
            from azure.storage.blob import BlobServiceClient
        except ImportError as e:
            raise ImportError(
                "azure-storage-blob package required for the Azure cloud cache: "
                "pip install flash-install[azure]"
            ) from e

        creds = config.credentials
        if creds.connection_string:
            service = BlobServiceClient.from_connection_string(creds.connection_string)
        else:
            account_url = config.endpoint or f"https://{creds.account_name}.blob.core.windows.net"
            service = BlobServiceClient(
                account_url=account_url,
                credential=creds.secret_access_key or None,
            )
        return service.get_container_client(config.bucket)

    def _upload_sync(self, local_path: Path, remote_key: str) -> None:
        with open(local_path, "rb") as fh:
            self._container.upload_blob(name=remote_key, data=fh, overwrite=True)
        logger.debug("Azure upload: %s/%s", self._container_name, remote_key)

    def _download_sync(self, remote_key: str, local_path: Path) -> None:
        downloader = self._container.download_blob(remote_key)
        with open(local_path, "wb") as fh:
            downloader.readinto(fh)
        logger.debug("Azure download: %s/%s", self._container_name, remote_key)

    def _delete_sync(self, remote_key: str) -> None:
        self._container.delete_blob(remote_key)

    def _list_sync(self, prefix: str) -> list[str]:
        return sorted(blob.name for blob in self._container.list_blobs(name_starts_with=prefix or None))

    def _size_sync(self, remote_key: str) -> int | None:
        props = self._container.get_blob_client(remote_key).get_blob_properties()
        return int(props.size)
