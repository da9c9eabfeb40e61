# src/cloud/base_provider.py - v1
"""Abstract remote object store used by the cloud cache.

Concrete providers implement the blocking ``_*_sync`` primitives with their
SDK; this base class runs them in a worker thread and translates SDK
exceptions into the CloudError taxonomy, so callers never see SDK types.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable

from flashinstall.core.errors import CloudAuthError, CloudError, CloudNotFound, CloudUnavailable

logger = logging.getLogger(__name__)

AUTH_STATUS_CODES = (401, 403)
NOT_FOUND_STATUS_CODES = (404,)


class BaseCloudProvider(ABC):
    """Unified async interface over S3, Azure Blob and GCS."""

    name: str = "base"

    async def upload_file(self, local_path: Path, remote_key: str) -> None:
        await self._call("upload", remote_key, self._upload_sync, Path(local_path), remote_key)

    async def download_file(self, remote_key: str, local_path: Path) -> None:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        await self._call("download", remote_key, self._download_sync, remote_key, local_path)

    async def delete_file(self, remote_key: str) -> None:
        await self._call("delete", remote_key, self._delete_sync, remote_key)

    async def file_exists(self, remote_key: str) -> bool:
        try:
            return await self.get_file_size(remote_key) is not None
        except CloudNotFound:
            return False

    async def list_files(self, prefix: str = "") -> list[str]:
        return await self._call("list", prefix, self._list_sync, prefix)

    async def get_file_size(self, remote_key: str) -> int | None:
        """Size of a remote object in bytes, or None if it does not exist."""
        try:
            return await self._call("stat", remote_key, self._size_sync, remote_key)
        except CloudNotFound:
            return None

    # --- SDK primitives ---

    @abstractmethod
    def _upload_sync(self, local_path: Path, remote_key: str) -> None: ...

    @abstractmethod
    def _download_sync(self, remote_key: str, local_path: Path) -> None: ...

    @abstractmethod
    def _delete_sync(self, remote_key: str) -> None: ...

    @abstractmethod
    def _list_sync(self, prefix: str) -> list[str]: ...

    @abstractmethod
    def _size_sync(self, remote_key: str) -> int | None: ...

    # --- Error translation ---

    async def _call(self, operation: str, remote_key: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except CloudError:
            raise
        except Exception as exc:
            error = self._translate(exc, operation, remote_key)
            logger.debug("%s %s %s failed: %s", self.name, operation, remote_key, exc)
            raise error from exc

    def _translate(self, exc: Exception, operation: str, remote_key: str) -> CloudError:
        return classify_error(exc, f"{self.name} {operation} {remote_key}", remote_key)


def status_code_of(exc: Exception) -> int | None:
    """HTTP status carried by an SDK exception, if any.

    botocore ClientError keeps it in ``response``; azure-core errors expose
    ``status_code``; google-api-core errors expose ``code``.
    """
    response = getattr(exc, "response", None)
    if isinstance(response, dict):
        status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
        if status is not None:
            return int(status)
        code = str(response.get("Error", {}).get("Code", ""))
        if code.isdigit():
            return int(code)
        if code in ("NoSuchKey", "NoSuchBucket", "NotFound"):
            return 404
        if code in ("AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken"):
            return 403
    for attr in ("status_code", "code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_error(exc: Exception, context: str, remote_key: str | None = None) -> CloudError:
    status = status_code_of(exc)
    message = f"{context}: {exc}"
    if status in AUTH_STATUS_CODES:
        return CloudAuthError(message, remote_key)
    if status in NOT_FOUND_STATUS_CODES:
        return CloudNotFound(message, remote_key)
    return CloudUnavailable(message, remote_key)
