# src/cloud/cloud_cache.py - v2
"""Team-shared remote cache layered behind the local store.

Remote layout: ``{team_id}/{prefix}/{packages|snapshots}/{id}.tgz``. Package
archives hold the cached tree under ``package/`` plus a
``.flash-fingerprint.json`` member, so a bulk download can rebuild local
entries from remote keys alone.

Every cloud failure degrades to a cache miss: fetch() and publish() never
raise CloudError.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import shutil
import tarfile
import tempfile
from pathlib import Path

from flashinstall.cache.local_store import LocalCacheStore
from flashinstall.cache.models import CacheEntry
from flashinstall.cloud.base_provider import BaseCloudProvider
from flashinstall.cloud.models import (
    CloudObject,
    CloudProviderConfig,
    SyncDirection,
    SyncPolicy,
    SyncReport,
    SyncState,
)
from flashinstall.core.errors import CacheEntryNotFound, CloudError, CloudNotFound
from flashinstall.core.models import PackageFingerprint
from flashinstall.plugins.dispatcher import HookDispatcher
from flashinstall.plugins.hooks import HookPoint
from flashinstall.plugins.models import HookContext
from flashinstall.snapshot.models import Snapshot

logger = logging.getLogger(__name__)

PACKAGES = "packages"
SNAPSHOTS = "snapshots"
PACKAGE_ROOT = "package"
FINGERPRINT_MEMBER = ".flash-fingerprint.json"
ARCHIVE_SUFFIX = ".tgz"


class CloudCache:
    """Fetch and publish cache entries through a cloud provider."""

    def __init__(
        self,
        provider: BaseCloudProvider,
        config: CloudProviderConfig,
        policy: SyncPolicy = SyncPolicy.UPLOAD_IF_MISSING,
        cache_store: LocalCacheStore | None = None,
    ) -> None:
        self._provider = provider
        self._config = config
        self._policy = policy
        self._store = cache_store
        self._locks: dict[str, asyncio.Lock] = {}
        self._published: dict[str, CloudObject] = {}

    @property
    def policy(self) -> SyncPolicy:
        return self._policy

    def remote_key(self, kind: str, subject_id: str) -> str:
        """Build ``{team_id}/{prefix}/{kind}/{subject_id}.tgz``."""
        return "/".join([*self._base_parts(), kind, f"{subject_id}{ARCHIVE_SUFFIX}"])

    def remote_prefix(self, kind: str) -> str:
        return "/".join([*self._base_parts(), kind]) + "/"

    def _base_parts(self) -> list[str]:
        return [
            part.strip("/")
            for part in (self._config.team_id, self._config.prefix)
            if part and part.strip("/")
        ]

    def _require_store(self) -> LocalCacheStore:
        if self._store is None:
            raise RuntimeError("CloudCache requires a local cache store for package transfer")
        return self._store

    # ------------------------------------------------------------------
    # Packages
    # ------------------------------------------------------------------

    async def fetch(
        self,
        fingerprint: PackageFingerprint,
        hooks: HookDispatcher | None = None,
        context: HookContext | None = None,
    ) -> CacheEntry | None:
        """Download one package into the local store.

        Returns:
            The new local CacheEntry, or None on any cloud failure (miss).
        """
        store = self._require_store()
        key = self.remote_key(PACKAGES, fingerprint.key)
        workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="flash-cloud-"))
        try:
            archive = workdir / f"{fingerprint.key}{ARCHIVE_SUFFIX}"
            await self._provider.download_file(key, archive)
            stored = await asyncio.to_thread(_unpack_package, archive, workdir / "unpacked")
            if stored is not None and stored.key != fingerprint.key:
                raise CloudError(f"Remote object {key} holds {stored.spec}", key)
            entry = await store.put(fingerprint, workdir / "unpacked" / PACKAGE_ROOT)
            logger.debug("Cloud hit for %s", fingerprint.spec)
            return entry
        except (CloudError, tarfile.TarError, OSError, ValueError) as exc:
            if isinstance(exc, CloudNotFound):
                logger.debug("Cloud miss for %s", fingerprint.spec)
            else:
                logger.warning("Cloud fetch failed for %s: %s", fingerprint.spec, exc)
            if hooks is not None:
                base = context if context is not None else HookContext(operation="install")
                await hooks.dispatch(
                    HookPoint.DOWNLOAD_ERROR,
                    base.for_package(fingerprint).with_error(exc, source="cloud", remote_key=key),
                )
            return None
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, True)

    async def publish(
        self,
        fingerprint: PackageFingerprint,
        force: bool = False,
        policy: SyncPolicy | None = None,
    ) -> CloudObject:
        """Upload the local entry of ``fingerprint`` according to the policy.

        ``policy`` overrides the cache-wide policy for this call.

        Under UPLOAD_IF_MISSING an existing remote object is never rewritten,
        and concurrent publishes of one fingerprint share a single upload.
        """
        key = self.remote_key(PACKAGES, fingerprint.key)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            if_missing = not force and (policy or self._policy) is SyncPolicy.UPLOAD_IF_MISSING
            cached = self._published.get(key)
            if cached is not None and if_missing:
                return cached

            obj = CloudObject(remote_key=key, subject_id=fingerprint.key)
            try:
                if if_missing:
                    size = await self._provider.get_file_size(key)
                    if size is not None:
                        obj = obj.model_copy(update={"sync_state": SyncState.UPLOADED, "size_bytes": size})
                        self._published[key] = obj
                        return obj

                content = await self._require_store().get(fingerprint)
                workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="flash-cloud-"))
                try:
                    archive = workdir / f"{fingerprint.key}{ARCHIVE_SUFFIX}"
                    size = await asyncio.to_thread(_pack_package, content, fingerprint, archive)
                    await self._provider.upload_file(archive, key)
                finally:
                    await asyncio.to_thread(shutil.rmtree, workdir, True)
            except (CloudError, CacheEntryNotFound) as exc:
                logger.warning("Cloud publish failed for %s: %s", fingerprint.spec, exc)
                return obj

            obj = obj.model_copy(update={"sync_state": SyncState.UPLOADED, "size_bytes": size})
            self._published[key] = obj
            logger.debug("Published %s to %s", fingerprint.spec, key)
            return obj

    async def check_divergence(self, cloud_object: CloudObject, local_archive_size: int) -> CloudObject:
        """Mark an uploaded object stale if it vanished or its size differs."""
        if cloud_object.sync_state is not SyncState.UPLOADED:
            return cloud_object
        try:
            remote_size = await self._provider.get_file_size(cloud_object.remote_key)
        except CloudError as exc:
            logger.warning("Cannot check %s: %s", cloud_object.remote_key, exc)
            return cloud_object
        if remote_size is None or remote_size != local_archive_size:
            logger.info("Remote object %s diverged", cloud_object.remote_key)
            return cloud_object.model_copy(update={"sync_state": SyncState.STALE})
        return cloud_object

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    async def publish_snapshot(self, snapshot: Snapshot, force: bool = False) -> CloudObject:
        key = self.remote_key(SNAPSHOTS, snapshot.id)
        obj = CloudObject(remote_key=key, subject_id=snapshot.id)
        try:
            if not force and self._policy is SyncPolicy.UPLOAD_IF_MISSING:
                size = await self._provider.get_file_size(key)
                if size is not None:
                    return obj.model_copy(update={"sync_state": SyncState.UPLOADED, "size_bytes": size})
            await self._provider.upload_file(Path(snapshot.archive_path), key)
        except CloudError as exc:
            logger.warning("Snapshot upload failed for %s: %s", snapshot.id, exc)
            return obj
        size = Path(snapshot.archive_path).stat().st_size
        return obj.model_copy(update={"sync_state": SyncState.UPLOADED, "size_bytes": size})

    async def fetch_snapshot(self, snapshot_id: str, dest: Path) -> bool:
        """Download a snapshot archive to ``dest``. Returns False on any failure."""
        key = self.remote_key(SNAPSHOTS, snapshot_id)
        dest = Path(dest)
        partial = dest.with_name(f"{dest.name}.download")
        try:
            await self._provider.download_file(key, partial)
            partial.replace(dest)
        except CloudError as exc:
            logger.warning("Snapshot download failed for %s: %s", snapshot_id, exc)
            partial.unlink(missing_ok=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Bulk sync
    # ------------------------------------------------------------------

    async def sync(
        self,
        direction: SyncDirection = SyncDirection.BOTH,
        force: bool = False,
    ) -> SyncReport:
        """Reconcile the local store with the remote cache."""
        store = self._require_store()
        report = SyncReport(direction=direction)

        if direction in (SyncDirection.UPLOAD, SyncDirection.BOTH):
            for entry in await store.list_entries():
                obj = await self.publish(entry.fingerprint, force=force)
                spec = entry.fingerprint.spec
                if obj.sync_state is SyncState.UPLOADED:
                    report.uploaded.append(spec)
                else:
                    report.failed[spec] = "upload failed"

        if direction in (SyncDirection.DOWNLOAD, SyncDirection.BOTH):
            try:
                remote_keys = await self._provider.list_files(self.remote_prefix(PACKAGES))
            except CloudError as exc:
                logger.warning("Cannot list remote cache: %s", exc)
                report.failed["<list>"] = str(exc)
                remote_keys = []
            local_keys = {e.key for e in await store.list_entries()}
            for remote_key in remote_keys:
                subject = remote_key.rsplit("/", 1)[-1].removesuffix(ARCHIVE_SUFFIX)
                if subject in local_keys and not force:
                    report.skipped.append(subject)
                    continue
                fingerprint = await self._download_any(remote_key, report)
                if fingerprint is not None:
                    report.downloaded.append(fingerprint.spec)

        logger.info(
            "Sync %s: %d uploaded, %d downloaded, %d skipped, %d failed",
            direction.value, len(report.uploaded), len(report.downloaded),
            len(report.skipped), len(report.failed),
        )
        return report

    async def _download_any(self, remote_key: str, report: SyncReport) -> PackageFingerprint | None:
        """Download an archive whose fingerprint is only known from its sidecar."""
        store = self._require_store()
        workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="flash-cloud-"))
        try:
            archive = workdir / "entry.tgz"
            await self._provider.download_file(remote_key, archive)
            fingerprint = await asyncio.to_thread(_unpack_package, archive, workdir / "unpacked")
            if fingerprint is None:
                report.failed[remote_key] = "archive has no fingerprint"
                return None
            await store.put(fingerprint, workdir / "unpacked" / PACKAGE_ROOT)
            return fingerprint
        except (CloudError, tarfile.TarError, OSError, ValueError) as exc:
            logger.warning("Sync download failed for %s: %s", remote_key, exc)
            report.failed[remote_key] = str(exc)
            return None
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, True)


def _pack_package(content: Path, fingerprint: PackageFingerprint, archive: Path) -> int:
    with tarfile.open(archive, "w:gz") as tar:
        payload = fingerprint.model_dump_json().encode("utf-8")
        info = tarfile.TarInfo(FINGERPRINT_MEMBER)
        info.size = len(payload)
        info.mode = 0o644
        tar.addfile(info, io.BytesIO(payload))
        tar.add(content, arcname=PACKAGE_ROOT)
    return archive.stat().st_size


def _unpack_package(archive: Path, dest: Path) -> PackageFingerprint | None:
    """Extract an archive; return the fingerprint from its sidecar, if any."""
    dest.mkdir(parents=True, exist_ok=True)
    fingerprint: PackageFingerprint | None = None
    with tarfile.open(archive, "r:gz") as tar:
        for member in tar:
            if member.name == FINGERPRINT_MEMBER:
                fh = tar.extractfile(member)
                if fh is not None:
                    fingerprint = PackageFingerprint(**json.loads(fh.read().decode("utf-8")))
        tar.extractall(
            dest,
            members=[m for m in tar.getmembers() if m.name != FINGERPRINT_MEMBER],
            filter="tar",
        )
    if not (dest / PACKAGE_ROOT).exists():
        raise FileNotFoundError(f"{archive} has no {PACKAGE_ROOT}/ tree")
    return fingerprint
