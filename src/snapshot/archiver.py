# src/snapshot/archiver.py - v2
"""Whole-tree snapshot archives of node_modules.

Archive format: gzip tar whose first member is ``.flashpack-manifest.json``
followed by the ``node_modules`` tree. Restore can therefore validate the
manifest against the project lockfile before reading any package data.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import os
import shutil
import tarfile
import tempfile
import uuid
from datetime import datetime, timezone
from pathlib import Path

from flashinstall.cache.base_cache_store import BaseCacheStore
from flashinstall.cache.fingerprint import hash_directory
from flashinstall.core.errors import SnapshotDrift, SnapshotNotFound, SnapshotStale
from flashinstall.core.models import ResolvedPackage
from flashinstall.snapshot.lockfile import compute_project_manifest_hash
from flashinstall.snapshot.models import Snapshot, SnapshotManifest, snapshot_id_for

logger = logging.getLogger(__name__)

MANIFEST_MEMBER = ".flashpack-manifest.json"
NODE_MODULES = "node_modules"
LIFECYCLE_SCRIPTS = ("preinstall", "install", "postinstall")


class SnapshotArchiver:
    """Create, validate and restore ``.flashpack`` archives."""

    def __init__(
        self,
        archive_name: str = ".flashpack",
        compression_level: int = 6,
        cache_store: BaseCacheStore | None = None,
    ) -> None:
        self._archive_name = archive_name
        self._compression_level = compression_level
        self._cache_store = cache_store

    def archive_path(self, project_dir: Path) -> Path:
        return Path(project_dir) / self._archive_name

    async def create(
        self,
        project_dir: Path,
        resolved_manifest: list[ResolvedPackage],
    ) -> Snapshot:
        """Archive the installed tree after checking it for drift.

        Raises:
            FileNotFoundError: node_modules does not exist.
            SnapshotDrift: Installed packages differ from their fingerprints.
        """
        project_dir = Path(project_dir)
        if not (project_dir / NODE_MODULES).is_dir():
            raise FileNotFoundError(f"{project_dir / NODE_MODULES} not found; run install first")

        drifted = await self.check_drift(project_dir, resolved_manifest)
        if drifted:
            raise SnapshotDrift(drifted)

        manifest_hash = await asyncio.to_thread(compute_project_manifest_hash, project_dir)
        manifest = SnapshotManifest(
            snapshot_id=snapshot_id_for(manifest_hash, resolved_manifest),
            project_manifest_hash=manifest_hash,
            created_at=datetime.now(timezone.utc),
            packages=resolved_manifest,
        )
        path = await asyncio.to_thread(self._write_archive, project_dir, manifest)
        logger.info(
            "Snapshot %s created with %d packages at %s",
            manifest.snapshot_id, len(resolved_manifest), path,
        )
        return manifest.to_snapshot(path)

    async def restore(self, project_dir: Path) -> Snapshot:
        """Replace node_modules with the archived tree.

        Raises:
            SnapshotNotFound: No (readable) archive in the project.
            SnapshotStale: Lockfile changed since the snapshot; nothing touched.
        """
        project_dir = Path(project_dir)
        path = self.archive_path(project_dir)
        if not path.is_file():
            raise SnapshotNotFound(f"No snapshot at {path}")

        manifest = await asyncio.to_thread(self.read_manifest, path)
        current = await asyncio.to_thread(compute_project_manifest_hash, project_dir)
        if current != manifest.project_manifest_hash:
            raise SnapshotStale(manifest.project_manifest_hash, current)

        await asyncio.to_thread(self._extract, path, project_dir)
        logger.info("Restored snapshot %s into %s", manifest.snapshot_id, project_dir)
        return manifest.to_snapshot(path)

    def read_manifest(self, archive_path: Path) -> SnapshotManifest:
        """Read only the leading manifest member of an archive."""
        try:
            with tarfile.open(archive_path, "r|gz") as tar:
                member = tar.next()
                if member is None or member.name != MANIFEST_MEMBER:
                    raise SnapshotNotFound(f"{archive_path} has no snapshot manifest")
                fh = tar.extractfile(member)
                if fh is None:
                    raise SnapshotNotFound(f"{archive_path} has no snapshot manifest")
                data = json.loads(fh.read().decode("utf-8"))
        except (tarfile.TarError, OSError, json.JSONDecodeError) as exc:
            raise SnapshotNotFound(f"Unreadable snapshot {archive_path}: {exc}") from exc
        return SnapshotManifest(**data)

    async def is_valid(self, project_dir: Path) -> bool:
        """True if an archive exists and matches the current lockfile."""
        path = self.archive_path(project_dir)
        if not path.is_file():
            return False
        try:
            manifest = await asyncio.to_thread(self.read_manifest, path)
            current = await asyncio.to_thread(compute_project_manifest_hash, Path(project_dir))
        except (SnapshotNotFound, FileNotFoundError) as exc:
            logger.debug("Snapshot not valid: %s", exc)
            return False
        return manifest.project_manifest_hash == current

    async def delete(self, project_dir: Path) -> bool:
        """Remove the project's archive. Returns False if there was none."""
        path = self.archive_path(project_dir)
        if not path.exists():
            return False
        await asyncio.to_thread(path.unlink)
        return True

    async def check_drift(
        self,
        project_dir: Path,
        packages: list[ResolvedPackage],
    ) -> list[str]:
        """Return the specs of installed packages that differ from expectations.

        A package drifts when its package.json is missing or names another
        version, or when its tree no longer matches the cached content digest.
        Packages with lifecycle scripts or declared bins (both modify the
        installed tree) are only checked by name and version.
        """
        project_dir = Path(project_dir)
        drifted: list[str] = []
        for package in packages:
            target = project_dir / package.target
            meta = await asyncio.to_thread(_read_package_json, target)
            if (
                meta is None
                or meta.get("name") != package.name
                or meta.get("version") != package.version
            ):
                drifted.append(package.fingerprint.spec)
                continue

            scripts = meta.get("scripts") or {}
            if (
                self._cache_store is None
                or meta.get("bin")
                or any(s in scripts for s in LIFECYCLE_SCRIPTS)
            ):
                continue
            entry = await self._cache_store.entry(package.fingerprint)
            if entry is None:
                continue
            digest = await asyncio.to_thread(hash_directory, target, (NODE_MODULES,))
            if digest != entry.content_digest:
                drifted.append(package.fingerprint.spec)
        return drifted

    def _write_archive(self, project_dir: Path, manifest: SnapshotManifest) -> Path:
        final = self.archive_path(project_dir)
        fd, tmp_name = tempfile.mkstemp(prefix=f"{self._archive_name}-", suffix=".tmp", dir=project_dir)
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            with tarfile.open(tmp, "w:gz", compresslevel=self._compression_level) as tar:
                payload = manifest.model_dump_json(indent=2).encode("utf-8")
                info = tarfile.TarInfo(MANIFEST_MEMBER)
                info.size = len(payload)
                info.mode = 0o644
                info.mtime = int(manifest.created_at.timestamp())
                tar.addfile(info, io.BytesIO(payload))
                tar.add(project_dir / NODE_MODULES, arcname=NODE_MODULES, filter=_portable)
            os.replace(tmp, final)
        finally:
            tmp.unlink(missing_ok=True)
        return final

    def _extract(self, archive_path: Path, project_dir: Path) -> None:
        staging = Path(tempfile.mkdtemp(prefix=".flashpack-restore-", dir=project_dir))
        target = project_dir / NODE_MODULES
        aside: Path | None = None
        try:
            with tarfile.open(archive_path, "r|gz") as tar:
                tar.extractall(staging, members=_tree_members(tar), filter=_keep_permissions)

            restored = staging / NODE_MODULES
            restored.mkdir(exist_ok=True)
            if target.exists() or target.is_symlink():
                aside = project_dir / f".{NODE_MODULES}.old-{uuid.uuid4().hex[:8]}"
                os.rename(target, aside)
            try:
                os.rename(restored, target)
            except OSError:
                if aside is not None:
                    os.rename(aside, target)
                    aside = None
                raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            if aside is not None:
                shutil.rmtree(aside, ignore_errors=True)


def _tree_members(tar: tarfile.TarFile):
    for member in tar:
        if member.name == MANIFEST_MEMBER:
            continue
        if member.name != NODE_MODULES and not member.name.startswith(f"{NODE_MODULES}/"):
            logger.warning("Skipping unexpected archive member %s", member.name)
            continue
        yield member


def _keep_permissions(member: tarfile.TarInfo, dest_path: str) -> tarfile.TarInfo | None:
    """tarfile's "tar" filter, but with the archived permission bits kept.

    Path and link checks still apply; only setuid/setgid/sticky are dropped.
    """
    filtered = tarfile.tar_filter(member, dest_path)
    if filtered is None or filtered.mode is None or member.issym() or member.islnk():
        return filtered
    return filtered.replace(mode=member.mode & 0o777, deep=False)


def _read_package_json(package_dir: Path) -> dict | None:
    try:
        return json.loads((package_dir / "package.json").read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None


def _portable(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    return info
