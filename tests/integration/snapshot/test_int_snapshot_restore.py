# tests/integration/snapshot/test_int_snapshot_restore.py - v1
"""Install -> snapshot -> remove node_modules -> restore, with no network."""

from __future__ import annotations

import json
import shutil

import pytest
import pytest_asyncio

from flashinstall.cache.fingerprint import hash_directory
from flashinstall.cloud.cloud_cache import CloudCache
from flashinstall.cloud.models import CloudProviderConfig
from flashinstall.core.errors import SnapshotStale
from flashinstall.installer.orchestrator import Installer
from flashinstall.snapshot.archiver import SnapshotArchiver
from flashinstall.snapshot.lockfile import read_resolved_packages

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def installed(tmp_path, fake_registry, store):
    fake_registry.publish("left-pad", "1.3.0")
    fake_registry.publish("lodash", "4.17.21", files={"lodash.js": "_", "fp/map.js": "m"})
    fake_registry.publish(
        "tool", "2.0.0", files={"cli.js": "#!/usr/bin/env node\n"}, bin={"tool": "cli.js"},
    )
    project = fake_registry.write_project(
        tmp_path / "app", [("left-pad", "1.3.0"), ("lodash", "4.17.21"), ("tool", "2.0.0")]
    )
    async with fake_registry.client() as client:
        await Installer(store, client).install_project(project)
    return project


class TestSnapshotRestore:
    @pytest.mark.asyncio
    async def test_roundtrip_without_network(self, installed, fake_registry, store):
        project = installed
        archiver = SnapshotArchiver(cache_store=store)
        packages = read_resolved_packages(project)
        snapshot = await archiver.create(project, packages)
        tree = hash_directory(project / "node_modules")
        requests_before = len(fake_registry.requests)

        shutil.rmtree(project / "node_modules")
        restored = await archiver.restore(project)

        assert restored.id == snapshot.id
        assert hash_directory(project / "node_modules") == tree
        assert (project / "node_modules" / ".bin" / "tool").is_symlink()
        assert len(fake_registry.requests) == requests_before

    @pytest.mark.asyncio
    async def test_stale_snapshot_leaves_tree_alone(self, installed, store):
        project = installed
        archiver = SnapshotArchiver(cache_store=store)
        await archiver.create(project, read_resolved_packages(project))
        tree = hash_directory(project / "node_modules")

        lock_path = project / "package-lock.json"
        lock = json.loads(lock_path.read_text())
        lock["packages"]["node_modules/left-pad"]["version"] = "1.3.1"
        lock_path.write_text(json.dumps(lock))

        with pytest.raises(SnapshotStale):
            await archiver.restore(project)
        assert hash_directory(project / "node_modules") == tree
        assert not await archiver.is_valid(project)

    @pytest.mark.asyncio
    async def test_shared_through_cloud(self, installed, store, memory_provider, tmp_path):
        project = installed
        archiver = SnapshotArchiver(cache_store=store)
        snapshot = await archiver.create(project, read_resolved_packages(project))
        tree = hash_directory(project / "node_modules")

        cloud = CloudCache(memory_provider, CloudProviderConfig(bucket="b", team_id="web"))
        await cloud.publish_snapshot(snapshot)

        clone = tmp_path / "clone"
        clone.mkdir()
        for name in ("package.json", "package-lock.json"):
            shutil.copy2(project / name, clone / name)
        assert await cloud.fetch_snapshot(snapshot.id, archiver.archive_path(clone))
        await archiver.restore(clone)
        assert hash_directory(clone / "node_modules") == tree
