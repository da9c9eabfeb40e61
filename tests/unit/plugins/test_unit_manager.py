# tests/unit/plugins/test_unit_manager.py - v1
"""Tests for plugins/manager.py - add/remove/toggle and registry install/search."""

from __future__ import annotations

import pytest

from flashinstall.core.errors import IntegrityMismatch, PluginLoadError, RegistryFetchError
from flashinstall.plugins.manager import PluginManager

PLUGIN_SOURCE = 'PLUGIN = {"name": "%s", "version": "%s", "hooks": {"postInstall": lambda ctx: None}}\n'


@pytest.fixture
def plugins_dir(tmp_path):
    return tmp_path / "plugins"


@pytest.fixture
def plugin_file(tmp_path):
    path = tmp_path / "incoming" / "timer.py"
    path.parent.mkdir()
    path.write_text(PLUGIN_SOURCE % ("timer", "1.0.0"))
    return path


class TestLocalManagement:
    def test_add_and_list(self, plugins_dir, plugin_file):
        manager = PluginManager(plugins_dir)
        registration = manager.add(plugin_file)
        assert registration.name == "timer"
        assert (plugins_dir / "timer.py").is_file()
        assert [r.name for r in PluginManager(plugins_dir).list()] == ["timer"]

    def test_add_twice_rejected(self, plugins_dir, plugin_file):
        manager = PluginManager(plugins_dir)
        manager.add(plugin_file)
        with pytest.raises(PluginLoadError, match="already installed"):
            manager.add(plugin_file)

    def test_add_invalid(self, plugins_dir, tmp_path):
        bad = tmp_path / "bad.py"
        bad.write_text("PLUGIN = 42\n")
        with pytest.raises(PluginLoadError):
            PluginManager(plugins_dir).add(bad)
        assert not (plugins_dir / "bad.py").exists()

    def test_disable_persists(self, plugins_dir, plugin_file):
        manager = PluginManager(plugins_dir)
        manager.add(plugin_file)
        manager.disable("timer")
        assert PluginManager(plugins_dir).info("timer").enabled is False
        manager.enable("timer")
        assert PluginManager(plugins_dir).info("timer").enabled is True

    def test_remove(self, plugins_dir, plugin_file):
        manager = PluginManager(plugins_dir)
        manager.add(plugin_file)
        removed = manager.remove("timer")
        assert not removed.exists()
        assert manager.list() == []
        with pytest.raises(PluginLoadError):
            manager.info("timer")


class TestRegistryInstall:
    @pytest.mark.asyncio
    async def test_install_latest(self, plugins_dir, fake_registry):
        fake_registry.publish("flash-plugin-timer", "1.0.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.0.0")})
        fake_registry.publish("flash-plugin-timer", "1.1.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.1.0")})
        async with fake_registry.client() as client:
            registration = await PluginManager(plugins_dir, client).install("flash-plugin-timer")
        assert registration.version == "1.1.0"
        assert (plugins_dir / "flash-plugin-timer" / "plugin.py").is_file()
        assert not any(p.name.startswith(".install-") for p in plugins_dir.iterdir())

    @pytest.mark.asyncio
    async def test_install_pinned_version(self, plugins_dir, fake_registry):
        fake_registry.publish("flash-plugin-timer", "1.0.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.0.0")})
        fake_registry.publish("flash-plugin-timer", "1.1.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.1.0")})
        async with fake_registry.client() as client:
            registration = await PluginManager(plugins_dir, client).install("flash-plugin-timer", "1.0.0")
        assert registration.version == "1.0.0"

    @pytest.mark.asyncio
    async def test_package_without_plugin(self, plugins_dir, fake_registry):
        fake_registry.publish("not-a-plugin", "1.0.0")
        async with fake_registry.client() as client:
            with pytest.raises(PluginLoadError, match="plugin.py"):
                await PluginManager(plugins_dir, client).install("not-a-plugin")
        assert list(plugins_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_unknown_version(self, plugins_dir, fake_registry):
        fake_registry.publish("flash-plugin-timer", "1.0.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.0.0")})
        async with fake_registry.client() as client:
            with pytest.raises(RegistryFetchError):
                await PluginManager(plugins_dir, client).install("flash-plugin-timer", "9.9.9")

    @pytest.mark.asyncio
    async def test_tampered_tarball(self, plugins_dir, fake_registry):
        fake_registry.publish("flash-plugin-timer", "1.0.0", files={"plugin.py": PLUGIN_SOURCE % ("timer", "1.0.0")})
        url = fake_registry.tarball_url("flash-plugin-timer", "1.0.0")
        fake_registry.tarballs[url] = fake_registry.tarballs[url][:-4] + b"\x00\x00\x00\x00"
        async with fake_registry.client() as client:
            with pytest.raises(IntegrityMismatch):
                await PluginManager(plugins_dir, client).install("flash-plugin-timer")

    @pytest.mark.asyncio
    async def test_search(self, plugins_dir, fake_registry):
        fake_registry.search_objects = [
            {"package": {"name": "flash-plugin-timer", "version": "1.1.0", "description": "timings"}},
            {"package": {}},
        ]
        async with fake_registry.client() as client:
            hits = await PluginManager(plugins_dir, client).search("timer")
        assert [(h.name, h.version) for h in hits] == [("flash-plugin-timer", "1.1.0")]
        search_requests = [u for u in fake_registry.requests if u.endswith("/-/v1/search")]
        assert len(search_requests) == 1

    @pytest.mark.asyncio
    async def test_requires_client(self, plugins_dir):
        with pytest.raises(RuntimeError):
            await PluginManager(plugins_dir).search()
