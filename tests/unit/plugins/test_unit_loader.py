# tests/unit/plugins/test_unit_loader.py - v1
"""Tests for plugins/loader.py - discovery and PLUGIN export validation."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from flashinstall.core.errors import PluginLoadError
from flashinstall.plugins.hooks import HookPoint
from flashinstall.plugins.loader import discover, load_plugin, validate_plugin

FILE_PLUGIN = '''
def on_post_install(ctx):
    return None

PLUGIN = {
    "name": "timer",
    "version": "0.2.0",
    "hooks": {"postInstall": on_post_install},
}
'''


@pytest.fixture
def plugins_dir(tmp_path):
    root = tmp_path / "plugins"
    root.mkdir()
    (root / "timer.py").write_text(FILE_PLUGIN)
    (root / "pkg").mkdir()
    (root / "pkg" / "plugin.py").write_text('PLUGIN = {"name": "pkg", "priority": 3}\n')
    (root / "_private.py").write_text("")
    (root / "notes.txt").write_text("")
    (root / "empty").mkdir()
    return root


class TestDiscover:
    def test_finds_files_and_directories(self, plugins_dir):
        assert [p.name for p in discover(plugins_dir)] == ["pkg", "timer.py"]

    def test_missing_directory(self, tmp_path):
        assert discover(tmp_path / "nope") == []


class TestLoadPlugin:
    def test_file_plugin(self, plugins_dir):
        spec = load_plugin(plugins_dir / "timer.py")
        assert spec.name == "timer"
        assert HookPoint.POST_INSTALL in spec.hooks

    def test_directory_plugin(self, plugins_dir):
        assert load_plugin(plugins_dir / "pkg").priority == 3

    def test_missing_export(self, tmp_path):
        path = tmp_path / "bare.py"
        path.write_text("x = 1\n")
        with pytest.raises(PluginLoadError, match="does not export PLUGIN"):
            load_plugin(path)

    def test_import_error(self, tmp_path):
        path = tmp_path / "broken.py"
        path.write_text("raise RuntimeError('nope')\n")
        with pytest.raises(PluginLoadError, match="import failed"):
            load_plugin(path)


class TestValidatePlugin:
    def test_unknown_hook_rejected(self):
        with pytest.raises(PluginLoadError) as exc_info:
            validate_plugin({"name": "bad", "hooks": {"onEverything": print}})
        assert exc_info.value.plugin == "bad"

    def test_object_export(self):
        exported = SimpleNamespace(name="obj", version="1.0.0", hooks={"preInstall": lambda ctx: True})
        assert HookPoint.PRE_INSTALL in validate_plugin(exported).hooks

    def test_empty_name_rejected(self):
        with pytest.raises(PluginLoadError):
            validate_plugin({"name": ""}, label="anon")
