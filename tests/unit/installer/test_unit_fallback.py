# tests/unit/installer/test_unit_fallback.py - v1
"""Tests for installer/fallback.py - command selection and hand-over."""

from __future__ import annotations

import shutil

import pytest

from flashinstall.core.errors import OrchestratorFatal
from flashinstall.installer import fallback
from flashinstall.installer.fallback import fallback_command, run_fallback


class TestFallbackCommand:
    @pytest.mark.parametrize("manager,lockfile,expected", [
        ("npm", "package-lock.json", ["npm", "ci"]),
        ("yarn", "yarn.lock", ["yarn", "install", "--frozen-lockfile"]),
        ("pnpm", "pnpm-lock.yaml", ["pnpm", "install", "--frozen-lockfile"]),
    ])
    def test_frozen_with_lockfile(self, tmp_path, manager, lockfile, expected):
        (tmp_path / lockfile).write_text("")
        assert fallback_command(manager, tmp_path) == expected

    def test_plain_install_without_lockfile(self, tmp_path):
        assert fallback_command("npm", tmp_path) == ["npm", "install"]

    def test_unsupported(self, tmp_path):
        with pytest.raises(ValueError):
            fallback_command("cargo", tmp_path)


class TestRunFallback:
    @pytest.mark.asyncio
    async def test_missing_package_manager(self, tmp_path, monkeypatch):
        monkeypatch.setattr(fallback.shutil, "which", lambda name: None)
        with pytest.raises(OrchestratorFatal, match="not found"):
            await run_fallback(tmp_path, "npm")

    @pytest.mark.asyncio
    async def test_runs_and_clears_partial_tree(self, tmp_path, monkeypatch):
        true_bin = shutil.which("true")
        if true_bin is None:
            pytest.skip("no 'true' executable")
        monkeypatch.setattr(fallback.shutil, "which", lambda name: true_bin)
        (tmp_path / "package-lock.json").write_text("{}")
        (tmp_path / "node_modules" / "half").mkdir(parents=True)

        command, exit_code = await run_fallback(tmp_path, "npm")
        assert command == ["npm", "ci"]
        assert exit_code == 0
        assert not (tmp_path / "node_modules").exists()
