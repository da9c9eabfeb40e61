# tests/unit/installer/test_unit_scripts.py - v2
"""Tests for installer/scripts.py - dependency levels, lifecycle scripts, bin links."""

from __future__ import annotations

import asyncio
import json
import os

import pytest

from flashinstall.core.errors import LifecycleScriptError
from flashinstall.core.models import PackageFingerprint, ResolvedPackage
from flashinstall.installer.scripts import ScriptRunner, dependency_levels, lifecycle_scripts, link_bins


def _package(name: str, deps: list[str] | None = None, target: str | None = None) -> ResolvedPackage:
    return ResolvedPackage(
        fingerprint=PackageFingerprint(name=name, version="1.0.0"),
        target=target or f"node_modules/{name}",
        dependencies=deps or [],
    )


def _install(project, package: ResolvedPackage, manifest: dict, files: dict[str, str] | None = None):
    root = project / package.target
    root.mkdir(parents=True)
    (root / "package.json").write_text(json.dumps({"name": package.name, **manifest}))
    for rel, content in (files or {}).items():
        (root / rel).parent.mkdir(parents=True, exist_ok=True)
        (root / rel).write_text(content)
    return root


class TestDependencyLevels:
    def test_dependencies_first(self):
        levels = dependency_levels([
            _package("app-plugin", ["core", "util"]),
            _package("util", ["core"]),
            _package("core"),
        ])
        assert [[p.name for p in level] for level in levels] == [["core"], ["util"], ["app-plugin"]]

    def test_outside_dependencies_ignored(self):
        levels = dependency_levels([_package("a", ["not-scripted"]), _package("b")])
        assert len(levels) == 1

    def test_cycle_runs_together(self):
        levels = dependency_levels([_package("x", ["y"]), _package("y", ["x"]), _package("z")])
        assert [[p.name for p in level] for level in levels] == [["z"], ["x", "y"]]


class TestScriptRunner:
    def test_lifecycle_order(self, tmp_path):
        root = _install(tmp_path, _package("a"), {"scripts": {
            "postinstall": "echo post", "test": "jest", "preinstall": "echo pre",
        }})
        assert [event for event, _ in lifecycle_scripts(root)] == ["preinstall", "postinstall"]

    @pytest.mark.asyncio
    async def test_run_package(self, tmp_path):
        package = _package("native")
        root = _install(tmp_path, package, {"scripts": {
            "install": "echo $npm_package_name > built.txt",
            "postinstall": "echo $npm_lifecycle_event >> built.txt",
        }})
        await ScriptRunner().run_package(tmp_path, package)
        assert (root / "built.txt").read_text().split() == ["native", "postinstall"]

    @pytest.mark.asyncio
    async def test_failure_carries_exit_code(self, tmp_path):
        package = _package("broken")
        _install(tmp_path, package, {"scripts": {"postinstall": "echo compiling; exit 3"}})
        with pytest.raises(LifecycleScriptError) as exc_info:
            await ScriptRunner().run_package(tmp_path, package)
        assert exc_info.value.exit_code == 3
        assert "compiling" in exc_info.value.output

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path):
        package = _package("slow")
        _install(tmp_path, package, {"scripts": {"install": "sleep 5"}})
        with pytest.raises(LifecycleScriptError):
            await ScriptRunner(timeout_s=0.2).run_package(tmp_path, package)

    @pytest.mark.asyncio
    async def test_run_all_blocks_dependants(self, tmp_path):
        base = _package("base")
        child = _package("child", ["base"])
        other = _package("other")
        _install(tmp_path, base, {"scripts": {"install": "exit 1"}})
        child_root = _install(tmp_path, child, {"scripts": {"install": "touch ran"}})
        other_root = _install(tmp_path, other, {"scripts": {"install": "touch ran"}})
        plain = _package("plain")
        _install(tmp_path, plain, {})

        report = await ScriptRunner(concurrency=2).run_all(tmp_path, [base, child, other, plain])
        assert set(report.failures) == {"base@1.0.0", "child@1.0.0"}
        assert "base" in report.failures["child@1.0.0"]
        assert report.pending == []
        assert not (child_root / "ran").exists()
        assert (other_root / "ran").exists()

    @pytest.mark.asyncio
    async def test_run_all_cancelled_reports_pending(self, tmp_path):
        core = _package("core")
        util = _package("util", ["core"])
        core_root = _install(tmp_path, core, {"scripts": {"install": "touch ran"}})
        _install(tmp_path, util, {"scripts": {"install": "touch ran"}})
        cancel = asyncio.Event()
        cancel.set()

        report = await ScriptRunner(cancel_event=cancel).run_all(tmp_path, [core, util])
        assert report.failures == {}
        assert [p.name for p in report.pending] == ["core", "util"]
        assert not (core_root / "ran").exists()


class TestLinkBins:
    def test_links_declared_bins(self, tmp_path):
        package = _package("hello")
        _install(tmp_path, package, {"bin": {"hello": "bin/hello.js", "../escape": "bin/hello.js"}},
                 {"bin/hello.js": "#!/usr/bin/env node\n"})
        assert link_bins(tmp_path, [package]) == 2
        link = tmp_path / "node_modules" / ".bin" / "hello"
        assert link.is_symlink()
        assert os.access(link.resolve(), os.X_OK)
        assert (tmp_path / "node_modules" / ".bin" / "escape").is_symlink()

    def test_string_bin_and_scoped_package(self, tmp_path):
        package = _package("@acme/tool")
        _install(tmp_path, package, {"bin": "cli.js"}, {"cli.js": ""})
        assert link_bins(tmp_path, [package]) == 1
        assert (tmp_path / "node_modules" / ".bin" / "tool").is_symlink()

    def test_nested_package_links_locally(self, tmp_path):
        package = _package("inner", target="node_modules/outer/node_modules/inner")
        _install(tmp_path, package, {"bin": {"inner": "run.js"}}, {"run.js": ""})
        link_bins(tmp_path, [package])
        assert (tmp_path / "node_modules" / "outer" / "node_modules" / ".bin" / "inner").is_symlink()

    def test_missing_bin_file_skipped(self, tmp_path):
        package = _package("ghost")
        _install(tmp_path, package, {"bin": {"ghost": "nope.js"}})
        assert link_bins(tmp_path, [package]) == 0
