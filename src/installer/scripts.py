# src/installer/scripts.py - v2
"""Lifecycle scripts and ``.bin`` links for installed packages.

Scripts run level by level in dependency order: a package's scripts start
only after every package it depends on (within the installed set) finished
its own. Packages in one level run concurrently, bounded by the pool size.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from flashinstall.core.errors import LifecycleScriptError
from flashinstall.core.models import ResolvedPackage
from flashinstall.installer.worker_pool import WorkerPool

logger = logging.getLogger(__name__)

LIFECYCLE_SCRIPTS = ("preinstall", "install", "postinstall")
_OUTPUT_TAIL = 4000


def read_manifest(package_dir: Path) -> dict:
    try:
        return json.loads((package_dir / "package.json").read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}


def lifecycle_scripts(package_dir: Path) -> list[tuple[str, str]]:
    """(event, command) pairs declared by an installed package, in run order."""
    scripts = read_manifest(package_dir).get("scripts") or {}
    return [(event, scripts[event]) for event in LIFECYCLE_SCRIPTS if scripts.get(event)]


def dependency_levels(packages: list[ResolvedPackage]) -> list[list[ResolvedPackage]]:
    """Group packages into topological levels (dependencies first).

    Edges are by package name and restricted to the given set. Cycles are
    broken by placing the remaining packages in one final level.
    """
    by_name: dict[str, list[ResolvedPackage]] = {}
    for package in packages:
        by_name.setdefault(package.name, []).append(package)

    remaining = {p.target: p for p in packages}
    done: set[str] = set()
    levels: list[list[ResolvedPackage]] = []
    while remaining:
        level = [
            p for p in remaining.values()
            if all(
                d == p.name or d not in by_name or all(q.target in done for q in by_name[d])
                for d in p.dependencies
            )
        ]
        if not level:
            logger.warning(
                "Dependency cycle among %d scripted packages; running them together",
                len(remaining),
            )
            level = list(remaining.values())
        level.sort(key=lambda p: p.target)
        levels.append(level)
        for p in level:
            done.add(p.target)
            del remaining[p.target]
    return levels


@dataclass
class ScriptReport:
    """Outcome of one scripts pass."""

    failures: dict[str, str] = field(default_factory=dict)
    pending: list[ResolvedPackage] = field(default_factory=list)


class ScriptRunner:
    """Run preinstall/install/postinstall scripts of installed packages."""

    def __init__(
        self,
        concurrency: int = 4,
        cancel_event: asyncio.Event | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._concurrency = concurrency
        self._cancel = cancel_event
        self._timeout_s = timeout_s

    async def run_all(self, project_dir: Path, packages: list[ResolvedPackage]) -> ScriptReport:
        """Run scripts for every package that declares any.

        Returns:
            ScriptReport with the spec -> error mapping of failed packages and
            the packages whose scripts never ran because of cancellation.
        """
        project_dir = Path(project_dir)
        scripted = [
            p for p in packages if await asyncio.to_thread(lifecycle_scripts, project_dir / p.target)
        ]
        report = ScriptReport()
        if not scripted:
            return report

        failed_names: set[str] = set()
        levels = dependency_levels(scripted)
        for position, level in enumerate(levels):
            runnable = []
            for package in level:
                blocked = sorted(d for d in package.dependencies if d in failed_names)
                if blocked:
                    report.failures[package.fingerprint.spec] = (
                        f"dependency scripts failed: {', '.join(blocked)}"
                    )
                    failed_names.add(package.name)
                else:
                    runnable.append(package)

            pool = WorkerPool(self._concurrency, self._cancel)
            result = await pool.run(runnable, lambda p: self.run_package(project_dir, p))
            for index, exc in result.errors.items():
                package = runnable[index]
                report.failures[package.fingerprint.spec] = str(exc)
                failed_names.add(package.name)
            if result.pending:
                report.pending.extend(result.pending)
                for later in levels[position + 1:]:
                    report.pending.extend(later)
                logger.warning("Scripts interrupted; %d packages left pending", len(report.pending))
                break
        return report

    async def run_package(self, project_dir: Path, package: ResolvedPackage) -> None:
        """Run one package's lifecycle scripts in order.

        Raises:
            LifecycleScriptError: A script exited non-zero or timed out.
        """
        package_dir = project_dir / package.target
        env = self._script_env(project_dir, package_dir, package)
        for event, command in await asyncio.to_thread(lifecycle_scripts, package_dir):
            logger.info("Running %s script of %s", event, package.fingerprint.spec)
            env["npm_lifecycle_event"] = event
            env["npm_lifecycle_script"] = command
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=package_dir,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            try:
                output, _ = await asyncio.wait_for(proc.communicate(), timeout=self._timeout_s)
            except asyncio.TimeoutError:
                proc.kill()
                await proc.wait()
                raise LifecycleScriptError(package.fingerprint.spec, event, -1, "timed out")
            text = output.decode("utf-8", errors="replace") if output else ""
            if proc.returncode != 0:
                raise LifecycleScriptError(
                    package.fingerprint.spec, event, proc.returncode or 1, text[-_OUTPUT_TAIL:]
                )
            logger.debug("%s %s output:\n%s", package.fingerprint.spec, event, text[-_OUTPUT_TAIL:])

    @staticmethod
    def _script_env(project_dir: Path, package_dir: Path, package: ResolvedPackage) -> dict[str, str]:
        env = dict(os.environ)
        bins = [package_dir / "node_modules" / ".bin", project_dir / "node_modules" / ".bin"]
        env["PATH"] = os.pathsep.join([*(str(b) for b in bins), env.get("PATH", "")])
        env["npm_package_name"] = package.name
        env["npm_package_version"] = package.version
        env["INIT_CWD"] = str(project_dir)
        return env


def link_bins(project_dir: Path, packages: list[ResolvedPackage]) -> int:
    """Create ``node_modules/.bin`` symlinks for executables of installed packages.

    Each package links into the ``.bin`` of the node_modules directory that
    holds it. Returns the number of links created.
    """
    project_dir = Path(project_dir)
    created = 0
    for package in packages:
        package_dir = project_dir / package.target
        bins = _declared_bins(read_manifest(package_dir), package.name)
        if not bins:
            continue
        bin_dir = package_dir.parent
        if package.name.startswith("@"):
            bin_dir = bin_dir.parent
        bin_dir = bin_dir / ".bin"
        bin_dir.mkdir(parents=True, exist_ok=True)
        for command, relative in bins.items():
            script = (package_dir / relative).resolve()
            if not script.is_relative_to(package_dir.resolve()) or not script.is_file():
                logger.debug("%s declares missing bin %s", package.fingerprint.spec, relative)
                continue
            link = bin_dir / command
            if link.is_symlink() or link.exists():
                link.unlink()
            link.symlink_to(os.path.relpath(script, bin_dir.resolve()))
            mode = script.stat().st_mode
            if not mode & 0o100:
                script.chmod(mode | 0o111)
            created += 1
    return created


def _declared_bins(manifest: dict, name: str) -> dict[str, str]:
    declared = manifest.get("bin")
    if isinstance(declared, str):
        return {name.rsplit("/", 1)[-1]: declared}
    if isinstance(declared, dict):
        return {
            PurePosixPath(k).name: v
            for k, v in declared.items()
            if isinstance(v, str) and PurePosixPath(k).name not in ("", ".", "..")
        }
    return {}
