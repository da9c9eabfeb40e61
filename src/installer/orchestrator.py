# src/installer/orchestrator.py - v2
"""Installer orchestrator: resolved package set -> populated node_modules.

Per package, strictly in sequence:

    prePackageInstall -> local cache -> packageCacheHit | packageCacheMiss
    -> cloud cache -> registry (preDownload/postDownload) -> put -> upload
    -> extract into target -> postPackageInstall

Packages run on a bounded worker pool. Nested targets are installed in
depth waves so a parent directory is always placed before its children.
A package failure fires packageError and never stops its siblings; only
OrchestratorFatal (or a failing gating hook) ends the run, optionally
handing it over to the native package manager.
"""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path

from flashinstall.cache.local_store import LocalCacheStore
from flashinstall.cloud.cloud_cache import CloudCache
from flashinstall.core.errors import (
    CacheCorruption,
    CacheEntryNotFound,
    IntegrityMismatch,
    InvalidPackageSpec,
    OrchestratorFatal,
    PluginHookError,
    RegistryFetchError,
)
from flashinstall.core.models import PackageFingerprint, ResolvedPackage
from flashinstall.installer.fallback import run_fallback
from flashinstall.installer.models import (
    InstallOptions,
    InstallResult,
    InstallStatus,
    PackageOutcome,
    PackageSource,
)
from flashinstall.installer.registry_client import RegistryClient
from flashinstall.installer.scripts import ScriptRunner, link_bins
from flashinstall.installer.worker_pool import WorkerPool
from flashinstall.logging.context import set_package_context
from flashinstall.plugins.dispatcher import HookDispatcher
from flashinstall.plugins.hooks import HookPoint
from flashinstall.plugins.models import HookContext
from flashinstall.snapshot.lockfile import read_resolved_packages

logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"
STAGING_DIR = ".flash-staging"
DISK_FULL_ERRNOS = frozenset({errno.ENOSPC, errno.EDQUOT})


class Installer:
    """Install a resolved package set through the cache hierarchy."""

    def __init__(
        self,
        cache_store: LocalCacheStore,
        registry_client: RegistryClient,
        dispatcher: HookDispatcher | None = None,
        cloud_cache: CloudCache | None = None,
        options: InstallOptions | None = None,
    ) -> None:
        self._store = cache_store
        self._registry = registry_client
        self._dispatcher = dispatcher if dispatcher is not None else HookDispatcher()
        self._cloud = cloud_cache
        self._options = options or InstallOptions()
        self._cancel = asyncio.Event()

    @property
    def options(self) -> InstallOptions:
        return self._options

    def cancel(self) -> None:
        """Stop issuing new work; in-flight packages finish or are discarded."""
        if not self._cancel.is_set():
            logger.warning("Cancellation requested; finishing in-flight packages")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def base_context(self, project_dir: Path, operation: str = "install") -> HookContext:
        return HookContext(
            operation=operation,
            project_dir=project_dir,
            node_modules_dir=project_dir / NODE_MODULES,
            package_manager=self._options.package_manager,
            use_cache=self._options.use_cache,
            cloud_enabled=self._options.cloud_enabled,
            offline=self._options.offline,
        )

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def install_project(self, project_dir: Path, include_dev: bool = True) -> InstallResult:
        """Read the project lockfile and install it.

        A lockfile that cannot be turned into exact fingerprints is a
        resolution error: ``dependencyResolutionError`` fires (gating) and
        the run is fatal.
        """
        project_dir = Path(project_dir).resolve()
        started = time.monotonic()
        context = self.base_context(project_dir)
        try:
            packages = await asyncio.to_thread(read_resolved_packages, project_dir, include_dev)
        except (FileNotFoundError, ValueError, InvalidPackageSpec) as exc:
            logger.error("Dependency resolution failed: %s", exc)
            cause: Exception = exc
            try:
                await self._dispatcher.dispatch(
                    HookPoint.DEPENDENCY_RESOLUTION_ERROR, context.with_error(exc)
                )
            except PluginHookError as hook_exc:
                cause = hook_exc
            fatal = OrchestratorFatal(f"Cannot resolve dependencies: {cause}")
            fatal.__cause__ = cause
            return await self._handle_fatal(project_dir, [], fatal, started)
        return await self.install(project_dir, packages)

    async def install(self, project_dir: Path, packages: list[ResolvedPackage]) -> InstallResult:
        """Install ``packages`` into ``project_dir``.

        Raises:
            OrchestratorFatal: Fatal condition and fallback disabled.
        """
        project_dir = Path(project_dir).resolve()
        started = time.monotonic()
        context = self.base_context(project_dir)
        logger.info(
            "Installing %d packages (concurrency=%d, cache=%s, cloud=%s)",
            len(packages), self._options.concurrency,
            self._options.use_cache, self._options.cloud_enabled,
        )

        try:
            if self._options.use_cache:
                await asyncio.to_thread(self._store.ensure_writable)
            pre = await self._dispatcher.dispatch(HookPoint.PRE_INSTALL, context)
            if pre.vetoed:
                logger.error("Install vetoed by plugin(s): %s", ", ".join(pre.vetoed_by))
                return InstallResult(
                    status=InstallStatus.FAILED,
                    skipped=[p.fingerprint.spec for p in packages],
                    duration_ms=_elapsed_ms(started),
                    exit_code=1,
                )
            outcomes, pending = await self._install_packages(project_dir, packages, context)
        except PluginHookError as exc:
            fatal = OrchestratorFatal(str(exc))
            fatal.__cause__ = exc
            return await self._handle_fatal(project_dir, packages, fatal, started)
        except OrchestratorFatal as exc:
            return await self._handle_fatal(project_dir, packages, exc, started)

        installed = [p for p, o in outcomes if o.ok]
        if installed:
            unrun = await self._finish_packages(project_dir, installed, outcomes, context)
            if unrun:
                unrun_specs = {p.fingerprint.spec for p in unrun}
                outcomes = [(p, o) for p, o in outcomes if o.spec not in unrun_specs]
                pending.extend(unrun)

        result = self._build_result(outcomes, pending, started)
        await self._dispatcher.dispatch(
            HookPoint.POST_INSTALL,
            context.model_copy(update={"extra": {"result": result.model_dump(mode="json")}}),
        )
        logger.info(
            "Install %s: %d succeeded, %d failed, %d skipped, %d pending "
            "(cache %d, cloud %d, network %d) in %d ms",
            result.status.value, len(result.succeeded), len(result.failed),
            len(result.skipped), len(result.pending), result.cache_hits,
            result.cloud_hits, result.network_downloads, result.duration_ms,
        )
        return result

    # ------------------------------------------------------------------
    # Package pipeline
    # ------------------------------------------------------------------

    async def _install_packages(
        self,
        project_dir: Path,
        packages: list[ResolvedPackage],
        context: HookContext,
    ) -> tuple[list[tuple[ResolvedPackage, PackageOutcome]], list[ResolvedPackage]]:
        staging = project_dir / NODE_MODULES / STAGING_DIR
        await asyncio.to_thread(staging.mkdir, parents=True, exist_ok=True)
        outcomes: list[tuple[ResolvedPackage, PackageOutcome]] = []
        pending: list[ResolvedPackage] = []
        try:
            for wave in _depth_waves(packages):
                if self.cancelled:
                    pending.extend(wave)
                    continue
                pool = WorkerPool(self._options.concurrency, self._cancel)
                result = await pool.run(
                    wave, lambda p: self._install_one(project_dir, staging, p, context)
                )
                for index in sorted(result.results):
                    outcomes.append((wave[index], result.results[index]))
                for index, exc in sorted(result.errors.items()):
                    package = wave[index]
                    outcomes.append((package, PackageOutcome(
                        spec=package.fingerprint.spec, target=package.target, error=str(exc),
                    )))
                pending.extend(result.pending)
                if result.fatal is not None:
                    raise result.fatal
        finally:
            await asyncio.to_thread(shutil.rmtree, staging, True)
        return outcomes, pending

    async def _install_one(
        self,
        project_dir: Path,
        staging: Path,
        package: ResolvedPackage,
        context: HookContext,
    ) -> PackageOutcome:
        fingerprint = package.fingerprint
        set_package_context(fingerprint.spec)
        ctx = context.for_package(fingerprint)
        outcome = PackageOutcome(spec=fingerprint.spec, target=package.target)
        try:
            pre = await self._dispatcher.dispatch(HookPoint.PRE_PACKAGE_INSTALL, ctx)
            if pre.vetoed:
                logger.info("Skipping %s (vetoed by %s)", fingerprint.spec, ", ".join(pre.vetoed_by))
                outcome.skipped = True
                return outcome

            outcome.source = await self._materialize(project_dir / package.target, staging, fingerprint, ctx)
            await self._dispatcher.dispatch(
                HookPoint.POST_PACKAGE_INSTALL,
                ctx.model_copy(update={"extra": {**ctx.extra, "source": outcome.source.value}}),
            )
            return outcome
        except OrchestratorFatal:
            raise
        except OSError as exc:
            if _is_disk_full(exc):
                raise OrchestratorFatal(f"Disk exhausted while installing {fingerprint.spec}: {exc}") from exc
            return await self._package_failed(outcome, ctx, exc)
        except Exception as exc:
            return await self._package_failed(outcome, ctx, exc)
        finally:
            set_package_context(None)

    async def _package_failed(
        self,
        outcome: PackageOutcome,
        ctx: HookContext,
        exc: Exception,
    ) -> PackageOutcome:
        logger.error("Failed to install %s: %s", outcome.spec, exc)
        outcome.error = str(exc)
        await self._dispatcher.dispatch(HookPoint.PACKAGE_ERROR, ctx.with_error(exc))
        return outcome

    async def _materialize(
        self,
        target: Path,
        staging: Path,
        fingerprint: PackageFingerprint,
        ctx: HookContext,
    ) -> PackageSource:
        """Obtain the package through the cache hierarchy and place it at target."""
        if not self._options.use_cache:
            workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="dl-", dir=staging))
            try:
                root = await self._download(fingerprint, workdir, ctx)
                await asyncio.to_thread(_place_tree, root, target, staging)
            finally:
                await asyncio.to_thread(shutil.rmtree, workdir, True)
            return PackageSource.REGISTRY

        content, source = await self._lookup(fingerprint, ctx)
        if content is None:
            content = await self._download_into_cache(fingerprint, staging, ctx)
            source = PackageSource.REGISTRY
        await asyncio.to_thread(_place_tree, content, target, staging)
        return source

    async def _lookup(
        self,
        fingerprint: PackageFingerprint,
        ctx: HookContext,
    ) -> tuple[Path | None, PackageSource | None]:
        try:
            content = await self._store.get(fingerprint, verify=self._options.verify_cache)
        except CacheEntryNotFound:
            pass
        except CacheCorruption as exc:
            logger.warning("%s; evicting and treating as a miss", exc)
            await self._store.evict(fingerprint)
        else:
            await self._dispatcher.dispatch(HookPoint.PACKAGE_CACHE_HIT, ctx)
            return content, PackageSource.LOCAL_CACHE

        await self._dispatcher.dispatch(HookPoint.PACKAGE_CACHE_MISS, ctx)
        if self._cloud is not None and self._options.cloud_enabled:
            entry = await self._cloud.fetch(fingerprint, self._dispatcher, ctx)
            if entry is not None:
                return await self._store.get(fingerprint), PackageSource.CLOUD
        return None, None

    async def _download_into_cache(
        self,
        fingerprint: PackageFingerprint,
        staging: Path,
        ctx: HookContext,
    ) -> Path:
        workdir = Path(await asyncio.to_thread(tempfile.mkdtemp, prefix="dl-", dir=staging))
        try:
            root = await self._download(fingerprint, workdir, ctx)
            await self._store.put(fingerprint, root)
        finally:
            await asyncio.to_thread(shutil.rmtree, workdir, True)
        if self._cloud is not None and self._options.cloud_enabled:
            await self._cloud.publish(fingerprint, policy=self._options.sync_policy)
        return await self._store.get(fingerprint)

    async def _download(self, fingerprint: PackageFingerprint, workdir: Path, ctx: HookContext) -> Path:
        pre = await self._dispatcher.dispatch(HookPoint.PRE_DOWNLOAD, ctx)
        if pre.vetoed:
            raise RegistryFetchError(fingerprint.spec, f"download vetoed by {', '.join(pre.vetoed_by)}")
        try:
            root = await self._registry.download(fingerprint, workdir)
        except (RegistryFetchError, IntegrityMismatch) as exc:
            await self._dispatcher.dispatch(
                HookPoint.DOWNLOAD_ERROR, ctx.with_error(exc, source="registry")
            )
            raise
        await self._dispatcher.dispatch(HookPoint.POST_DOWNLOAD, ctx)
        return root

    # ------------------------------------------------------------------
    # Post-processing
    # ------------------------------------------------------------------

    async def _finish_packages(
        self,
        project_dir: Path,
        installed: list[ResolvedPackage],
        outcomes: list[tuple[ResolvedPackage, PackageOutcome]],
        context: HookContext,
    ) -> list[ResolvedPackage]:
        """Link executables and run lifecycle scripts.

        Returns:
            Installed packages whose scripts were cut off by cancellation.
        """
        try:
            await asyncio.to_thread(link_bins, project_dir, installed)
        except OSError as exc:
            logger.warning("Could not link package executables: %s", exc)

        if not self._options.run_scripts:
            return []
        runner = ScriptRunner(self._options.concurrency, self._cancel)
        report = await runner.run_all(project_dir, installed)
        for package, outcome in outcomes:
            error = report.failures.get(outcome.spec)
            if error is None:
                continue
            outcome.error = error
            await self._dispatcher.dispatch(
                HookPoint.PACKAGE_ERROR,
                context.for_package(package.fingerprint).with_error(RuntimeError(error), stage="scripts"),
            )
        return report.pending

    def _build_result(
        self,
        outcomes: list[tuple[ResolvedPackage, PackageOutcome]],
        pending: list[ResolvedPackage],
        started: float,
    ) -> InstallResult:
        result = InstallResult(status=InstallStatus.COMPLETED)
        for _package, outcome in outcomes:
            if outcome.skipped:
                result.skipped.append(outcome.spec)
            elif outcome.error is not None:
                result.failed[outcome.spec] = outcome.error
            else:
                result.succeeded.append(outcome.spec)
                if outcome.source is PackageSource.LOCAL_CACHE:
                    result.cache_hits += 1
                elif outcome.source is PackageSource.CLOUD:
                    result.cloud_hits += 1
                elif outcome.source is PackageSource.REGISTRY:
                    result.network_downloads += 1
        result.pending = [p.fingerprint.spec for p in pending]

        if result.pending:
            result.status = InstallStatus.PARTIAL
        elif result.failed:
            result.status = InstallStatus.FAILED
        result.exit_code = 0 if result.status is InstallStatus.COMPLETED else 1
        result.duration_ms = _elapsed_ms(started)
        return result

    async def _handle_fatal(
        self,
        project_dir: Path,
        packages: list[ResolvedPackage],
        fatal: OrchestratorFatal,
        started: float,
    ) -> InstallResult:
        logger.error("Install aborted: %s", fatal)
        if not self._options.fallback_to_npm:
            raise fatal
        command, exit_code = await run_fallback(project_dir, self._options.package_manager)
        specs = [p.fingerprint.spec for p in packages]
        return InstallResult(
            status=InstallStatus.FALLBACK,
            succeeded=specs if exit_code == 0 else [],
            failed={} if exit_code == 0 else {" ".join(command): f"exited with code {exit_code}"},
            duration_ms=_elapsed_ms(started),
            exit_code=exit_code,
            fallback_command=command,
        )


def _depth_waves(packages: list[ResolvedPackage]) -> list[list[ResolvedPackage]]:
    """Group packages by node_modules nesting depth, shallowest first."""
    waves: dict[int, list[ResolvedPackage]] = {}
    for package in packages:
        depth = sum(1 for part in package.target_parts if part == NODE_MODULES)
        waves.setdefault(depth, []).append(package)
    return [waves[d] for d in sorted(waves)]


def _place_tree(content: Path, target: Path, staging: Path) -> None:
    """Copy content into target through a staging directory and rename."""
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = Path(tempfile.mkdtemp(prefix="place-", dir=staging))
    try:
        fresh = tmp / "package"
        if content.is_dir():
            shutil.copytree(content, fresh, symlinks=True)
        else:
            fresh.mkdir()
            shutil.copy2(content, fresh / content.name)
        if target.is_symlink() or target.exists():
            os.rename(target, tmp / "previous")
        os.rename(fresh, target)
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


def _is_disk_full(exc: OSError) -> bool:
    """True for ENOSPC/EDQUOT, including failures collected by shutil.copytree."""
    if exc.errno in DISK_FULL_ERRNOS:
        return True
    if isinstance(exc, shutil.Error) and exc.args and isinstance(exc.args[0], list):
        messages = tuple(os.strerror(code) for code in DISK_FULL_ERRNOS)
        for failure in exc.args[0]:
            why = str(failure[-1]) if isinstance(failure, tuple) else str(failure)
            if any(message in why for message in messages):
                return True
    return False


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
