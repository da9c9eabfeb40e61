# src/main.py - v2
"""CLI entry point.

Usage:
    flash-install install [project] [--production]
    flash-install snapshot [project]
    flash-install restore [project]
    flash-install clean [--all] [--max-age-days N] [--max-size-mb N]
    flash-install clean-modules [project]
    flash-install clean-snapshot [project]
    flash-install sync [--direction upload|download|both] [--force]
    flash-install analyze [project] [--top N]
    flash-install plugin {list,add,remove,enable,disable,install,search,info}
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import shutil
import signal
import sys
import uuid
from collections.abc import AsyncIterator
from pathlib import Path

from pydantic import ValidationError

from flashinstall.analysis.analyzer import analyze_project
from flashinstall.cache.cache_factory import create_cache_store
from flashinstall.cache.local_store import LocalCacheStore
from flashinstall.cloud.cloud_cache import CloudCache
from flashinstall.cloud.models import CloudProviderConfig, SyncDirection, SyncPolicy, SyncState
from flashinstall.cloud.provider_factory import create_cloud_provider
from flashinstall.config.settings import ConfigurationError, Settings, load_settings
from flashinstall.core.errors import (
    FlashInstallError,
    PluginLoadError,
    SnapshotDrift,
    SnapshotNotFound,
    SnapshotStale,
)
from flashinstall.installer.models import InstallOptions, InstallResult
from flashinstall.installer.orchestrator import Installer
from flashinstall.installer.registry_client import RegistryClient
from flashinstall.logging.context import clear_context, set_run_context
from flashinstall.logging.logger import setup_logging
from flashinstall.plugins.dispatcher import HookDispatcher
from flashinstall.plugins.hooks import HookPoint
from flashinstall.plugins.manager import PluginManager
from flashinstall.plugins.models import HookContext
from flashinstall.plugins.registry import STATE_FILE, PluginRegistry
from flashinstall.snapshot.archiver import SnapshotArchiver
from flashinstall.snapshot.lockfile import compute_project_manifest_hash, read_resolved_packages
from flashinstall.snapshot.models import snapshot_id_for
from flashinstall.version import __version__

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        settings = load_settings(**_settings_overrides(args))
    except (ConfigurationError, ValidationError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(
        level=settings.log_level,
        log_format=settings.log_format,
        log_file=str(settings.log_file) if settings.log_file else None,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )
    set_run_context(uuid.uuid4().hex[:12], args.command)

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except FlashInstallError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1
    finally:
        clear_context()


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="flash-install",
        description=f"flash-install v{__version__} - cached, parallel node_modules installs",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--concurrency", type=int, default=None,
        help="Parallel package workers, 1-16 (default: 4)",
    )
    parser.add_argument(
        "--no-cache", action="store_true",
        help="Bypass the local cache",
    )
    parser.add_argument(
        "--cloud-cache", action="store_true",
        help="Enable the team cloud cache",
    )
    parser.add_argument("--cloud-provider", choices=["s3", "azure", "gcp"], default=None)
    parser.add_argument("--cloud-bucket", default=None)
    parser.add_argument("--cloud-region", default=None)
    parser.add_argument("--team-id", default=None, help="Partition of the shared bucket")
    parser.add_argument(
        "--package-manager", choices=["npm", "yarn", "pnpm", "bun"], default=None,
    )
    parser.add_argument(
        "--no-interactive", action="store_true",
        help="Never prompt for confirmation",
    )
    parser.add_argument(
        "--fallback-to-npm", action="store_true",
        help="Hand the install to the package manager on fatal errors",
    )
    parser.add_argument(
        "--sync-policy", choices=[p.value for p in SyncPolicy], default=None,
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- install ---
    p_install = subparsers.add_parser("install", help="Install dependencies from the lockfile")
    _add_project_arg(p_install)
    p_install.add_argument(
        "--production", action="store_true",
        help="Skip devDependencies",
    )
    p_install.add_argument(
        "--ignore-scripts", action="store_true",
        help="Do not run lifecycle scripts",
    )
    p_install.set_defaults(func=_cmd_install)

    # --- snapshot / restore ---
    p_snapshot = subparsers.add_parser("snapshot", help="Archive node_modules into .flashpack")
    _add_project_arg(p_snapshot)
    p_snapshot.set_defaults(func=_cmd_snapshot)

    p_restore = subparsers.add_parser("restore", help="Restore node_modules from .flashpack")
    _add_project_arg(p_restore)
    p_restore.set_defaults(func=_cmd_restore)

    # --- cleaning ---
    p_clean = subparsers.add_parser("clean", help="Prune or clear the local cache")
    p_clean.add_argument("--all", action="store_true", help="Remove every cache entry")
    p_clean.add_argument("--max-age-days", type=int, default=None)
    p_clean.add_argument("--max-size-mb", type=int, default=None)
    p_clean.add_argument(
        "--verify", action="store_true",
        help="Also evict entries whose content no longer matches its digest",
    )
    p_clean.set_defaults(func=_cmd_clean)

    p_clean_modules = subparsers.add_parser("clean-modules", help="Remove the project's node_modules")
    _add_project_arg(p_clean_modules)
    p_clean_modules.set_defaults(func=_cmd_clean_modules)

    p_clean_snapshot = subparsers.add_parser("clean-snapshot", help="Remove the project's .flashpack")
    _add_project_arg(p_clean_snapshot)
    p_clean_snapshot.set_defaults(func=_cmd_clean_snapshot)

    # --- sync ---
    p_sync = subparsers.add_parser("sync", help="Reconcile the local cache with the cloud cache")
    p_sync.add_argument(
        "--direction", choices=[d.value for d in SyncDirection], default=SyncDirection.BOTH.value,
    )
    p_sync.add_argument("--force", action="store_true", help="Transfer even existing entries")
    p_sync.set_defaults(func=_cmd_sync)

    # --- analyze ---
    p_analyze = subparsers.add_parser("analyze", help="Summarize the installed tree")
    _add_project_arg(p_analyze)
    p_analyze.add_argument("--top", type=int, default=10, help="Largest packages to list")
    p_analyze.set_defaults(func=_cmd_analyze)

    # --- plugin ---
    p_plugin = subparsers.add_parser("plugin", help="Manage plugins")
    plugin_sub = p_plugin.add_subparsers(dest="plugin_command", required=True)
    plugin_sub.add_parser("list", help="List installed plugins")
    plugin_sub.add_parser("add", help="Add a plugin file or directory").add_argument("path", type=Path)
    for name in ("remove", "enable", "disable", "info"):
        plugin_sub.add_parser(name, help=f"{name.capitalize()} a plugin").add_argument("name")
    p_plugin_install = plugin_sub.add_parser("install", help="Install a plugin from the registry")
    p_plugin_install.add_argument("name")
    p_plugin_install.add_argument("--version", dest="plugin_version", default=None)
    plugin_sub.add_parser("search", help="Search the registry").add_argument("query", nargs="?", default="")
    p_plugin.set_defaults(func=_cmd_plugin)

    return parser


def _add_project_arg(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "project", type=Path, nargs="?", default=Path("."),
        help="Project directory (default: current directory)",
    )


def _settings_overrides(args: argparse.Namespace) -> dict[str, object]:
    """Map global CLI flags onto Settings fields; unset flags map to None."""
    return {
        "concurrency": args.concurrency,
        "cache_enabled": False if args.no_cache else None,
        "cloud_enabled": True if args.cloud_cache else None,
        "cloud_provider": args.cloud_provider,
        "cloud_bucket": args.cloud_bucket,
        "cloud_region": args.cloud_region,
        "cloud_team_id": args.team_id,
        "package_manager": args.package_manager,
        "interactive": False if args.no_interactive else None,
        "fallback_to_npm": True if args.fallback_to_npm else None,
        "cloud_sync_policy": args.sync_policy,
        "log_level": "DEBUG" if args.verbose else None,
        "run_scripts": False if getattr(args, "ignore_scripts", False) else None,
    }


# ----------------------------------------------------------------------
# Runtime wiring
# ----------------------------------------------------------------------


class App:
    """Components of one CLI run, built from settings."""

    def __init__(
        self,
        settings: Settings,
        store: LocalCacheStore,
        registry_client: RegistryClient,
        dispatcher: HookDispatcher,
        cloud: CloudCache | None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.registry_client = registry_client
        self.dispatcher = dispatcher
        self.cloud = cloud
        self.options = InstallOptions.from_settings(settings)

    def context(self, project_dir: Path | None, operation: str) -> HookContext:
        project_dir = project_dir.resolve() if project_dir is not None else None
        return HookContext(
            operation=operation,
            project_dir=project_dir,
            node_modules_dir=project_dir / "node_modules" if project_dir else None,
            package_manager=self.options.package_manager,
            use_cache=self.options.use_cache,
            cloud_enabled=self.options.cloud_enabled,
            offline=self.options.offline,
        )

    def archiver(self) -> SnapshotArchiver:
        return SnapshotArchiver(
            archive_name=self.settings.snapshot_name,
            compression_level=self.settings.snapshot_compression_level,
            cache_store=self.store,
        )

    def installer(self) -> Installer:
        return Installer(
            cache_store=self.store,
            registry_client=self.registry_client,
            dispatcher=self.dispatcher,
            cloud_cache=self.cloud,
            options=self.options,
        )


@contextlib.asynccontextmanager
async def open_app(
    settings: Settings,
    operation: str,
    project_dir: Path | None = None,
) -> AsyncIterator[App]:
    """Build the components, run plugin init, and tear everything down."""
    store = create_cache_store(settings)
    registry = PluginRegistry(state_file=settings.plugins_dir_path / STATE_FILE)
    if settings.plugins_enabled:
        registry.load_directory(settings.plugins_dir_path)
    dispatcher = HookDispatcher(registry)

    cloud: CloudCache | None = None
    if settings.cloud_enabled:
        config = CloudProviderConfig.from_settings(settings)
        cloud = CloudCache(
            create_cloud_provider(config),
            config,
            policy=SyncPolicy(settings.cloud_sync_policy),
            cache_store=store,
        )

    client = RegistryClient(
        registry_url=settings.registry_url,
        timeout_s=settings.registry_timeout_s,
        offline=settings.offline,
    )
    app = App(settings, store, client, dispatcher, cloud)
    context = app.context(project_dir, operation)
    await dispatcher.init_all(context)
    try:
        yield app
    finally:
        await dispatcher.cleanup_all(context)
        await client.aclose()


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


async def _cmd_install(args: argparse.Namespace, settings: Settings) -> int:
    """Install the project's lockfile through the cache hierarchy."""
    async with open_app(settings, "install", args.project) as app:
        include_dev = settings.include_dev_dependencies and not args.production
        result = await _run_install(app, args.project, include_dev)
    return result.exit_code


async def _run_install(app: App, project_dir: Path, include_dev: bool = True) -> InstallResult:
    installer = app.installer()
    loop = asyncio.get_running_loop()
    installed_signals: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, installer.cancel)
        except (NotImplementedError, RuntimeError):
            continue
        installed_signals.append(sig)

    try:
        result = await installer.install_project(project_dir, include_dev=include_dev)
    finally:
        for sig in installed_signals:
            loop.remove_signal_handler(sig)

    if app.settings.eviction_configured and app.options.use_cache:
        max_size = app.settings.cache_max_size_mb
        await app.store.prune(
            max_age_days=app.settings.cache_max_age_days,
            max_size_bytes=max_size * 1024 * 1024 if max_size is not None else None,
        )

    _print_install_summary(result)
    return result


async def _cmd_snapshot(args: argparse.Namespace, settings: Settings) -> int:
    """Archive the installed tree and optionally share it."""
    async with open_app(settings, "snapshot", args.project) as app:
        context = app.context(args.project, "snapshot")
        pre = await app.dispatcher.dispatch(HookPoint.PRE_SNAPSHOT, context)
        if pre.vetoed:
            logger.error("Snapshot vetoed by plugin(s): %s", ", ".join(pre.vetoed_by))
            return 1

        packages = await asyncio.to_thread(read_resolved_packages, args.project)
        try:
            snapshot = await app.archiver().create(args.project, packages)
        except (SnapshotDrift, FileNotFoundError) as exc:
            logger.error("%s", exc)
            return 1

        shared = False
        if app.cloud is not None:
            obj = await app.cloud.publish_snapshot(snapshot)
            shared = obj.sync_state is SyncState.UPLOADED

        await app.dispatcher.dispatch(
            HookPoint.POST_SNAPSHOT,
            context.model_copy(update={"extra": {"snapshot_id": snapshot.id, "shared": shared}}),
        )

    print("\nSnapshot created:")
    print(f"  ID:        {snapshot.id}")
    print(f"  Packages:  {len(snapshot.entries)}")
    print(f"  Archive:   {snapshot.archive_path}")
    if shared:
        print("  Uploaded to the cloud cache")
    return 0


async def _cmd_restore(args: argparse.Namespace, settings: Settings) -> int:
    """Restore node_modules from the snapshot; reinstall when it is stale."""
    async with open_app(settings, "restore", args.project) as app:
        context = app.context(args.project, "restore")
        pre = await app.dispatcher.dispatch(HookPoint.PRE_RESTORE, context)
        if pre.vetoed:
            logger.error("Restore vetoed by plugin(s): %s", ", ".join(pre.vetoed_by))
            return 1

        archiver = app.archiver()
        if not archiver.archive_path(args.project).is_file() and app.cloud is not None:
            await _fetch_remote_snapshot(app.cloud, archiver, args.project)

        try:
            snapshot = await archiver.restore(args.project)
        except SnapshotStale as exc:
            logger.warning("%s; running a full install instead", exc)
            result = await _run_install(app, args.project, settings.include_dev_dependencies)
            await app.dispatcher.dispatch(
                HookPoint.POST_RESTORE,
                context.model_copy(update={"extra": {"restored": False, "reinstalled": True}}),
            )
            return result.exit_code
        except SnapshotNotFound as exc:
            logger.error("%s", exc)
            return 1

        await app.dispatcher.dispatch(
            HookPoint.POST_RESTORE,
            context.model_copy(update={"extra": {"restored": True, "snapshot_id": snapshot.id}}),
        )

    print(f"\nRestored snapshot {snapshot.id} ({len(snapshot.entries)} packages)")
    return 0


async def _fetch_remote_snapshot(cloud: CloudCache, archiver: SnapshotArchiver, project_dir: Path) -> bool:
    """Download the snapshot matching the current lockfile, if one was shared."""
    try:
        manifest_hash = await asyncio.to_thread(compute_project_manifest_hash, project_dir)
        packages = await asyncio.to_thread(read_resolved_packages, project_dir)
    except (FileNotFoundError, ValueError, FlashInstallError) as exc:
        logger.debug("Cannot derive snapshot id: %s", exc)
        return False
    snapshot_id = snapshot_id_for(manifest_hash, packages)
    fetched = await cloud.fetch_snapshot(snapshot_id, archiver.archive_path(project_dir))
    if fetched:
        logger.info("Fetched snapshot %s from the cloud cache", snapshot_id)
    return fetched


async def _cmd_clean(args: argparse.Namespace, settings: Settings) -> int:
    """Prune or clear the local cache."""
    async with open_app(settings, "clean") as app:
        context = app.context(None, "clean")
        pre = await app.dispatcher.dispatch(HookPoint.PRE_CLEAN, context)
        if pre.vetoed:
            logger.error("Clean vetoed by plugin(s): %s", ", ".join(pre.vetoed_by))
            return 1

        before = await app.store.stats()
        corrupted = await app.store.verify() if args.verify else 0
        if args.all:
            if not _confirm(settings, f"Remove all {before.entries} cache entries?"):
                return 1
            removed = await app.store.clear()
            freed = before.total_size_bytes
        else:
            max_age = args.max_age_days if args.max_age_days is not None else settings.cache_max_age_days
            max_size_mb = args.max_size_mb if args.max_size_mb is not None else settings.cache_max_size_mb
            report = await app.store.prune(
                max_age_days=max_age,
                max_size_bytes=max_size_mb * 1024 * 1024 if max_size_mb is not None else None,
            )
            removed = len(report.evicted)
            freed = report.freed_bytes
        await app.store.sweep_staging()

        await app.dispatcher.dispatch(
            HookPoint.POST_CLEAN,
            context.model_copy(update={"extra": {"removed": removed, "corrupted": corrupted}}),
        )

    print("\nCache cleaned:")
    print(f"  Removed:    {removed}")
    if args.verify:
        print(f"  Corrupted:  {corrupted}")
    print(f"  Freed:      {_format_size(freed)}")
    return 0


async def _cmd_clean_modules(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the project's node_modules."""
    node_modules = Path(args.project) / "node_modules"
    if not node_modules.exists():
        print(f"Nothing to remove at {node_modules}")
        return 0
    if not _confirm(settings, f"Remove {node_modules}?"):
        return 1
    await asyncio.to_thread(shutil.rmtree, node_modules)
    print(f"Removed {node_modules}")
    return 0


async def _cmd_clean_snapshot(args: argparse.Namespace, settings: Settings) -> int:
    """Delete the project's snapshot archive."""
    archiver = SnapshotArchiver(archive_name=settings.snapshot_name)
    if await archiver.delete(args.project):
        print(f"Removed {archiver.archive_path(args.project)}")
    else:
        print(f"No snapshot at {archiver.archive_path(args.project)}")
    return 0


async def _cmd_sync(args: argparse.Namespace, settings: Settings) -> int:
    """Bulk upload/download between the local and cloud caches."""
    if not settings.cloud_enabled:
        logger.error("sync requires the cloud cache (--cloud-cache and --cloud-bucket)")
        return 1

    async with open_app(settings, "sync") as app:
        if app.cloud is None:
            return 1
        context = app.context(None, "sync")
        pre = await app.dispatcher.dispatch(HookPoint.PRE_SYNC, context)
        if pre.vetoed:
            logger.error("Sync vetoed by plugin(s): %s", ", ".join(pre.vetoed_by))
            return 1
        report = await app.cloud.sync(SyncDirection(args.direction), force=args.force)
        await app.dispatcher.dispatch(
            HookPoint.POST_SYNC,
            context.model_copy(update={"extra": {"report": report.model_dump(mode="json")}}),
        )

    print(f"\nSync complete ({report.direction.value}):")
    print(f"  Uploaded:    {len(report.uploaded)}")
    print(f"  Downloaded:  {len(report.downloaded)}")
    print(f"  Skipped:     {len(report.skipped)}")
    print(f"  Failed:      {len(report.failed)}")
    return 1 if report.failed else 0


async def _cmd_analyze(args: argparse.Namespace, settings: Settings) -> int:
    """Print package count, size, duplicates and largest packages."""
    try:
        report = await asyncio.to_thread(analyze_project, args.project, args.top)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1

    print(f"\nDependency analysis for {Path(args.project).resolve()}:")
    print(f"  Packages:     {report.package_count} ({report.unique_packages} unique)")
    print(f"  Direct deps:  {len(report.direct_dependencies)}")
    print(f"  Total size:   {_format_size(report.total_size_bytes)}")
    if report.duplicates:
        print("  Duplicates:")
        for name, versions in report.duplicates.items():
            print(f"    {name}: {', '.join(versions)}")
    if report.largest:
        print("  Largest:")
        for package in report.largest:
            print(f"    {package.name}@{package.version}  {_format_size(package.size_bytes)}")
    return 0


async def _cmd_plugin(args: argparse.Namespace, settings: Settings) -> int:
    """Dispatch ``plugin`` sub-commands to the PluginManager."""
    async with RegistryClient(
        registry_url=settings.registry_url,
        timeout_s=settings.registry_timeout_s,
        offline=settings.offline,
    ) as client:
        manager = PluginManager(settings.plugins_dir_path, client)
        command = args.plugin_command
        try:
            if command == "list":
                registrations = manager.list()
                if not registrations:
                    print(f"No plugins installed in {settings.plugins_dir_path}")
                for reg in registrations:
                    state = "enabled" if reg.enabled else f"disabled ({reg.disabled_reason})"
                    print(f"  {reg.name} v{reg.version}  priority={reg.priority}  {state}")
            elif command == "add":
                reg = manager.add(args.path)
                print(f"Added plugin {reg.name} v{reg.version}")
            elif command == "remove":
                if not _confirm(settings, f"Remove plugin {args.name}?"):
                    return 1
                path = manager.remove(args.name)
                print(f"Removed plugin {args.name} ({path})")
            elif command == "enable":
                reg = manager.enable(args.name)
                print(f"Enabled plugin {reg.name}")
                if not reg.enabled:
                    print(f"  still inactive: {reg.disabled_reason}")
            elif command == "disable":
                manager.disable(args.name)
                print(f"Disabled plugin {args.name}")
            elif command == "info":
                _print_plugin_info(manager, args.name)
            elif command == "install":
                reg = await manager.install(args.name, args.plugin_version)
                print(f"Installed plugin {reg.name} v{reg.version}")
            elif command == "search":
                hits = await manager.search(args.query)
                if not hits:
                    print("No plugins found")
                for hit in hits:
                    print(f"  {hit.name}@{hit.version}  {hit.description}")
        except PluginLoadError as exc:
            logger.error("%s", exc)
            return 1
    return 0


# ----------------------------------------------------------------------
# Output helpers
# ----------------------------------------------------------------------


def _print_install_summary(result: InstallResult) -> None:
    """Print a human-readable summary of InstallResult."""
    print(f"\nInstall {result.status.value}:")
    print(f"  Succeeded:  {len(result.succeeded)}")
    print(f"  Failed:     {len(result.failed)}")
    print(f"  Skipped:    {len(result.skipped)}")
    if result.pending:
        print(f"  Pending:    {len(result.pending)} (re-run install to resume)")
    print(
        f"  Sources:    cache {result.cache_hits}, cloud {result.cloud_hits}, "
        f"network {result.network_downloads}"
    )
    print(f"  Duration:   {result.duration_ms / 1000:.1f}s")
    if result.fallback_command:
        print(f"  Fell back to: {' '.join(result.fallback_command)} (exit {result.exit_code})")
    for spec, error in sorted(result.failed.items()):
        print(f"    {spec}: {error}")


def _print_plugin_info(manager: PluginManager, name: str) -> None:
    reg = manager.info(name)
    print(f"\n{reg.name} v{reg.version}")
    if reg.description:
        print(f"  {reg.description}")
    print(f"  Source:        {reg.source}")
    print(f"  Priority:      {reg.priority}")
    print(f"  Enabled:       {reg.enabled}" + (f" ({reg.disabled_reason})" if reg.disabled_reason else ""))
    print(f"  Dependencies:  {', '.join(sorted(reg.dependencies)) or '-'}")
    print(f"  Hooks:         {', '.join(h.value for h in reg.hooks) or '-'}")


def _confirm(settings: Settings, question: str) -> bool:
    if not settings.interactive or not sys.stdin.isatty():
        return True
    answer = input(f"{question} [y/N] ").strip().lower()
    return answer in ("y", "yes")


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.1f} {unit}" if unit != "B" else f"{int(value)} B"
        value /= 1024
    return f"{value:.1f} GB"


if __name__ == "__main__":
    sys.exit(main())
