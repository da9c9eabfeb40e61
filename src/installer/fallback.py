# src/installer/fallback.py - v1
"""Delegate a whole install to the project's package manager."""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from flashinstall.core.errors import OrchestratorFatal

logger = logging.getLogger(__name__)

_FROZEN_COMMANDS: dict[str, tuple[str, list[str]]] = {
    # manager: (lockfile enabling the frozen form, frozen command)
    "npm": ("package-lock.json", ["npm", "ci"]),
    "yarn": ("yarn.lock", ["yarn", "install", "--frozen-lockfile"]),
    "pnpm": ("pnpm-lock.yaml", ["pnpm", "install", "--frozen-lockfile"]),
    "bun": ("bun.lock", ["bun", "install", "--frozen-lockfile"]),
}


def fallback_command(package_manager: str, project_dir: Path) -> list[str]:
    """Command that reproduces the install with the native package manager."""
    if package_manager not in _FROZEN_COMMANDS:
        raise ValueError(f"Unsupported package manager: {package_manager!r}")
    lockfile, frozen = _FROZEN_COMMANDS[package_manager]
    if (Path(project_dir) / lockfile).is_file():
        return list(frozen)
    return [package_manager, "install"]


async def run_fallback(project_dir: Path, package_manager: str = "npm") -> tuple[list[str], int]:
    """Remove the partial tree and run the package manager.

    Returns:
        The command run and its exit code.

    Raises:
        OrchestratorFatal: The package manager is not on PATH.
    """
    project_dir = Path(project_dir)
    command = fallback_command(package_manager, project_dir)
    executable = shutil.which(command[0])
    if executable is None:
        raise OrchestratorFatal(f"Fallback package manager {command[0]!r} not found on PATH")

    node_modules = project_dir / "node_modules"
    if node_modules.exists():
        logger.info("Removing partial %s before fallback", node_modules)
        await asyncio.to_thread(shutil.rmtree, node_modules, True)

    logger.warning("Falling back to %s", " ".join(command))
    proc = await asyncio.create_subprocess_exec(executable, *command[1:], cwd=project_dir)
    exit_code = await proc.wait()
    if exit_code != 0:
        logger.error("%s exited with code %d", command[0], exit_code)
    return command, exit_code
