# src/analysis/analyzer.py - v1
"""Inspect an installed node_modules tree: counts, sizes, duplicates."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

NODE_MODULES = "node_modules"


class InstalledPackage(BaseModel):
    name: str
    version: str
    path: str
    size_bytes: int
    depth: int


class AnalysisReport(BaseModel):
    package_count: int = 0
    unique_packages: int = 0
    total_size_bytes: int = 0
    direct_dependencies: list[str] = Field(default_factory=list)
    duplicates: dict[str, list[str]] = Field(default_factory=dict)
    largest: list[InstalledPackage] = Field(default_factory=list)


def analyze_project(project_dir: Path, top: int = 10) -> AnalysisReport:
    """Walk ``node_modules`` and summarize what is installed.

    Args:
        project_dir: Project root.
        top: Number of largest packages to report.

    Raises:
        FileNotFoundError: The project has no node_modules.
    """
    project_dir = Path(project_dir)
    root = project_dir / NODE_MODULES
    if not root.is_dir():
        raise FileNotFoundError(f"{root} not found; run install first")

    packages = list(_scan(root, project_dir, depth=1))
    versions: dict[str, set[str]] = {}
    for package in packages:
        versions.setdefault(package.name, set()).add(package.version)

    manifest = _read_json(project_dir / "package.json")
    direct = sorted({
        *(manifest.get("dependencies") or {}),
        *(manifest.get("devDependencies") or {}),
    })

    return AnalysisReport(
        package_count=len(packages),
        unique_packages=len(versions),
        total_size_bytes=sum(p.size_bytes for p in packages),
        direct_dependencies=direct,
        duplicates={name: sorted(v) for name, v in sorted(versions.items()) if len(v) > 1},
        largest=sorted(packages, key=lambda p: p.size_bytes, reverse=True)[:top],
    )


def _scan(node_modules: Path, project_dir: Path, depth: int):
    for entry in sorted(node_modules.iterdir()):
        if entry.name.startswith(".") or not entry.is_dir() or entry.is_symlink():
            continue
        if entry.name.startswith("@"):
            candidates = sorted(p for p in entry.iterdir() if p.is_dir() and not p.is_symlink())
        else:
            candidates = [entry]
        for package_dir in candidates:
            meta = _read_json(package_dir / "package.json")
            if not meta.get("name"):
                continue
            yield InstalledPackage(
                name=meta["name"],
                version=str(meta.get("version", "")),
                path=package_dir.relative_to(project_dir).as_posix(),
                size_bytes=_own_size(package_dir),
                depth=depth,
            )
            nested = package_dir / NODE_MODULES
            if nested.is_dir():
                yield from _scan(nested, project_dir, depth + 1)


def _own_size(package_dir: Path) -> int:
    """Size of a package excluding its nested node_modules."""
    total = 0
    for dirpath, dirnames, filenames in os.walk(package_dir):
        dirnames[:] = [d for d in dirnames if d != NODE_MODULES]
        for name in filenames:
            total += os.lstat(os.path.join(dirpath, name)).st_size
    return total


def _read_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        logger.debug("Unreadable %s: %s", path, exc)
        return {}
