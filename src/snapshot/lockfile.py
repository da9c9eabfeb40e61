# src/snapshot/lockfile.py - v1
"""Lockfile detection, hashing and reading.

The lockfile is the resolver output: every package read here already has an
exact version. npm lockfiles keep their nested node_modules layout; yarn and
pnpm lockfiles are laid out flat under node_modules/<name>.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from flashinstall.cache.fingerprint import compute_fingerprint
from flashinstall.core.models import ResolvedPackage

logger = logging.getLogger(__name__)

# Detection order: first match wins.
LOCKFILES = (
    "package-lock.json",
    "npm-shrinkwrap.json",
    "yarn.lock",
    "pnpm-lock.yaml",
    "bun.lock",
)

_NODE_MODULES = "node_modules/"
_PNPM_PEER_SUFFIX = re.compile(r"\(.*\)$")
_PNPM_V5_KEY = re.compile(r"^(@[^/]+/[^/@]+|[^/@]+)/(\d[^_/]*)")


def detect_lockfile(project_dir: Path) -> Path | None:
    """Return the project's lockfile path, or None."""
    for name in LOCKFILES:
        candidate = Path(project_dir) / name
        if candidate.is_file():
            return candidate
    return None


def compute_project_manifest_hash(project_dir: Path) -> str:
    """SHA-256 identifying the project's resolved dependency set.

    Uses the raw lockfile bytes when one exists; otherwise the sorted
    dependencies and devDependencies of package.json.
    """
    project_dir = Path(project_dir)
    lockfile = detect_lockfile(project_dir)
    if lockfile is not None:
        return hashlib.sha256(lockfile.read_bytes()).hexdigest()

    package_json = project_dir / "package.json"
    if not package_json.is_file():
        raise FileNotFoundError(f"No lockfile or package.json in {project_dir}")
    data = json.loads(package_json.read_text(encoding="utf-8"))
    declared = {
        "dependencies": dict(sorted((data.get("dependencies") or {}).items())),
        "devDependencies": dict(sorted((data.get("devDependencies") or {}).items())),
    }
    canonical = json.dumps(declared, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def read_resolved_packages(
    project_dir: Path,
    include_dev: bool = True,
) -> list[ResolvedPackage]:
    """Read the fully resolved package set from the project lockfile.

    Args:
        project_dir: Directory holding package.json and the lockfile.
        include_dev: Keep packages flagged as dev-only.

    Returns:
        Packages sorted by target path.

    Raises:
        FileNotFoundError: No lockfile present.
        ValueError: Lockfile format not readable (bun.lock, malformed).
        InvalidPackageSpec: An entry has no exact version.
    """
    lockfile = detect_lockfile(project_dir)
    if lockfile is None:
        raise FileNotFoundError(f"No lockfile found in {project_dir}")

    text = lockfile.read_text(encoding="utf-8")
    if lockfile.name in ("package-lock.json", "npm-shrinkwrap.json"):
        packages = _read_npm(text)
    elif lockfile.name == "yarn.lock":
        packages = _read_yarn(text)
    elif lockfile.name == "pnpm-lock.yaml":
        packages = _read_pnpm(text)
    else:
        raise ValueError(f"Unsupported lockfile format: {lockfile.name}")

    if not include_dev:
        packages = [p for p in packages if not p.dev]
    logger.debug("Read %d packages from %s", len(packages), lockfile.name)
    return sorted(packages, key=lambda p: p.target)


# === npm ===


def _read_npm(text: str) -> list[ResolvedPackage]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Malformed package-lock.json: {exc}") from exc

    if isinstance(data.get("packages"), dict):
        return _read_npm_packages(data["packages"])
    return _read_npm_dependencies(data.get("dependencies") or {}, "")


def _read_npm_packages(packages: dict[str, Any]) -> list[ResolvedPackage]:
    """lockfileVersion 2/3: flat map of install paths."""
    result: list[ResolvedPackage] = []
    for path, info in packages.items():
        if not path or _NODE_MODULES not in path:
            continue  # project root and workspace sources
        if info.get("link") or info.get("inBundle"):
            continue
        name = info.get("name") or path.rsplit(_NODE_MODULES, 1)[1]
        fingerprint = compute_fingerprint(
            name,
            info.get("version", ""),
            info.get("integrity", ""),
            info.get("resolved", ""),
        )
        deps = {**(info.get("dependencies") or {}), **(info.get("optionalDependencies") or {})}
        result.append(
            ResolvedPackage(
                fingerprint=fingerprint,
                target=path,
                dependencies=sorted(deps),
                dev=bool(info.get("dev") or info.get("devOptional")),
                optional=bool(info.get("optional")),
            )
        )
    return result


def _read_npm_dependencies(deps: dict[str, Any], parent: str) -> list[ResolvedPackage]:
    """lockfileVersion 1: nested ``dependencies`` tree."""
    result: list[ResolvedPackage] = []
    for name, info in deps.items():
        if info.get("bundled"):
            continue
        target = f"{parent}/{_NODE_MODULES}{name}" if parent else f"{_NODE_MODULES}{name}"
        fingerprint = compute_fingerprint(
            name,
            info.get("version", ""),
            info.get("integrity", ""),
            info.get("resolved", ""),
        )
        result.append(
            ResolvedPackage(
                fingerprint=fingerprint,
                target=target,
                dependencies=sorted(info.get("requires") or {}),
                dev=bool(info.get("dev")),
                optional=bool(info.get("optional")),
            )
        )
        result.extend(_read_npm_dependencies(info.get("dependencies") or {}, target))
    return result


# === yarn ===


def _read_yarn(text: str) -> list[ResolvedPackage]:
    if "__metadata:" in text:
        return _read_yarn_berry(text)

    entries = _parse_yarn_classic(text)
    flat: dict[str, ResolvedPackage] = {}
    for specs, fields in entries:
        name = _name_from_spec(specs[0])
        fingerprint = compute_fingerprint(
            name,
            fields.get("version", ""),
            fields.get("integrity", ""),
            fields.get("resolved", ""),
        )
        deps = list(fields.get("dependencies", {})) + list(fields.get("optionalDependencies", {}))
        _add_flat(flat, ResolvedPackage(
            fingerprint=fingerprint,
            target=f"{_NODE_MODULES}{name}",
            dependencies=sorted(deps),
        ))
    return list(flat.values())


def _parse_yarn_classic(text: str) -> list[tuple[list[str], dict[str, Any]]]:
    """Parse the yarn v1 lockfile text format into (specs, fields) blocks."""
    blocks: list[tuple[list[str], dict[str, Any]]] = []
    fields: dict[str, Any] = {}
    section: dict[str, str] | None = None

    for raw in text.splitlines():
        if not raw.strip() or raw.lstrip().startswith("#"):
            continue
        indent = len(raw) - len(raw.lstrip(" "))
        line = raw.strip()

        if indent == 0:
            specs = [_unquote(s.strip()) for s in line.rstrip(":").split(",")]
            fields = {}
            section = None
            blocks.append((specs, fields))
        elif indent == 2:
            if line.endswith(":"):
                section = {}
                fields[line[:-1]] = section
            else:
                key, _, value = line.partition(" ")
                fields[_unquote(key)] = _unquote(value.strip())
                section = None
        elif section is not None:
            key, _, value = line.partition(" ")
            section[_unquote(key)] = _unquote(value.strip())
    return blocks


def _read_yarn_berry(text: str) -> list[ResolvedPackage]:
    data = yaml.safe_load(text) or {}
    flat: dict[str, ResolvedPackage] = {}
    for key, info in data.items():
        if key == "__metadata" or not isinstance(info, dict):
            continue
        resolution = str(info.get("resolution", ""))
        if "@workspace:" in resolution or "@link:" in resolution:
            continue
        name = _name_from_spec(resolution or str(key).split(",")[0].strip())
        fingerprint = compute_fingerprint(name, str(info.get("version", "")))
        _add_flat(flat, ResolvedPackage(
            fingerprint=fingerprint,
            target=f"{_NODE_MODULES}{name}",
            dependencies=sorted(info.get("dependencies") or {}),
        ))
    return list(flat.values())


# === pnpm ===


def _read_pnpm(text: str) -> list[ResolvedPackage]:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Malformed pnpm-lock.yaml: {exc}") from exc

    packages = data.get("packages") or {}
    snapshots = data.get("snapshots") or {}
    flat: dict[str, ResolvedPackage] = {}
    for key, info in packages.items():
        info = info or {}
        name, version = _split_pnpm_key(str(key))
        name = info.get("name", name)
        version = str(info.get("version", version))
        resolution = info.get("resolution") or {}
        if "directory" in resolution:
            continue
        # lockfile v9 moves dependency edges to the snapshots section
        deps = info.get("dependencies") or snapshots.get(key, {}).get("dependencies") or {}
        fingerprint = compute_fingerprint(
            name,
            version,
            resolution.get("integrity", ""),
            resolution.get("tarball", ""),
        )
        _add_flat(flat, ResolvedPackage(
            fingerprint=fingerprint,
            target=f"{_NODE_MODULES}{name}",
            dependencies=sorted(deps),
            dev=bool(info.get("dev")),
            optional=bool(info.get("optional")),
        ))
    return list(flat.values())


def _split_pnpm_key(key: str) -> tuple[str, str]:
    """Split ``/name/1.0.0_peer`` (v5) or ``/name@1.0.0(peer)`` (v6, v9)."""
    key = key.lstrip("/")
    match = _PNPM_V5_KEY.match(key)
    if match:
        return match.group(1), match.group(2)
    key = _PNPM_PEER_SUFFIX.sub("", key)
    at = key.rfind("@")
    if at > 0:
        return key[:at], key[at + 1:]
    return key, ""


# === helpers ===


def _add_flat(flat: dict[str, ResolvedPackage], package: ResolvedPackage) -> None:
    existing = flat.get(package.name)
    if existing is None:
        flat[package.name] = package
    elif existing.version != package.version:
        logger.warning(
            "Flat layout keeps %s; skipping %s",
            existing.fingerprint.spec, package.fingerprint.spec,
        )


def _name_from_spec(spec: str) -> str:
    """``@scope/name@^1.0.0`` -> ``@scope/name``; ``name@npm:1.0.0`` -> ``name``."""
    at = spec.find("@", 1)
    return spec[:at] if at > 0 else spec


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value
