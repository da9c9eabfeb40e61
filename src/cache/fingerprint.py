# src/cache/fingerprint.py - v4
"""Deterministic package fingerprinting and tree digests.

compute_fingerprint() is pure: no I/O and no shared state. It must only be
called after resolution, so anything that is not an exact version is
rejected. hash_directory() is the content digest used for corruption and
drift detection.
"""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path

from flashinstall.core.errors import InvalidPackageSpec
from flashinstall.core.models import PackageFingerprint

_EXACT_VERSION = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)
_PACKAGE_NAME = re.compile(
    r"^(?:@[a-zA-Z0-9~-][a-zA-Z0-9._~-]*/)?[a-zA-Z0-9~-][a-zA-Z0-9._~-]*$"
)
_READ_CHUNK = 1024 * 1024


def compute_fingerprint(
    name: str,
    version: str,
    integrity_hash: str = "",
    resolved_url: str = "",
) -> PackageFingerprint:
    """Compute the identity of one resolved package.

    Args:
        name: Package name, optionally scoped (``@scope/name``).
        version: Exact resolved version (``1.3.0``, ``2.0.0-beta.1``).
        integrity_hash: Lockfile SRI string (``sha512-...``) or empty.
        resolved_url: Tarball URL from the lockfile, or empty.

    Returns:
        Frozen PackageFingerprint whose ``key`` is stable across runs.

    Raises:
        InvalidPackageSpec: If the name is invalid or the version is a range,
            tag or otherwise not an exact version.
    """
    if not name or len(name) > 214 or not _PACKAGE_NAME.match(name):
        raise InvalidPackageSpec(name, version, "invalid package name")
    if not is_exact_version(version):
        raise InvalidPackageSpec(
            name, version, "version is not exact; fingerprint after resolution"
        )
    return PackageFingerprint(
        name=name,
        version=version,
        integrity_hash=integrity_hash.strip(),
        resolved_url=resolved_url.strip(),
    )


def is_exact_version(version: str) -> bool:
    """True for a full MAJOR.MINOR.PATCH version with optional pre/build tags."""
    return bool(version) and _EXACT_VERSION.match(version.strip()) is not None


def fingerprint_key(fingerprint: PackageFingerprint) -> str:
    """Hex cache key of a fingerprint."""
    return fingerprint.key


def shard_path(key: str) -> Path:
    """Relative storage path for a fingerprint key: ``ab/cd/abcd...``."""
    if len(key) < 4:
        raise ValueError(f"Fingerprint key too short to shard: {key!r}")
    return Path(key[:2]) / key[2:4] / key


def hash_file(path: Path, algorithm: str = "sha256") -> str:
    """Stream a file through a hash function."""
    digest = hashlib.new(algorithm)
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(_READ_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_directory(root: Path, exclude: tuple[str, ...] = ()) -> str:
    """Deterministic digest of a directory tree.

    Covers relative paths, entry types, file contents, the executable bit and
    symlink targets. Timestamps and ownership are ignored, so two restores of
    the same tree hash identically. Directories named in ``exclude`` are
    skipped at any depth.
    """
    root = Path(root)
    digest = hashlib.sha256()
    if root.is_file():
        digest.update(f"file:{hash_file(root)}".encode("utf-8"))
        return digest.hexdigest()

    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in exclude)
        base = Path(dirpath)
        rel_dir = base.relative_to(root).as_posix()
        digest.update(f"dir:{rel_dir}\n".encode("utf-8"))

        # Symlinked directories show up in dirnames but are not descended.
        entries = sorted(filenames + [d for d in dirnames if (base / d).is_symlink()])
        for name in entries:
            path = base / name
            rel = path.relative_to(root).as_posix()
            if path.is_symlink():
                digest.update(f"link:{rel}->{os.readlink(path)}\n".encode("utf-8"))
            else:
                executable = os.access(path, os.X_OK)
                digest.update(
                    f"file:{rel}:{int(executable)}:{hash_file(path)}\n".encode("utf-8")
                )
    return digest.hexdigest()


def hash_dependency_tree(dependencies: dict[str, str]) -> str:
    """Digest of a ``name -> version`` mapping, independent of key order."""
    joined = "|".join(f"{name}@{version}" for name, version in sorted(dependencies.items()))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()
