# tests/conftest.py - v3
"""Shared test fixtures for all unit and integration tests.

Provides an in-memory npm registry (httpx.MockTransport), project builders
writing package.json + package-lock.json, an in-memory cloud provider and a
local cache store rooted in tmp_path. No network access: every registry and
cloud call is served from memory.
"""

from __future__ import annotations

import base64
import hashlib
import io
import json
import tarfile
from pathlib import Path
from typing import Any

import httpx
import pytest

from flashinstall.cache.local_store import LocalCacheStore
from flashinstall.cloud.base_provider import BaseCloudProvider
from flashinstall.core.errors import CloudAuthError, CloudNotFound
from flashinstall.core.models import PackageFingerprint, ResolvedPackage
from flashinstall.installer.registry_client import RegistryClient
from flashinstall.installer.retry import RetryConfig

REGISTRY_URL = "https://registry.test"

NO_WAIT_RETRIES = {
    "rate_limit": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
    "timeout": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
    "server_error": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
    "connection": RetryConfig(max_retries=2, base_delay_s=0.0, jitter=False),
}


def build_tarball(files: dict[str, str | bytes], mode: int = 0o644) -> bytes:
    """npm-style .tgz: every member under a top-level ``package/``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for rel, content in sorted(files.items()):
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(f"package/{rel}")
            info.size = len(data)
            info.mode = mode
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def sri(data: bytes) -> str:
    return "sha512-" + base64.b64encode(hashlib.sha512(data).digest()).decode("ascii")


class FakeRegistry:
    """In-memory npm registry serving tarballs, packuments and search."""

    def __init__(self) -> None:
        self.tarballs: dict[str, bytes] = {}
        self.packuments: dict[str, dict[str, Any]] = {}
        self.search_objects: list[dict[str, Any]] = []
        self.failures: dict[str, list[int]] = {}
        self.requests: list[str] = []
        self.packages: dict[tuple[str, str], dict[str, Any]] = {}

    # --- content ---

    def tarball_url(self, name: str, version: str) -> str:
        return f"{REGISTRY_URL}/{name}/-/{name.rsplit('/', 1)[-1]}-{version}.tgz"

    def publish(
        self,
        name: str,
        version: str,
        files: dict[str, str | bytes] | None = None,
        dependencies: dict[str, str] | None = None,
        scripts: dict[str, str] | None = None,
        bin: dict[str, str] | str | None = None,
    ) -> dict[str, Any]:
        """Add a package; returns its package-lock ``packages`` entry."""
        manifest: dict[str, Any] = {"name": name, "version": version}
        if dependencies:
            manifest["dependencies"] = dependencies
        if scripts:
            manifest["scripts"] = scripts
        if bin:
            manifest["bin"] = bin
        content = {"package.json": json.dumps(manifest, indent=2)}
        content.update(files or {"index.js": f"module.exports = '{name}@{version}';\n"})
        data = build_tarball(content)

        url = self.tarball_url(name, version)
        self.tarballs[url] = data
        entry: dict[str, Any] = {"version": version, "resolved": url, "integrity": sri(data)}
        if dependencies:
            entry["dependencies"] = dependencies
        self.packages[(name, version)] = entry

        packument = self.packuments.setdefault(
            name, {"name": name, "dist-tags": {}, "versions": {}}
        )
        packument["dist-tags"]["latest"] = version
        packument["versions"][version] = {
            **manifest,
            "dist": {"tarball": url, "integrity": entry["integrity"]},
        }
        return entry

    def fingerprint(self, name: str, version: str) -> PackageFingerprint:
        entry = self.packages[(name, version)]
        return PackageFingerprint(
            name=name,
            version=version,
            integrity_hash=entry["integrity"],
            resolved_url=entry["resolved"],
        )

    def resolved(self, name: str, version: str, target: str | None = None) -> ResolvedPackage:
        entry = self.packages[(name, version)]
        return ResolvedPackage(
            fingerprint=self.fingerprint(name, version),
            target=target or f"node_modules/{name}",
            dependencies=sorted(entry.get("dependencies") or {}),
        )

    def fail(self, url: str, *statuses: int) -> None:
        """Answer the next requests to ``url`` with these status codes."""
        self.failures.setdefault(url, []).extend(statuses)

    def downloads(self) -> int:
        return sum(1 for url in self.requests if url.endswith(".tgz"))

    # --- transport ---

    def handler(self, request: httpx.Request) -> httpx.Response:
        url = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        self.requests.append(url)
        pending = self.failures.get(url)
        if pending:
            return httpx.Response(pending.pop(0))
        if url in self.tarballs:
            return httpx.Response(200, content=self.tarballs[url])
        path = request.url.path.lstrip("/")
        if path == "-/v1/search":
            return httpx.Response(200, json={"objects": self.search_objects})
        if path in self.packuments:
            return httpx.Response(200, json=self.packuments[path])
        return httpx.Response(404, json={"error": "Not found"})

    def client(self, offline: bool = False) -> RegistryClient:
        return RegistryClient(
            registry_url=REGISTRY_URL,
            client=httpx.AsyncClient(transport=httpx.MockTransport(self.handler)),
            retry_configs=NO_WAIT_RETRIES,
            offline=offline,
        )

    # --- projects ---

    def write_project(
        self,
        project_dir: Path,
        packages: list[tuple[str, str] | tuple[str, str, str]],
    ) -> Path:
        """Write package.json and a v3 package-lock.json.

        Each item is ``(name, version)`` or ``(name, version, target)``.
        Top-level targets become direct dependencies.
        """
        project_dir.mkdir(parents=True, exist_ok=True)
        lock_packages: dict[str, Any] = {}
        direct: dict[str, str] = {}
        for item in packages:
            name, version = item[0], item[1]
            target = item[2] if len(item) == 3 else f"node_modules/{name}"
            lock_packages[target] = dict(self.packages[(name, version)])
            if target == f"node_modules/{name}":
                direct[name] = version
        manifest = {"name": "app", "version": "1.0.0", "dependencies": direct}
        lock_packages = {"": {"name": "app", "version": "1.0.0", "dependencies": direct}, **lock_packages}
        lock = {"name": "app", "version": "1.0.0", "lockfileVersion": 3, "requires": True,
                "packages": lock_packages}
        (project_dir / "package.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        (project_dir / "package-lock.json").write_text(json.dumps(lock, indent=2), encoding="utf-8")
        return project_dir


class MemoryProvider(BaseCloudProvider):
    """Object store kept in a dict; records uploads. Set ``deny`` to fail every call."""

    name = "memory"

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.uploads: list[str] = []
        self.deny = False

    def _upload_sync(self, local_path: Path, remote_key: str) -> None:
        self._check()
        self.uploads.append(remote_key)
        self.objects[remote_key] = Path(local_path).read_bytes()

    def _download_sync(self, remote_key: str, local_path: Path) -> None:
        self._check()
        if remote_key not in self.objects:
            raise CloudNotFound(f"{remote_key} not found", remote_key)
        Path(local_path).write_bytes(self.objects[remote_key])

    def _delete_sync(self, remote_key: str) -> None:
        self.objects.pop(remote_key, None)

    def _list_sync(self, prefix: str) -> list[str]:
        self._check()
        return sorted(k for k in self.objects if k.startswith(prefix))

    def _size_sync(self, remote_key: str) -> int | None:
        self._check()
        data = self.objects.get(remote_key)
        if data is None:
            raise CloudNotFound(f"{remote_key} not found", remote_key)
        return len(data)

    def _check(self) -> None:
        if self.deny:
            raise CloudAuthError("denied")


# === FIXTURES ===


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def cache_root(tmp_path: Path) -> Path:
    return tmp_path / "cache"


@pytest.fixture
def store(cache_root: Path) -> LocalCacheStore:
    return LocalCacheStore(cache_root)


@pytest.fixture
def package_dir(tmp_path: Path) -> Path:
    """A small unpacked package tree."""
    root = tmp_path / "src-pkg"
    (root / "lib").mkdir(parents=True)
    (root / "package.json").write_text('{"name": "left-pad", "version": "1.3.0"}', encoding="utf-8")
    (root / "index.js").write_text("module.exports = require('./lib/pad');\n", encoding="utf-8")
    (root / "lib" / "pad.js").write_text("module.exports = (s) => s;\n", encoding="utf-8")
    return root


@pytest.fixture
def left_pad() -> PackageFingerprint:
    return PackageFingerprint(
        name="left-pad",
        version="1.3.0",
        integrity_hash="sha512-abc",
        resolved_url="https://registry.npmjs.org/left-pad/-/left-pad-1.3.0.tgz",
    )


@pytest.fixture
def lodash() -> PackageFingerprint:
    return PackageFingerprint(name="lodash", version="4.17.21", integrity_hash="sha512-def")


@pytest.fixture
def memory_provider() -> MemoryProvider:
    return MemoryProvider()
