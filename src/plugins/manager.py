# src/plugins/manager.py - v1
"""Backend of the ``plugin`` command: manage the plugins directory."""

from __future__ import annotations

import asyncio
import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from flashinstall.core.errors import PluginLoadError, RegistryFetchError
from flashinstall.installer.registry_client import RegistryClient, extract_tarball, verify_integrity
from flashinstall.plugins.loader import PLUGIN_ENTRY, load_plugin
from flashinstall.plugins.models import PluginRegistration
from flashinstall.plugins.registry import STATE_FILE, PluginRegistry

logger = logging.getLogger(__name__)

SEARCH_KEYWORD = "flash-install-plugin"


class PluginSearchHit(BaseModel):
    name: str
    version: str
    description: str = ""


class PluginManager:
    """List, add, remove, toggle and install plugins in ``plugins_dir``."""

    def __init__(self, plugins_dir: Path, registry_client: RegistryClient | None = None) -> None:
        self._dir = Path(plugins_dir).expanduser()
        self._client = registry_client
        self._registry = PluginRegistry(state_file=self._dir / STATE_FILE)
        self._loaded = False

    @property
    def registry(self) -> PluginRegistry:
        self._ensure_loaded()
        return self._registry

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._registry.load_directory(self._dir)
            self._loaded = True

    def list(self) -> list[PluginRegistration]:
        return self.registry.registrations

    def info(self, name: str) -> PluginRegistration:
        return self.registry.get_or_raise(name)

    def enable(self, name: str) -> PluginRegistration:
        return self.registry.enable(name)

    def disable(self, name: str) -> PluginRegistration:
        return self.registry.disable(name)

    def add(self, source: Path) -> PluginRegistration:
        """Validate a plugin file or directory and copy it into the plugins dir.

        Raises:
            PluginLoadError: The source is not a valid plugin.
        """
        source = Path(source).expanduser().resolve()
        spec = load_plugin(source)
        self._dir.mkdir(parents=True, exist_ok=True)
        dest = self._dir / (f"{_safe_name(spec.name)}.py" if source.is_file() else _safe_name(spec.name))
        if dest.exists():
            raise PluginLoadError(spec.name, f"already installed at {dest}")
        if source.is_dir():
            shutil.copytree(source, dest)
        else:
            shutil.copy2(source, dest)
        logger.info("Added plugin %s v%s", spec.name, spec.version)
        return self.registry.register(spec, source=str(dest))

    def remove(self, name: str) -> Path:
        """Delete an installed plugin. Returns the removed path."""
        registration = self.registry.get_or_raise(name)
        path = Path(registration.source)
        if path.is_dir():
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()
        self._registry.unregister(name)
        logger.info("Removed plugin %s", name)
        return path

    async def install(self, package_name: str, version: str | None = None) -> PluginRegistration:
        """Download a plugin package from the registry into the plugins dir.

        Raises:
            RegistryFetchError: Package or version not found, or download failed.
            PluginLoadError: The package does not contain a valid plugin.
        """
        client = self._require_client()
        packument = await client.packument(package_name)
        resolved = version or (packument.get("dist-tags") or {}).get("latest")
        meta = (packument.get("versions") or {}).get(resolved or "")
        if meta is None:
            raise RegistryFetchError(package_name, f"version {version or 'latest'} not found")

        dist = meta.get("dist") or {}
        tarball_url = dist.get("tarball", "")
        data = await client.get_bytes(tarball_url, target=f"{package_name}@{resolved}")
        verify_integrity(data, dist.get("integrity", ""), f"{package_name}@{resolved}")

        self._dir.mkdir(parents=True, exist_ok=True)
        dest = self._dir / _safe_name(package_name)
        staging = Path(tempfile.mkdtemp(prefix=".install-", dir=self._dir))
        try:
            await asyncio.to_thread(extract_tarball, data, staging)
            if not (staging / PLUGIN_ENTRY).is_file():
                raise PluginLoadError(package_name, f"package has no {PLUGIN_ENTRY}")
            spec = load_plugin(staging)
            if dest.exists():
                shutil.rmtree(dest)
            staging.rename(dest)
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        logger.info("Installed plugin %s v%s from the registry", spec.name, spec.version)
        return self.registry.register(spec, source=str(dest))

    async def search(self, query: str = "", size: int = 20) -> list[PluginSearchHit]:
        """Search the registry for packages tagged ``flash-install-plugin``."""
        client = self._require_client()
        text = f"keywords:{SEARCH_KEYWORD} {query}".strip()
        payload: dict[str, Any] = await client.get_json("-/v1/search", {"text": text, "size": size})
        hits: list[PluginSearchHit] = []
        for obj in payload.get("objects", []):
            package = obj.get("package") or {}
            if package.get("name"):
                hits.append(PluginSearchHit(
                    name=package["name"],
                    version=package.get("version", ""),
                    description=package.get("description", ""),
                ))
        return hits

    def _require_client(self) -> RegistryClient:
        if self._client is None:
            raise RuntimeError("A registry client is required for install/search")
        return self._client


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", name.lstrip("@"))
