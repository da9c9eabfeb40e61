# src/installer/registry_client.py - v1
"""Async npm-registry client: tarball download, integrity check, unpack.

Transient failures (timeouts, 429, 5xx, connection errors) are retried with
backoff; anything left over surfaces as RegistryFetchError.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import io
import logging
import tarfile
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx

from flashinstall.core.errors import IntegrityMismatch, RegistryFetchError
from flashinstall.core.models import PackageFingerprint
from flashinstall.installer.retry import RetryConfig, RetryExhausted, with_retry

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY = "https://registry.npmjs.org"
USER_AGENT = "flash-install (python)"
# Strongest first; SRI strings may list several.
SRI_ALGORITHMS = ("sha512", "sha384", "sha256", "sha1")


class RegistryClient:
    """Fetch package tarballs and metadata from an npm-compatible registry."""

    def __init__(
        self,
        registry_url: str = DEFAULT_REGISTRY,
        timeout_s: float = 60.0,
        client: httpx.AsyncClient | None = None,
        retry_configs: dict[str, RetryConfig] | None = None,
        offline: bool = False,
    ) -> None:
        self._registry_url = registry_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
        self._retry_configs = retry_configs
        self._offline = offline

    @property
    def registry_url(self) -> str:
        return self._registry_url

    async def __aenter__(self) -> RegistryClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def tarball_url(self, fingerprint: PackageFingerprint) -> str:
        """Lockfile ``resolved`` URL, or the registry's conventional path."""
        if fingerprint.resolved_url.startswith(("http://", "https://")):
            return fingerprint.resolved_url
        basename = fingerprint.name.rsplit("/", 1)[-1]
        return (
            f"{self._registry_url}/{fingerprint.name}/-/"
            f"{basename}-{fingerprint.version}.tgz"
        )

    async def fetch_tarball(self, fingerprint: PackageFingerprint) -> bytes:
        """Download a tarball and verify it against the lockfile integrity.

        Raises:
            RegistryFetchError: Offline, or the request failed after retries.
            IntegrityMismatch: The bytes do not match ``integrity_hash``.
        """
        spec = fingerprint.spec
        if self._offline:
            raise RegistryFetchError(spec, "offline mode; package not in any cache")

        url = self.tarball_url(fingerprint)
        try:
            data = await with_retry(
                self._get_bytes, url, target=spec, retry_configs=self._retry_configs
            )
        except RetryExhausted as exc:
            raise RegistryFetchError(spec, str(exc.last_error)) from exc

        verify_integrity(data, fingerprint.integrity_hash, spec)
        logger.debug("Downloaded %s (%d bytes)", spec, len(data))
        return data

    async def download(self, fingerprint: PackageFingerprint, dest_dir: Path) -> Path:
        """Fetch and unpack a package; returns the package root directory."""
        data = await self.fetch_tarball(fingerprint)
        try:
            return await asyncio.to_thread(extract_tarball, data, Path(dest_dir))
        except (tarfile.TarError, OSError) as exc:
            if isinstance(exc, OSError) and exc.errno is not None:
                raise
            raise RegistryFetchError(fingerprint.spec, f"bad tarball: {exc}") from exc

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document relative to the registry root."""
        if self._offline:
            raise RegistryFetchError(path, "offline mode")
        url = f"{self._registry_url}/{path.lstrip('/')}"
        try:
            response = await with_retry(
                self._get, url, params, target=path, retry_configs=self._retry_configs
            )
        except RetryExhausted as exc:
            raise RegistryFetchError(path, str(exc.last_error)) from exc
        return response.json()

    async def get_bytes(self, url: str, target: str = "") -> bytes:
        """GET an absolute URL with retries; no integrity check."""
        if self._offline:
            raise RegistryFetchError(target or url, "offline mode")
        try:
            return await with_retry(
                self._get_bytes, url, target=target or url, retry_configs=self._retry_configs
            )
        except RetryExhausted as exc:
            raise RegistryFetchError(target or url, str(exc.last_error)) from exc

    async def packument(self, name: str) -> dict[str, Any]:
        """Full metadata document of a package."""
        return await self.get_json(quote(name, safe="@"))

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        response = await self._client.get(url, params=params)
        response.raise_for_status()
        return response

    async def _get_bytes(self, url: str) -> bytes:
        response = await self._get(url)
        return response.content


def verify_integrity(data: bytes, integrity: str, spec: str = "") -> None:
    """Check bytes against an SRI string (``sha512-<base64>`` ...).

    The strongest algorithm present is used; an empty integrity is accepted.

    Raises:
        IntegrityMismatch: If the digest differs.
    """
    if not integrity:
        return
    candidates: dict[str, list[str]] = {}
    for token in integrity.split():
        algorithm, _, expected = token.partition("-")
        candidates.setdefault(algorithm.lower(), []).append(expected.split("?", 1)[0])

    for algorithm in SRI_ALGORITHMS:
        if algorithm in candidates:
            actual = base64.b64encode(hashlib.new(algorithm, data).digest()).decode("ascii")
            if actual not in candidates[algorithm]:
                raise IntegrityMismatch(spec, integrity, f"{algorithm}-{actual}")
            return
    logger.warning("No supported algorithm in integrity %r for %s; skipping check", integrity, spec)


def extract_tarball(data: bytes, dest_dir: Path) -> Path:
    """Unpack an npm tarball, stripping its single top-level directory.

    Returns:
        ``dest_dir``, now holding the package root.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
        members = []
        for member in tar.getmembers():
            stripped = _strip_first(member.name)
            if not stripped:
                continue
            member.name = stripped
            if member.islnk():
                member.linkname = _strip_first(member.linkname)
            members.append(member)
        tar.extractall(dest_dir, members=members, filter="data")
    return dest_dir


def _strip_first(name: str) -> str:
    parts = name.lstrip("./").split("/", 1)
    return parts[1] if len(parts) == 2 else ""
