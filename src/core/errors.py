# src/core/errors.py - v1
"""Error taxonomy shared by all subsystems.

Per-package errors (InvalidPackageSpec, CacheCorruption, RegistryFetchError,
IntegrityMismatch) are isolated by the installer and aggregated. Cloud
errors degrade to a cache miss. Only OrchestratorFatal and a gating
PluginHookError terminate a whole run.
"""

from __future__ import annotations


class FlashInstallError(Exception):
    """Base class for all flash-install errors."""


class InvalidPackageSpec(FlashInstallError):
    """Package name or version is not an exact, resolved specification."""

    def __init__(self, name: str, version: str, reason: str) -> None:
        self.name = name
        self.version = version
        self.reason = reason
        super().__init__(f"Invalid package spec {name!r}@{version!r}: {reason}")


# === CACHE ===


class CacheEntryNotFound(FlashInstallError):
    """No cache entry exists for the requested fingerprint."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Cache entry not found: {key}")


class CacheCorruption(FlashInstallError):
    """Stored content digest does not match the entry on read."""

    def __init__(self, key: str, expected: str, actual: str) -> None:
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Cache entry {key} is corrupt (expected digest {expected[:12]}, got {actual[:12]})"
        )


# === SNAPSHOT ===


class SnapshotNotFound(FlashInstallError):
    """No snapshot archive at the expected location."""


class SnapshotStale(FlashInstallError):
    """Snapshot manifest hash no longer matches the project lockfile."""

    def __init__(self, expected: str, actual: str) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Snapshot is stale: archived manifest {expected[:12]} != current {actual[:12]}"
        )


class SnapshotDrift(FlashInstallError):
    """Installed packages differ from their expected fingerprints."""

    def __init__(self, drifted: list[str]) -> None:
        self.drifted = drifted
        super().__init__(f"Installed tree drifted from manifest: {', '.join(drifted)}")


# === CLOUD ===


class CloudError(FlashInstallError):
    """Base class for remote object-store failures."""

    def __init__(self, message: str, remote_key: str | None = None) -> None:
        self.remote_key = remote_key
        super().__init__(message)


class CloudAuthError(CloudError):
    """Credentials missing, invalid or lacking permission."""


class CloudUnavailable(CloudError):
    """Network failure, throttling or server-side error."""


class CloudNotFound(CloudError):
    """Remote object does not exist (or is not yet visible)."""


# === PLUGINS ===


class PluginLoadError(FlashInstallError):
    """Plugin is malformed, has unmet dependencies, or failed to initialize."""

    def __init__(self, plugin: str, reason: str) -> None:
        self.plugin = plugin
        self.reason = reason
        super().__init__(f"Plugin '{plugin}' could not be loaded: {reason}")


class PluginHookError(FlashInstallError):
    """A plugin hook handler raised."""

    def __init__(self, plugin: str, hook: str, error: BaseException) -> None:
        self.plugin = plugin
        self.hook = hook
        self.error = error
        super().__init__(f"Plugin '{plugin}' failed on {hook}: {error}")


# === INSTALLER ===


class RegistryFetchError(FlashInstallError):
    """Package tarball could not be fetched from the registry."""

    def __init__(self, spec: str, reason: str) -> None:
        self.spec = spec
        self.reason = reason
        super().__init__(f"Failed to fetch {spec}: {reason}")


class IntegrityMismatch(FlashInstallError):
    """Downloaded tarball does not match its lockfile integrity hash."""

    def __init__(self, spec: str, expected: str, actual: str) -> None:
        self.spec = spec
        self.expected = expected
        self.actual = actual
        super().__init__(f"Integrity mismatch for {spec}: expected {expected}, got {actual}")


class OrchestratorFatal(FlashInstallError):
    """Run-level failure: unwritable cache, disk exhaustion, gating hook failure."""


class LifecycleScriptError(FlashInstallError):
    """A package lifecycle script exited non-zero."""

    def __init__(self, spec: str, script: str, exit_code: int, output: str = "") -> None:
        self.spec = spec
        self.script = script
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"{spec}: {script} script exited with code {exit_code}")
