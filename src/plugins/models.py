# src/plugins/models.py - v1
"""Plugin contract and dispatch models."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from flashinstall.core.models import PackageFingerprint
from flashinstall.plugins.hooks import HookPoint

Handler = Callable[..., Any]


class HookContext(BaseModel):
    """Read-only view handed to every hook handler.

    Handlers influence the run only through their return value: ``False``
    from a pre-stage hook vetoes that stage.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    operation: str = ""
    project_dir: Path | None = None
    node_modules_dir: Path | None = None
    package_manager: str = "npm"
    package: PackageFingerprint | None = None
    use_cache: bool = True
    cloud_enabled: bool = False
    offline: bool = False
    error: BaseException | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def for_package(self, package: PackageFingerprint) -> HookContext:
        return self.model_copy(update={"package": package, "error": None})

    def with_error(self, error: BaseException, **extra: Any) -> HookContext:
        return self.model_copy(update={"error": error, "extra": {**self.extra, **extra}})


class PluginSpec(BaseModel):
    """Validated form of a plugin module's ``PLUGIN`` export.

    Priority may be given at top level or as ``config.priority``.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str = Field(min_length=1)
    version: str = "0.0.0"
    description: str = ""
    priority: int = 0
    dependencies: list[str] = Field(default_factory=list)
    hooks: dict[HookPoint, Handler] = Field(default_factory=dict)
    init: Handler | None = None
    cleanup: Handler | None = None

    @model_validator(mode="before")
    @classmethod
    def lift_config_priority(cls, data: Any) -> Any:
        if isinstance(data, dict):
            config = data.get("config") or {}
            if "priority" not in data and isinstance(config, dict) and "priority" in config:
                data = {**data, "priority": config["priority"]}
        return data

    @field_validator("dependencies")
    @classmethod
    def dedupe_dependencies(cls, v: list[str]) -> list[str]:  # noqa: N805
        return sorted(set(v))


class PluginRegistration(BaseModel):
    """A loaded plugin and its run-time state."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    version: str
    description: str = ""
    priority: int = 0
    dependencies: frozenset[str] = frozenset()
    hooks: dict[HookPoint, Handler] = Field(default_factory=dict)
    init: Handler | None = None
    cleanup: Handler | None = None
    enabled: bool = True
    registration_order: int
    source: str = ""
    disabled_reason: str | None = None

    @property
    def sort_key(self) -> tuple[int, int]:
        return (-self.priority, self.registration_order)


class DispatchResult(BaseModel):
    """What happened during one dispatch of a hook point."""

    hook: HookPoint
    invoked: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)
    vetoed_by: list[str] = Field(default_factory=list)

    @property
    def vetoed(self) -> bool:
        return bool(self.vetoed_by)
