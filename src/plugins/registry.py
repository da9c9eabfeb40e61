# src/plugins/registry.py - v1
"""Plugin registry: registration, dependency resolution, enable/disable.

Plugins are registered once per run. Dispatch order is priority descending,
then registration order. A plugin is active only if all of its declared
dependencies are registered and active themselves; resolution disables
dependants transitively and never leaves a plugin partially enabled.
Explicit enable/disable choices persist in ``plugins.json``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from flashinstall.core.errors import PluginLoadError
from flashinstall.plugins.loader import discover, load_plugin
from flashinstall.plugins.models import PluginRegistration, PluginSpec

logger = logging.getLogger(__name__)

STATE_FILE = "plugins.json"


class PluginRegistry:
    """Registry of loaded plugins."""

    def __init__(self, state_file: Path | None = None) -> None:
        self._plugins: dict[str, PluginRegistration] = {}
        self._order = 0
        self._state_file = Path(state_file) if state_file else None
        self._user_disabled: set[str] = self._load_state()
        self._failed: dict[str, str] = {}

    @property
    def names(self) -> list[str]:
        """Sorted names of all registered plugins, enabled or not."""
        return sorted(self._plugins)

    @property
    def registrations(self) -> list[PluginRegistration]:
        return sorted(self._plugins.values(), key=lambda r: r.sort_key)

    def register(self, spec: PluginSpec, source: str = "") -> PluginRegistration:
        """Register a validated plugin. Call resolve() once all are in."""
        if spec.name in self._plugins:
            logger.warning("Overwriting existing plugin: %s", spec.name)
        registration = PluginRegistration(
            name=spec.name,
            version=spec.version,
            description=spec.description,
            priority=spec.priority,
            dependencies=frozenset(spec.dependencies),
            hooks=dict(spec.hooks),
            init=spec.init,
            cleanup=spec.cleanup,
            enabled=spec.name not in self._user_disabled,
            registration_order=self._order,
            source=source,
        )
        self._order += 1
        self._plugins[spec.name] = registration
        logger.debug("Registered plugin: %s v%s", spec.name, spec.version)
        return registration

    def load_directory(self, plugins_dir: Path) -> list[PluginLoadError]:
        """Load every plugin found in a directory, then resolve.

        Returns:
            Load errors of the plugins that were skipped.
        """
        errors: list[PluginLoadError] = []
        for source in discover(plugins_dir):
            try:
                self.register(load_plugin(source), source=str(source))
            except PluginLoadError as exc:
                logger.warning("%s", exc)
                errors.append(exc)
        self.resolve()
        logger.info(
            "Registry loaded %d plugins (%d enabled)",
            len(self._plugins), len(self.ordered()),
        )
        return errors

    def resolve(self) -> dict[str, str]:
        """Recompute enabled state to a fixed point.

        Returns:
            Mapping of disabled plugin name -> reason.
        """
        reasons: dict[str, str] = {}
        for name in self._plugins:
            if name in self._user_disabled:
                reasons[name] = "disabled by user"
            elif name in self._failed:
                reasons[name] = self._failed[name]

        changed = True
        while changed:
            changed = False
            for name, reg in self._plugins.items():
                if name in reasons:
                    continue
                missing = sorted(
                    d for d in reg.dependencies if d not in self._plugins or d in reasons
                )
                if missing:
                    reasons[name] = f"missing or disabled dependencies: {', '.join(missing)}"
                    changed = True

        for name, reg in self._plugins.items():
            reg.enabled = name not in reasons
            reg.disabled_reason = reasons.get(name)
            if name in reasons and name not in self._user_disabled:
                logger.warning("Plugin '%s' disabled: %s", name, reasons[name])
        return reasons

    def ordered(self) -> list[PluginRegistration]:
        """Enabled plugins in dispatch order."""
        return [r for r in self.registrations if r.enabled]

    def get(self, name: str) -> PluginRegistration | None:
        return self._plugins.get(name)

    def get_or_raise(self, name: str) -> PluginRegistration:
        registration = self._plugins.get(name)
        if registration is None:
            raise PluginLoadError(name, "not installed")
        return registration

    def enable(self, name: str) -> PluginRegistration:
        registration = self.get_or_raise(name)
        self._user_disabled.discard(name)
        self._save_state()
        self.resolve()
        return registration

    def disable(self, name: str) -> PluginRegistration:
        registration = self.get_or_raise(name)
        self._user_disabled.add(name)
        self._save_state()
        self.resolve()
        return registration

    def mark_failed(self, name: str, reason: str) -> None:
        """Disable a plugin for this run (failed init) without persisting it."""
        self._failed[name] = reason

    def unregister(self, name: str) -> None:
        self._plugins.pop(name, None)
        self._failed.pop(name, None)
        if name in self._user_disabled:
            self._user_disabled.discard(name)
            self._save_state()
        self.resolve()

    # --- persisted state ---

    def _load_state(self) -> set[str]:
        if self._state_file is None or not self._state_file.is_file():
            return set()
        try:
            data = json.loads(self._state_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable plugin state %s: %s", self._state_file, exc)
            return set()
        return set(data.get("disabled", []))

    def _save_state(self) -> None:
        if self._state_file is None:
            return
        self._state_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {"disabled": sorted(self._user_disabled)}
        self._state_file.write_text(json.dumps(payload, indent=2), encoding="utf-8")
