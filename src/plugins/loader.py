# src/plugins/loader.py - v1
"""Discover and import plugin modules from the plugins directory.

A plugin is either ``<name>.py`` or a directory ``<name>/`` holding
``plugin.py``; the module must export ``PLUGIN`` (a mapping or an object
with the same attributes).
"""

from __future__ import annotations

import importlib.util
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from flashinstall.core.errors import PluginLoadError
from flashinstall.plugins.models import PluginSpec

logger = logging.getLogger(__name__)

PLUGIN_ENTRY = "plugin.py"
PLUGIN_EXPORT = "PLUGIN"
_SPEC_FIELDS = tuple(PluginSpec.model_fields) + ("config",)


def discover(plugins_dir: Path) -> list[Path]:
    """Return plugin sources in ``plugins_dir``, sorted by name."""
    plugins_dir = Path(plugins_dir)
    if not plugins_dir.is_dir():
        return []
    found: list[Path] = []
    for path in sorted(plugins_dir.iterdir()):
        if path.name.startswith(("_", ".")):
            continue
        if path.is_file() and path.suffix == ".py":
            found.append(path)
        elif path.is_dir() and (path / PLUGIN_ENTRY).is_file():
            found.append(path)
    return found


def load_plugin(source: Path) -> PluginSpec:
    """Import a plugin source and validate its export.

    Raises:
        PluginLoadError: Import failure, missing export or invalid contract.
    """
    source = Path(source)
    entry = source / PLUGIN_ENTRY if source.is_dir() else source
    label = source.stem if source.is_file() else source.name
    if not entry.is_file():
        raise PluginLoadError(label, f"{entry} not found")

    module_name = "flashinstall_plugin_" + re.sub(r"\W", "_", label)
    spec = importlib.util.spec_from_file_location(module_name, entry)
    if spec is None or spec.loader is None:
        raise PluginLoadError(label, f"cannot import {entry}")
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise PluginLoadError(label, f"import failed: {exc}") from exc

    exported = getattr(module, PLUGIN_EXPORT, None)
    if exported is None:
        raise PluginLoadError(label, f"module does not export {PLUGIN_EXPORT}")
    return validate_plugin(exported, label)


def validate_plugin(exported: Any, label: str = "<plugin>") -> PluginSpec:
    """Validate a ``PLUGIN`` export into a PluginSpec."""
    if isinstance(exported, PluginSpec):
        return exported
    if isinstance(exported, Mapping):
        data = dict(exported)
    else:
        data = {f: getattr(exported, f) for f in _SPEC_FIELDS if hasattr(exported, f)}
    try:
        return PluginSpec.model_validate(data)
    except ValidationError as exc:
        name = data.get("name") or label
        raise PluginLoadError(str(name), _summarize(exc)) from exc


def _summarize(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
