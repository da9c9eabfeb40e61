# tests/unit/plugins/test_unit_registry.py - v1
"""Tests for plugins/registry.py - ordering, dependency resolution, persisted state."""

from __future__ import annotations

import json

import pytest

from flashinstall.core.errors import PluginLoadError
from flashinstall.plugins.models import PluginSpec
from flashinstall.plugins.registry import STATE_FILE, PluginRegistry


def _spec(name: str, priority: int = 0, deps: list[str] | None = None) -> PluginSpec:
    return PluginSpec(name=name, version="1.0.0", priority=priority, dependencies=deps or [])


class TestOrdering:
    def test_priority_then_registration_order(self):
        registry = PluginRegistry()
        for name, priority in [("a", 0), ("b", 10), ("c", 0), ("d", 10)]:
            registry.register(_spec(name, priority))
        registry.resolve()
        assert [r.name for r in registry.ordered()] == ["b", "d", "a", "c"]

    def test_config_priority(self):
        spec = PluginSpec.model_validate({"name": "p", "config": {"priority": 5}})
        assert spec.priority == 5


class TestResolve:
    def test_missing_dependency_disables(self):
        registry = PluginRegistry()
        registry.register(_spec("reporter", deps=["metrics"]))
        reasons = registry.resolve()
        assert "metrics" in reasons["reporter"]
        assert registry.ordered() == []

    def test_disable_is_transitive(self):
        registry = PluginRegistry()
        registry.register(_spec("base"))
        registry.register(_spec("mid", deps=["base"]))
        registry.register(_spec("top", deps=["mid"]))
        registry.disable("base")
        assert [r.name for r in registry.ordered()] == []
        registry.enable("base")
        assert sorted(r.name for r in registry.ordered()) == ["base", "mid", "top"]

    def test_failed_init_not_persisted(self, tmp_path):
        state = tmp_path / STATE_FILE
        registry = PluginRegistry(state_file=state)
        registry.register(_spec("flaky"))
        registry.mark_failed("flaky", "init raised: boom")
        assert registry.resolve() == {"flaky": "init raised: boom"}
        assert not state.exists()


class TestState:
    def test_disable_survives_restart(self, tmp_path):
        state = tmp_path / STATE_FILE
        registry = PluginRegistry(state_file=state)
        registry.register(_spec("notify"))
        registry.disable("notify")
        assert json.loads(state.read_text())["disabled"] == ["notify"]

        fresh = PluginRegistry(state_file=state)
        fresh.register(_spec("notify"))
        fresh.resolve()
        assert fresh.get("notify").enabled is False
        assert fresh.get("notify").disabled_reason == "disabled by user"

    def test_unreadable_state_ignored(self, tmp_path):
        state = tmp_path / STATE_FILE
        state.write_text("{not json")
        registry = PluginRegistry(state_file=state)
        registry.register(_spec("p"))
        registry.resolve()
        assert registry.get("p").enabled

    def test_unknown_plugin(self):
        with pytest.raises(PluginLoadError):
            PluginRegistry().enable("ghost")
