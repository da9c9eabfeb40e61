# tests/unit/plugins/test_unit_dispatcher.py - v1
"""Tests for plugins/dispatcher.py - order, isolation, gating, vetoes, init/cleanup."""

from __future__ import annotations

import pytest

from flashinstall.core.errors import PluginHookError
from flashinstall.plugins.dispatcher import HookDispatcher
from flashinstall.plugins.hooks import HookPoint
from flashinstall.plugins.models import HookContext, PluginSpec
from flashinstall.plugins.registry import PluginRegistry


def _boom(ctx):
    raise RuntimeError("boom")


@pytest.fixture
def calls():
    return []


def _dispatcher(*specs: PluginSpec) -> HookDispatcher:
    registry = PluginRegistry()
    for spec in specs:
        registry.register(spec)
    registry.resolve()
    return HookDispatcher(registry)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_order_and_async_handlers(self, calls):
        async def late(ctx):
            calls.append("late")

        dispatcher = _dispatcher(
            PluginSpec(name="late", hooks={HookPoint.POST_INSTALL: late}),
            PluginSpec(name="early", priority=5, hooks={HookPoint.POST_INSTALL: lambda ctx: calls.append("early")}),
        )
        result = await dispatcher.dispatch(HookPoint.POST_INSTALL, HookContext(operation="install"))
        assert calls == ["early", "late"]
        assert result.invoked == ["early", "late"]

    @pytest.mark.asyncio
    async def test_failure_isolated_and_reported(self, calls):
        dispatcher = _dispatcher(
            PluginSpec(name="bad", priority=1, hooks={HookPoint.POST_INSTALL: _boom}),
            PluginSpec(name="good", hooks={
                HookPoint.POST_INSTALL: lambda ctx: calls.append("good"),
                HookPoint.PLUGIN_ERROR: lambda ctx: calls.append(("error", ctx.extra["plugin"], str(ctx.error))),
            }),
        )
        result = await dispatcher.dispatch(HookPoint.POST_INSTALL, HookContext())
        assert result.errors == {"bad": "boom"}
        assert calls == [("error", "bad", "boom"), "good"]

    @pytest.mark.asyncio
    async def test_failing_plugin_error_handler_does_not_recurse(self):
        dispatcher = _dispatcher(PluginSpec(name="bad", hooks={
            HookPoint.POST_INSTALL: _boom,
            HookPoint.PLUGIN_ERROR: _boom,
        }))
        result = await dispatcher.dispatch(HookPoint.POST_INSTALL, HookContext())
        assert "bad" in result.errors

    @pytest.mark.asyncio
    async def test_gating_hook_raises(self, calls):
        dispatcher = _dispatcher(
            PluginSpec(name="gate", priority=1, hooks={HookPoint.PRE_INSTALL: _boom}),
            PluginSpec(name="after", hooks={HookPoint.PRE_INSTALL: lambda ctx: calls.append("after")}),
        )
        with pytest.raises(PluginHookError) as exc_info:
            await dispatcher.dispatch(HookPoint.PRE_INSTALL, HookContext())
        assert exc_info.value.plugin == "gate"
        assert calls == []

    @pytest.mark.asyncio
    async def test_veto(self):
        dispatcher = _dispatcher(
            PluginSpec(name="policy", hooks={HookPoint.PRE_PACKAGE_INSTALL: lambda ctx: False}),
            PluginSpec(name="neutral", hooks={HookPoint.PRE_PACKAGE_INSTALL: lambda ctx: None}),
        )
        result = await dispatcher.dispatch(HookPoint.PRE_PACKAGE_INSTALL, HookContext())
        assert result.vetoed
        assert result.vetoed_by == ["policy"]

    @pytest.mark.asyncio
    async def test_disabled_plugin_skipped(self, calls):
        dispatcher = _dispatcher(PluginSpec(name="off", hooks={HookPoint.POST_INSTALL: lambda ctx: calls.append(1)}))
        dispatcher.registry.disable("off")
        await dispatcher.dispatch(HookPoint.POST_INSTALL, HookContext())
        assert calls == []


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_failed_init_disables_dependants(self, calls):
        dispatcher = _dispatcher(
            PluginSpec(name="base", priority=10, init=_boom),
            PluginSpec(
                name="child", dependencies=["base"],
                init=lambda ctx: calls.append("init child"),
                cleanup=lambda ctx: calls.append("cleanup child"),
            ),
            PluginSpec(name="solo", init=lambda ctx: True, cleanup=lambda ctx: calls.append("cleanup solo")),
        )
        errors = await dispatcher.init_all(HookContext())
        assert [e.plugin for e in errors] == ["base"]
        assert not dispatcher.registry.get("child").enabled
        assert "cleanup child" in calls

        await dispatcher.cleanup_all(HookContext())
        assert calls[-1] == "cleanup solo"

    @pytest.mark.asyncio
    async def test_init_returning_false(self):
        dispatcher = _dispatcher(PluginSpec(name="no", init=lambda ctx: False))
        errors = await dispatcher.init_all(HookContext())
        assert errors[0].reason == "init returned False"
        assert dispatcher.registry.ordered() == []

    @pytest.mark.asyncio
    async def test_cleanup_errors_swallowed(self):
        dispatcher = _dispatcher(PluginSpec(name="p", cleanup=_boom))
        await dispatcher.init_all(HookContext())
        await dispatcher.cleanup_all(HookContext())
