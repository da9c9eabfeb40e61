# src/plugins/dispatcher.py - v1
"""Ordered, fault-isolated hook dispatch.

Handlers for one hook point run strictly one after another in registry
order. A raising handler is logged, recorded and reported through
``pluginError``; the chain then continues with the next plugin. On gating
hook points the failure is re-raised as PluginHookError.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any

from flashinstall.core.errors import PluginHookError, PluginLoadError
from flashinstall.plugins.hooks import GATING_HOOKS, HookPoint
from flashinstall.plugins.models import DispatchResult, Handler, HookContext
from flashinstall.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)


class HookDispatcher:
    """Invoke plugin handlers for hook points."""

    def __init__(self, registry: PluginRegistry | None = None) -> None:
        self._registry = registry if registry is not None else PluginRegistry()
        self._initialized: list[str] = []

    @property
    def registry(self) -> PluginRegistry:
        return self._registry

    async def dispatch(self, hook: HookPoint, context: HookContext) -> DispatchResult:
        """Run every enabled handler for ``hook``.

        Raises:
            PluginHookError: A handler of a gating hook point raised.
        """
        result = DispatchResult(hook=hook)
        for registration in self._registry.ordered():
            handler = registration.hooks.get(hook)
            if handler is None:
                continue
            result.invoked.append(registration.name)
            try:
                outcome = await _invoke(handler, context)
            except Exception as exc:
                logger.warning(
                    "Plugin '%s' failed on %s: %s", registration.name, hook.value, exc
                )
                result.errors[registration.name] = str(exc)
                if hook is not HookPoint.PLUGIN_ERROR:
                    await self.dispatch(
                        HookPoint.PLUGIN_ERROR,
                        context.with_error(exc, plugin=registration.name, hook=hook.value),
                    )
                if hook in GATING_HOOKS:
                    raise PluginHookError(registration.name, hook.value, exc) from exc
                continue
            if outcome is False:
                logger.info("Plugin '%s' vetoed %s", registration.name, hook.value)
                result.vetoed_by.append(registration.name)
        return result

    async def init_all(self, context: HookContext) -> list[PluginLoadError]:
        """Call each enabled plugin's ``init``; disable the ones that fail.

        Dependants of a failed plugin are disabled through re-resolution and
        get their ``cleanup`` called if they were already initialized.
        """
        errors: list[PluginLoadError] = []
        for registration in self._registry.ordered():
            if registration.init is not None:
                try:
                    ok = await _invoke(registration.init, context)
                except Exception as exc:
                    ok = False
                    reason = f"init raised: {exc}"
                else:
                    reason = "init returned False"
                if ok is False:
                    error = PluginLoadError(registration.name, reason)
                    logger.warning("%s", error)
                    errors.append(error)
                    self._registry.mark_failed(registration.name, reason)
                    continue
            self._initialized.append(registration.name)

        if errors:
            self._registry.resolve()
            for name in list(self._initialized):
                registration = self._registry.get(name)
                if registration is not None and not registration.enabled:
                    await self._cleanup_one(name, context)
        return errors

    async def cleanup_all(self, context: HookContext) -> None:
        """Best-effort ``cleanup`` of every initialized plugin, in reverse order."""
        for name in reversed(list(self._initialized)):
            await self._cleanup_one(name, context)

    async def _cleanup_one(self, name: str, context: HookContext) -> None:
        if name in self._initialized:
            self._initialized.remove(name)
        registration = self._registry.get(name)
        if registration is None or registration.cleanup is None:
            return
        try:
            await _invoke(registration.cleanup, context)
        except Exception as exc:
            logger.warning("Plugin '%s' cleanup failed: %s", name, exc)


async def _invoke(handler: Handler, context: HookContext) -> Any:
    outcome = handler(context)
    if inspect.isawaitable(outcome):
        outcome = await outcome
    return outcome
