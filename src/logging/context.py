# src/logging/context.py - v2
"""Contextual logging support: attach run_id, operation and package to log records.

Context variables are task-local, so every installer worker carries its own
package value without locking.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)
_package: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "package", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    run_id: str | None = None
    operation: str | None = None
    package: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        run_id=_run_id.get(),
        operation=_operation.get(),
        package=_package.get(),
    )


def set_run_context(run_id: str, operation: str) -> None:
    """Set run-level context (called once per CLI operation)."""
    _run_id.set(run_id)
    _operation.set(operation)


def set_package_context(package: str | None) -> None:
    """Set package-level context (called by each installer worker)."""
    _package.set(package)


def clear_context() -> None:
    """Reset all context variables."""
    _run_id.set(None)
    _operation.set(None)
    _package.set(None)
