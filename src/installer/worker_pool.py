# src/installer/worker_pool.py - v1
"""Bounded asyncio worker pool.

N worker tasks drain one queue; there is no global lock. Each work item is
processed by exactly one worker. OrchestratorFatal stops the pool from
issuing new work (in-flight items finish); cancellation does the same.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Sequence, TypeVar

from flashinstall.config.settings import MAX_CONCURRENCY, MIN_CONCURRENCY
from flashinstall.core.errors import OrchestratorFatal

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PoolResult(Generic[T]):
    """Results indexed by item position."""

    results: dict[int, Any] = field(default_factory=dict)
    errors: dict[int, BaseException] = field(default_factory=dict)
    pending: list[T] = field(default_factory=list)
    fatal: OrchestratorFatal | None = None
    peak_active: int = 0


class WorkerPool:
    """Process items with at most ``concurrency`` in flight."""

    def __init__(self, concurrency: int, cancel_event: asyncio.Event | None = None) -> None:
        if not MIN_CONCURRENCY <= concurrency <= MAX_CONCURRENCY:
            raise ValueError(
                f"concurrency must be between {MIN_CONCURRENCY} and {MAX_CONCURRENCY}"
            )
        self._concurrency = concurrency
        self._cancel = cancel_event or asyncio.Event()

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def run(
        self,
        items: Sequence[T],
        worker: Callable[[T], Awaitable[Any]],
    ) -> PoolResult[T]:
        queue: asyncio.Queue[tuple[int, T]] = asyncio.Queue()
        for index, item in enumerate(items):
            queue.put_nowait((index, item))

        result: PoolResult[T] = PoolResult()
        stop = asyncio.Event()
        active = 0

        async def _drain() -> None:
            nonlocal active
            while not (stop.is_set() or self._cancel.is_set()):
                try:
                    index, item = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                active += 1
                result.peak_active = max(result.peak_active, active)
                try:
                    result.results[index] = await worker(item)
                except OrchestratorFatal as exc:
                    if result.fatal is None:
                        result.fatal = exc
                    stop.set()
                except Exception as exc:
                    result.errors[index] = exc
                finally:
                    active -= 1

        workers = [asyncio.create_task(_drain()) for _ in range(min(self._concurrency, len(items)))]
        await asyncio.gather(*workers)

        while not queue.empty():
            result.pending.append(queue.get_nowait()[1])
        if result.pending:
            logger.info("Worker pool stopped with %d items pending", len(result.pending))
        return result
