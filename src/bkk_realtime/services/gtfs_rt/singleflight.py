"""Request coalescing: at most one in-flight call per key."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class SingleFlight(Generic[K, V]):
    """Shares one running call per key among all concurrent callers.

    The first caller for a key starts the call as a task and records it;
    callers arriving while it runs await the same task and receive the same
    result or the same exception. The record is removed when the task
    settles, whatever the outcome. Waiters are shielded, so a caller that is
    cancelled does not cancel the shared call for the others.
    """

    def __init__(self) -> None:
        self._calls: dict[K, asyncio.Task[V]] = {}

    def in_flight(self, key: K) -> bool:
        return key in self._calls

    async def do(self, key: K, fn: Callable[[], Awaitable[V]]) -> V:
        task = self._calls.get(key)
        if task is None:
            task = asyncio.create_task(self._run(key, fn))
            self._calls[key] = task
        return await asyncio.shield(task)

    async def _run(self, key: K, fn: Callable[[], Awaitable[V]]) -> V:
        try:
            return await fn()
        finally:
            if self._calls.get(key) is asyncio.current_task():
                del self._calls[key]

    def forget(self) -> None:
        """Drop every record; running calls finish but are no longer shared."""
        self._calls.clear()
