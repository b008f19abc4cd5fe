"""Per-aggregate serialization for in-process writers."""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class AggregateLocks:
    """One ``asyncio.Lock`` per aggregate id within this process.

    Locks are held weakly: an entry disappears once no coroutine holds
    or waits on it, so the table only grows with in-flight aggregates.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @asynccontextmanager
    async def hold(self, aggregate_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(aggregate_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[aggregate_id] = lock
        async with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)
