"""Per-resource advisory locks for state-machine transitions.

Start, poll and delete on the same list are serialized within a process.
Cross-process safety comes from the conditional updates in the list store.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator


class ResourceLockRegistry:
    """Hands out one asyncio.Lock per resource id."""

    def __init__(self):
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, resource_id: str) -> AsyncIterator[None]:
        """Hold the lock for a resource for the duration of the block."""
        lock = self._locks[resource_id]
        self._holders[resource_id] = self._holders.get(resource_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[resource_id] -= 1
            if self._holders[resource_id] == 0:
                # Nobody waiting: drop the lock so the registry does not grow
                del self._holders[resource_id]
                self._locks.pop(resource_id, None)

    def __len__(self) -> int:
        return len(self._locks)
