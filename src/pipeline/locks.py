# src/pipeline/locks.py — v1
"""Per-execution mutual exclusion.

Transitions of one execution serialize on that execution's lock; unrelated
executions never wait on each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class ExecutionLocks:
    """Lazily created ``asyncio.Lock`` per execution id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, execution_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(execution_id, asyncio.Lock())
        self._users[execution_id] = self._users.get(execution_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[execution_id] -= 1
            if self._users[execution_id] == 0:
                # Nobody holds or waits: drop the lock so the map stays small.
                del self._users[execution_id]
                del self._locks[execution_id]

    def locked(self, execution_id: str) -> bool:
        lock = self._locks.get(execution_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
