from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator


class TicketLockRegistry:
    """Hand out one asyncio lock per ticket so updates to a ticket are serialized."""

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}
        self._waiters: dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, ticket_id: int) -> AsyncIterator[None]:
        lock = self._locks.get(ticket_id)
        if lock is None:
            lock = self._locks[ticket_id] = asyncio.Lock()
        self._waiters[ticket_id] = self._waiters.get(ticket_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._waiters[ticket_id] - 1
            if remaining:
                self._waiters[ticket_id] = remaining
            else:
                # last user gone, drop the entry so destroyed tickets do not leak locks
                del self._waiters[ticket_id]
                del self._locks[ticket_id]

    def __len__(self) -> int:
        return len(self._locks)
