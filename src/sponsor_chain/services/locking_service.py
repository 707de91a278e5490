"""Per-agent serialization of approval and hierarchy writes."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class AgentLockManager:
    """In-process lock registry keyed by agent id.

    Every operation touching an agent's approvals or hierarchy runs while
    holding that agent's lock, so a ``mark_paid`` and a concurrent slot
    write cannot interleave their gate check and update. Different agents
    never contend. Locks are dropped from the registry once no task holds
    or waits on them.

    Cross-process serialization comes from the row and advisory locks taken
    inside the transaction (see ``database.acquire_agent_xact_lock``).
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, agent_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[agent_id] = lock
        self._users[agent_id] = self._users.get(agent_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[agent_id] -= 1
            if self._users[agent_id] == 0:
                del self._users[agent_id]
                del self._locks[agent_id]

    def is_held(self, agent_id: str) -> bool:
        lock = self._locks.get(agent_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
