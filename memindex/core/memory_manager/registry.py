"""Explicit registry of per-agent memory index managers."""

import asyncio

from loguru import logger

from .manager import MemoryIndexManager
from ..errors import ManagerUnavailableError
from ..schema import MemorySearchConfig


class MemoryManagerRegistry:
    """Maps agent ids to opened managers.

    A manager is constructed and opened once per agent under a per-agent
    lock. Construction failures are not cached, so a later ``get`` after a
    configuration change can succeed.
    """

    def __init__(self, config: MemorySearchConfig | None = None):
        self.config = config or MemorySearchConfig()
        self._managers: dict[str, MemoryIndexManager] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, agent_id: str) -> asyncio.Lock:
        lock = self._locks.get(agent_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[agent_id] = lock
        return lock

    def peek(self, agent_id: str) -> MemoryIndexManager | None:
        """Return the manager of an agent without constructing it."""
        return self._managers.get(agent_id)

    def agent_ids(self) -> list[str]:
        return sorted(self._managers)

    async def get(self, agent_id: str = "default") -> MemoryIndexManager:
        """Return the manager of an agent, constructing and opening it on first use.

        Raises:
            ManagerUnavailableError: If the manager cannot be constructed
        """
        manager = self._managers.get(agent_id)
        if manager is not None:
            return manager

        async with self._lock_for(agent_id):
            manager = self._managers.get(agent_id)
            if manager is not None:
                return manager

            try:
                manager = MemoryIndexManager(agent_id=agent_id, config=self.config)
                await manager.open()
            except ManagerUnavailableError as e:
                logger.warning(f"Memory index for agent {agent_id} unavailable: {e}")
                raise
            except Exception as e:
                logger.exception(f"Failed to open memory index for agent {agent_id}: {e}")
                raise ManagerUnavailableError(f"failed to open memory index: {type(e).__name__}: {e}") from e

            self._managers[agent_id] = manager
            return manager

    async def reconfigure(self, config: MemorySearchConfig):
        """Close every manager and use ``config`` for the ones built afterwards."""
        await self.close_all()
        self.config = config

    async def close(self, agent_id: str):
        """Close and forget the manager of an agent."""
        async with self._lock_for(agent_id):
            manager = self._managers.pop(agent_id, None)
            if manager is not None:
                await manager.close()

    async def close_all(self):
        for agent_id in list(self._managers):
            await self.close(agent_id)
