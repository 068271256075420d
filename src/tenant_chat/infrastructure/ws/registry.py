"""In-process registry of live connections, one per (tenant, user)."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Protocol
from uuid import UUID

from tenant_chat.domain.value_objects.ids import RegistryKey
from tenant_chat.infrastructure.ws.protocol import OutboundFrame

logger = logging.getLogger(__name__)

CLOSE_REPLACED = 4000


class ConnectionHandle(Protocol):
    async def send(self, frame: OutboundFrame) -> None:
        """Write one frame or raise TransportError."""
        ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class ConnectionRegistry:
    """Maps (tenant_id, user_id) to at most one live connection handle.

    Entries are sharded per tenant. Mutations for one key are serialised by a
    per-key lock that only exists while someone holds or waits for it, so
    registrations of unrelated identities never contend. Lookups read the
    shard dict directly. Meant to be used from a single event loop.
    """

    def __init__(self) -> None:
        self._shards: dict[UUID, dict[UUID, ConnectionHandle]] = {}
        self._locks: dict[RegistryKey, _KeyLock] = {}

    def __len__(self) -> int:
        return sum(len(shard) for shard in self._shards.values())

    @asynccontextmanager
    async def _locked(self, key: RegistryKey) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[key]

    async def register(
        self,
        tenant_id: UUID,
        user_id: UUID,
        handle: ConnectionHandle,
    ) -> None:
        """Install ``handle``; a previous handle for the same identity is closed."""
        async with self._locked((tenant_id, user_id)):
            shard = self._shards.setdefault(tenant_id, {})
            previous = shard.get(user_id)
            shard[user_id] = handle
            if previous is not None and previous is not handle:
                logger.info("Evicting previous connection of %s/%s", tenant_id, user_id)
                await previous.close(code=CLOSE_REPLACED, reason="Replaced by a newer connection")
        logger.debug("Registered %s/%s (total=%d)", tenant_id, user_id, len(self))

    async def unregister(
        self,
        tenant_id: UUID,
        user_id: UUID,
        handle: ConnectionHandle,
    ) -> bool:
        """Remove the entry only if it still points at ``handle``."""
        async with self._locked((tenant_id, user_id)):
            shard = self._shards.get(tenant_id)
            if shard is None or shard.get(user_id) is not handle:
                return False
            del shard[user_id]
            if not shard:
                del self._shards[tenant_id]
        logger.debug("Unregistered %s/%s (total=%d)", tenant_id, user_id, len(self))
        return True

    def lookup(self, tenant_id: UUID, user_id: UUID) -> ConnectionHandle | None:
        shard = self._shards.get(tenant_id)
        if shard is None:
            return None
        return shard.get(user_id)

    def connections(self, tenant_id: UUID) -> list[tuple[UUID, ConnectionHandle]]:
        """Snapshot of the tenant's live connections."""
        return list(self._shards.get(tenant_id, {}).items())
