from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tenant_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def get(self, tenant_id: UUID, message_id: UUID) -> Message | None: ...

    async def list_between(
        self, tenant_id: UUID, user_id: UUID, peer_id: UUID
    ) -> list[Message]:
        """All messages of the conversation, oldest first."""
        ...

    async def page_between(
        self,
        tenant_id: UUID,
        user_id: UUID,
        peer_id: UUID,
        *,
        limit: int,
        offset: int,
    ) -> list[Message]:
        """Window over the conversation, newest first."""
        ...

    async def count_unread(self, tenant_id: UUID, receiver_id: UUID) -> int: ...

    async def search(self, tenant_id: UUID, user_id: UUID, query: str) -> list[Message]: ...

    async def partners(self, tenant_id: UUID, user_id: UUID) -> set[UUID]: ...

    async def list_received(self, tenant_id: UUID, receiver_id: UUID) -> list[Message]: ...


class MessageWriter(Protocol):
    async def add(self, message: Message) -> Message: ...

    async def mark_read(self, tenant_id: UUID, message_id: UUID) -> bool:
        """Flip read to true. Return False if the message was already read."""
        ...

    async def delete(self, tenant_id: UUID, message_id: UUID) -> bool:
        """Return False if nothing was deleted."""
        ...
