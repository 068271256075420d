from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    tenant_id: UUID
    sender_id: UUID
    receiver_id: UUID
    content: str
    attachment: str | None
    created_at: datetime
    read: bool = False

    def involves(self, user_id: UUID, peer_id: UUID) -> bool:
        """True if the message belongs to the conversation between the two users."""
        return {self.sender_id, self.receiver_id} == {user_id, peer_id}

    def as_read(self) -> Message:
        return replace(self, read=True)
