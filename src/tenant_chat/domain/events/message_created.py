from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message_id: UUID
    tenant_id: UUID
    sender_id: UUID
    receiver_id: UUID
    has_attachment: bool
    created_at: datetime
