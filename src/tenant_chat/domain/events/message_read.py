from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MessageRead:
    message_id: UUID
    tenant_id: UUID
    sender_id: UUID
    reader_id: UUID
