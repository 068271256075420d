from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field

from tenant_chat.domain.entities.message import Message


class SendMessageRequest(BaseModel):
    receiver_id: UUID = Field(validation_alias=AliasChoices("receiver_id", "receiverId"))
    content: str
    attachment: str | None = None


class MessageResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    sender_id: UUID
    receiver_id: UUID
    content: str
    attachment: str | None
    created_at: datetime
    read: bool

    model_config = {"from_attributes": True}

    @classmethod
    def from_entity(cls, msg: Message) -> MessageResponse:
        return cls.model_validate(msg, from_attributes=True)

    def to_entity(self) -> Message:
        return Message(**self.model_dump())


class UnreadCountResponse(BaseModel):
    unread_count: int


class PartnersResponse(BaseModel):
    partners: list[UUID]


class InboxResponse(BaseModel):
    """Messages addressed to the caller, keyed by sender id."""

    inbox: dict[UUID, list[MessageResponse]]
