from __future__ import annotations

from tenant_chat.domain.entities.message import Message
from tenant_chat.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        tenant_id=model.tenant_id,
        sender_id=model.sender_id,
        receiver_id=model.receiver_id,
        content=model.content,
        attachment=model.attachment,
        created_at=model.created_at,
        read=model.read,
    )


def entity_to_model(entity: Message) -> MessageModel:
    return MessageModel(
        id=entity.id,
        tenant_id=entity.tenant_id,
        sender_id=entity.sender_id,
        receiver_id=entity.receiver_id,
        content=entity.content,
        attachment=entity.attachment,
        created_at=entity.created_at,
        read=entity.read,
    )
