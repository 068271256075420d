from __future__ import annotations

from uuid import UUID

from sqlalchemy import and_, case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_chat.domain.entities.message import Message
from tenant_chat.infrastructure.db.mappers import message as mapper
from tenant_chat.infrastructure.db.models.message import MessageModel


def _between(user_id: UUID, peer_id: UUID):
    return or_(
        and_(MessageModel.sender_id == user_id, MessageModel.receiver_id == peer_id),
        and_(MessageModel.sender_id == peer_id, MessageModel.receiver_id == user_id),
    )


def _involving(user_id: UUID):
    return or_(MessageModel.sender_id == user_id, MessageModel.receiver_id == user_id)


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: UUID, message_id: UUID) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.tenant_id == tenant_id,
            MessageModel.id == message_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_between(
        self, tenant_id: UUID, user_id: UUID, peer_id: UUID
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.tenant_id == tenant_id, _between(user_id, peer_id))
            .order_by(MessageModel.created_at.asc(), MessageModel.id.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def page_between(
        self,
        tenant_id: UUID,
        user_id: UUID,
        peer_id: UUID,
        *,
        limit: int,
        offset: int,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(MessageModel.tenant_id == tenant_id, _between(user_id, peer_id))
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, tenant_id: UUID, receiver_id: UUID) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.tenant_id == tenant_id,
            MessageModel.receiver_id == receiver_id,
            MessageModel.read.is_(False),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def search(self, tenant_id: UUID, user_id: UUID, query: str) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.tenant_id == tenant_id,
                _involving(user_id),
                MessageModel.content.icontains(query, autoescape=True),
            )
            .order_by(MessageModel.created_at.desc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def partners(self, tenant_id: UUID, user_id: UUID) -> set[UUID]:
        counterpart = case(
            (MessageModel.sender_id == user_id, MessageModel.receiver_id),
            else_=MessageModel.sender_id,
        )
        stmt = (
            select(counterpart)
            .where(MessageModel.tenant_id == tenant_id, _involving(user_id))
            .distinct()
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def list_received(self, tenant_id: UUID, receiver_id: UUID) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.tenant_id == tenant_id,
                MessageModel.receiver_id == receiver_id,
            )
            .order_by(MessageModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, message: Message) -> Message:
        model = mapper.entity_to_model(message)
        self._session.add(model)
        await self._session.flush()
        return mapper.model_to_entity(model)

    async def mark_read(self, tenant_id: UUID, message_id: UUID) -> bool:
        stmt = (
            update(MessageModel)
            .where(
                MessageModel.tenant_id == tenant_id,
                MessageModel.id == message_id,
                MessageModel.read.is_(False),
            )
            .values(read=True)
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def delete(self, tenant_id: UUID, message_id: UUID) -> bool:
        stmt = delete(MessageModel).where(
            MessageModel.tenant_id == tenant_id,
            MessageModel.id == message_id,
        )
        result = await self._session.execute(stmt)
        return result.rowcount > 0
