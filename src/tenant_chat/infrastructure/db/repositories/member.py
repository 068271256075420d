from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.infrastructure.db.mappers import member as mapper
from tenant_chat.infrastructure.db.models.member import TenantMemberModel


class MemberReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, tenant_id: UUID, user_id: UUID) -> TenantMember | None:
        stmt = select(TenantMemberModel).where(
            TenantMemberModel.tenant_id == tenant_id,
            TenantMemberModel.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def is_member(self, tenant_id: UUID, user_id: UUID) -> bool:
        stmt = (
            select(TenantMemberModel.id)
            .where(
                TenantMemberModel.tenant_id == tenant_id,
                TenantMemberModel.user_id == user_id,
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None


class MemberWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, member: TenantMember) -> None:
        model = mapper.entity_to_model(member)
        self._session.add(model)
        await self._session.flush()
