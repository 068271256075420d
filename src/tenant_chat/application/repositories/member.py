from __future__ import annotations

from typing import Protocol
from uuid import UUID

from tenant_chat.domain.entities.member import TenantMember


class MemberReader(Protocol):
    async def get(self, tenant_id: UUID, user_id: UUID) -> TenantMember | None: ...

    async def is_member(self, tenant_id: UUID, user_id: UUID) -> bool: ...


class MemberWriter(Protocol):
    async def add(self, member: TenantMember) -> None: ...
