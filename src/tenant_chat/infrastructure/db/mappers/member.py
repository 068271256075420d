from __future__ import annotations

from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.infrastructure.db.models.member import TenantMemberModel


def model_to_entity(model: TenantMemberModel) -> TenantMember:
    return TenantMember(
        tenant_id=model.tenant_id,
        user_id=model.user_id,
        role=model.role,
        joined_at=model.joined_at,
    )


def entity_to_model(entity: TenantMember) -> TenantMemberModel:
    return TenantMemberModel(
        tenant_id=entity.tenant_id,
        user_id=entity.user_id,
        role=entity.role,
        joined_at=entity.joined_at,
    )
