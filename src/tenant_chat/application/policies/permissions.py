from __future__ import annotations

from uuid import UUID

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import AuthzError
from tenant_chat.application.repositories.member import MemberReader
from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.domain.entities.message import Message
from tenant_chat.domain.value_objects.enums import MemberRole


async def assert_tenant_access(
    principal: Principal,
    tenant_id: UUID,
    members: MemberReader,
) -> TenantMember:
    """Raise unless the caller's token and the directory both place them in the tenant."""
    if principal.tenant_id != tenant_id:
        raise AuthzError("Token is not scoped to this tenant")

    member = await members.get(tenant_id, principal.subject_id)
    if member is None:
        raise AuthzError("Not a member of this tenant")
    return member


async def assert_co_tenant(
    tenant_id: UUID,
    sender_id: UUID,
    receiver_id: UUID,
    members: MemberReader,
) -> None:
    if not await members.is_member(tenant_id, sender_id):
        raise AuthzError("Sender is not a member of this tenant")
    if not await members.is_member(tenant_id, receiver_id):
        raise AuthzError("Receiver is not a member of this tenant")


def assert_can_delete(member: TenantMember, message: Message) -> None:
    # Staff as listed in the tenant directory; others only their own messages
    if member.role == MemberRole.STAFF:
        return
    if message.sender_id != member.user_id:
        raise AuthzError("Only the sender or staff can delete a message")
