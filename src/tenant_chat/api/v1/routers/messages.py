from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from tenant_chat.api.deps import BrokerDep, TenantMemberDep, TenantPrincipal, UoWDep
from tenant_chat.api.v1.schemas.message import (
    InboxResponse,
    MessageResponse,
    PartnersResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from tenant_chat.application.policies.permissions import assert_can_delete
from tenant_chat.services import message_service

router = APIRouter(prefix="/api/v1/tenants/{tenant_id}/messages", tags=["messages"])


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    tenant_id: UUID,
    body: SendMessageRequest,
    principal: TenantPrincipal,
    uow: UoWDep,
    broker: BrokerDep,
) -> MessageResponse:
    msg = await message_service.send_message(
        tenant_id,
        principal.subject_id,
        body.receiver_id,
        body.content,
        body.attachment,
        uow,
    )
    await broker.deliver_message(msg)
    return MessageResponse.from_entity(msg)


@router.get("/conversations/{peer_id}", response_model=list[MessageResponse])
async def get_history(
    tenant_id: UUID,
    peer_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
) -> list[MessageResponse]:
    messages = await message_service.get_history(tenant_id, principal.subject_id, peer_id, uow)
    return [MessageResponse.from_entity(m) for m in messages]


@router.get("/conversations/{peer_id}/page", response_model=list[MessageResponse])
async def get_page(
    tenant_id: UUID,
    peer_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> list[MessageResponse]:
    messages = await message_service.get_page(
        tenant_id, principal.subject_id, peer_id, limit, offset, uow,
    )
    return [MessageResponse.from_entity(m) for m in messages]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    tenant_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
) -> UnreadCountResponse:
    count = await message_service.unread_count(tenant_id, principal.subject_id, uow)
    return UnreadCountResponse(unread_count=count)


@router.get("/partners", response_model=PartnersResponse)
async def partners(
    tenant_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
) -> PartnersResponse:
    found = await message_service.partners(tenant_id, principal.subject_id, uow)
    return PartnersResponse(partners=sorted(found, key=str))


@router.get("/search", response_model=list[MessageResponse])
async def search(
    tenant_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
    q: str = Query(""),
) -> list[MessageResponse]:
    messages = await message_service.search(tenant_id, principal.subject_id, q, uow)
    return [MessageResponse.from_entity(m) for m in messages]


@router.get("/inbox", response_model=InboxResponse)
async def inbox(
    tenant_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
) -> InboxResponse:
    grouped = await message_service.inbox(tenant_id, principal.subject_id, uow)
    return InboxResponse(
        inbox={
            sender: [MessageResponse.from_entity(m) for m in msgs]
            for sender, msgs in grouped.items()
        },
    )


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_read(
    tenant_id: UUID,
    message_id: UUID,
    principal: TenantPrincipal,
    uow: UoWDep,
    broker: BrokerDep,
) -> MessageResponse:
    msg = await message_service.mark_read(tenant_id, message_id, uow)
    await broker.notify_read(msg, principal.subject_id)
    return MessageResponse.from_entity(msg)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    tenant_id: UUID,
    message_id: UUID,
    member: TenantMemberDep,
    uow: UoWDep,
) -> Response:
    msg = await message_service.get_message(tenant_id, message_id, uow)
    assert_can_delete(member, msg)
    await message_service.delete_message(tenant_id, message_id, uow)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
