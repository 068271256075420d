from __future__ import annotations

import uuid
from collections import defaultdict

from tenant_chat.application.exceptions import NotFoundError, ValidationError
from tenant_chat.application.policies.permissions import assert_co_tenant
from tenant_chat.application.ports.clock import TenantMonotonicClock
from tenant_chat.application.uow import UnitOfWork
from tenant_chat.domain.entities.message import Message

_clock = TenantMonotonicClock()


async def send_message(
    tenant_id: uuid.UUID,
    sender_id: uuid.UUID,
    receiver_id: uuid.UUID,
    content: str,
    attachment: str | None,
    uow: UnitOfWork,
    *,
    clock: TenantMonotonicClock | None = None,
) -> Message:
    """Persist a new message and return the stored record.

    Raises ValidationError for blank content and AuthzError when either
    party is not a member of the tenant.
    """
    if not content or not content.strip():
        raise ValidationError("Message content must not be empty")

    await assert_co_tenant(tenant_id, sender_id, receiver_id, uow.members)

    msg = Message(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        attachment=attachment,
        created_at=(clock or _clock).now_for(tenant_id),
        read=False,
    )
    msg = await uow.messages_w.add(msg)
    await uow.commit()
    return msg


async def get_message(
    tenant_id: uuid.UUID,
    message_id: uuid.UUID,
    uow: UnitOfWork,
) -> Message:
    msg = await uow.messages.get(tenant_id, message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    return msg


async def get_history(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    peer_id: uuid.UUID,
    uow: UnitOfWork,
) -> list[Message]:
    return await uow.messages.list_between(tenant_id, user_id, peer_id)


async def get_page(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    peer_id: uuid.UUID,
    limit: int,
    offset: int,
    uow: UnitOfWork,
) -> list[Message]:
    """Return one page of the conversation.

    Pages are cut newest-first (offset 0 is the most recent window) and each
    page is returned oldest-first, ready to be prepended to a rendered list.
    """
    if limit < 0 or offset < 0:
        raise ValidationError("limit and offset must not be negative")
    if limit == 0:
        return []
    window = await uow.messages.page_between(
        tenant_id, user_id, peer_id, limit=limit, offset=offset,
    )
    return list(reversed(window))


async def mark_read(
    tenant_id: uuid.UUID,
    message_id: uuid.UUID,
    uow: UnitOfWork,
) -> Message:
    msg = await get_message(tenant_id, message_id, uow)
    if msg.read:
        return msg

    await uow.messages_w.mark_read(tenant_id, message_id)
    await uow.commit()
    return msg.as_read()


async def unread_count(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> int:
    return await uow.messages.count_unread(tenant_id, user_id)


async def search(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    query: str,
    uow: UnitOfWork,
) -> list[Message]:
    if not query or not query.strip():
        raise ValidationError("Missing search query")
    return await uow.messages.search(tenant_id, user_id, query.strip())


async def partners(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> set[uuid.UUID]:
    return await uow.messages.partners(tenant_id, user_id)


async def inbox(
    tenant_id: uuid.UUID,
    user_id: uuid.UUID,
    uow: UnitOfWork,
) -> dict[uuid.UUID, list[Message]]:
    """Messages addressed to the user, grouped by sender, oldest first."""
    grouped: dict[uuid.UUID, list[Message]] = defaultdict(list)
    for msg in await uow.messages.list_received(tenant_id, user_id):
        grouped[msg.sender_id].append(msg)
    return dict(grouped)


async def delete_message(
    tenant_id: uuid.UUID,
    message_id: uuid.UUID,
    uow: UnitOfWork,
) -> None:
    deleted = await uow.messages_w.delete(tenant_id, message_id)
    if not deleted:
        raise NotFoundError("Message not found")
    await uow.commit()
