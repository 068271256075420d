from __future__ import annotations

import uuid
from datetime import datetime, timezone

import pytest

from tenant_chat.application.exceptions import AuthzError, NotFoundError, ValidationError
from tenant_chat.application.ports.clock import TenantMonotonicClock
from tenant_chat.services import message_service
from tests.conftest import make_message


class _FrozenClock:
    def __init__(self, at: datetime) -> None:
        self.at = at

    def now(self) -> datetime:
        return self.at


@pytest.mark.asyncio
async def test_send_message_persists_and_commits(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(
        tenant_id, alice_id, bob_id, "hi bob", None, uow,
    )

    assert msg.content == "hi bob"
    assert msg.sender_id == alice_id
    assert msg.receiver_id == bob_id
    assert msg.read is False
    assert uow._committed is True
    assert await uow.messages.get(tenant_id, msg.id) == msg


@pytest.mark.asyncio
async def test_send_message_keeps_attachment(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(
        tenant_id, alice_id, bob_id, "see file", "https://files.example/a.pdf", uow,
    )
    assert msg.attachment == "https://files.example/a.pdf"


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
async def test_send_message_rejects_blank_content(uow, tenant_id, alice_id, bob_id, content):
    with pytest.raises(ValidationError):
        await message_service.send_message(tenant_id, alice_id, bob_id, content, None, uow)

    assert uow.messages._messages == []
    assert uow._committed is False


@pytest.mark.asyncio
async def test_send_message_to_non_member_is_forbidden(uow, tenant_id, alice_id):
    stranger = uuid.uuid4()

    with pytest.raises(AuthzError):
        await message_service.send_message(tenant_id, alice_id, stranger, "hi", None, uow)

    assert uow.messages._messages == []


@pytest.mark.asyncio
async def test_send_message_across_tenants_is_forbidden(uow, alice_id, bob_id):
    other_tenant = uuid.uuid4()
    uow.add_member(other_tenant, bob_id)

    with pytest.raises(AuthzError):
        await message_service.send_message(other_tenant, alice_id, bob_id, "hi", None, uow)


@pytest.mark.asyncio
async def test_timestamps_strictly_increase_within_tenant(uow, tenant_id, alice_id, bob_id):
    clock = TenantMonotonicClock(_FrozenClock(datetime(2024, 5, 1, tzinfo=timezone.utc)))

    first = await message_service.send_message(
        tenant_id, alice_id, bob_id, "one", None, uow, clock=clock,
    )
    second = await message_service.send_message(
        tenant_id, bob_id, alice_id, "two", None, uow, clock=clock,
    )

    assert second.created_at > first.created_at


@pytest.mark.asyncio
async def test_history_is_ascending_and_scoped_to_the_pair(uow, tenant_id, alice_id, bob_id):
    carol = uuid.uuid4()
    uow.add_member(tenant_id, carol)
    late = make_message(tenant_id=tenant_id, sender_id=bob_id, receiver_id=alice_id, minute=5)
    early = make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id, minute=1)
    other = make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=carol, minute=3)
    uow.messages._messages.extend([late, early, other])

    history = await message_service.get_history(tenant_id, alice_id, bob_id, uow)

    assert [m.id for m in history] == [early.id, late.id]


@pytest.mark.asyncio
async def test_get_page_takes_newest_window_and_returns_it_ascending(
    uow, tenant_id, alice_id, bob_id,
):
    msgs = [
        make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id, minute=i)
        for i in range(5)
    ]
    uow.messages._messages.extend(msgs)

    newest = await message_service.get_page(tenant_id, alice_id, bob_id, 2, 0, uow)
    older = await message_service.get_page(tenant_id, alice_id, bob_id, 2, 2, uow)

    assert [m.id for m in newest] == [msgs[3].id, msgs[4].id]
    assert [m.id for m in older] == [msgs[1].id, msgs[2].id]


@pytest.mark.asyncio
async def test_get_page_edges(uow, tenant_id, alice_id, bob_id):
    uow.messages._messages.append(
        make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id),
    )

    assert await message_service.get_page(tenant_id, alice_id, bob_id, 0, 0, uow) == []
    assert await message_service.get_page(tenant_id, alice_id, bob_id, 10, 50, uow) == []
    with pytest.raises(ValidationError):
        await message_service.get_page(tenant_id, alice_id, bob_id, -1, 0, uow)
    with pytest.raises(ValidationError):
        await message_service.get_page(tenant_id, alice_id, bob_id, 10, -1, uow)


@pytest.mark.asyncio
async def test_mark_read_decrements_unread_count(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(tenant_id, alice_id, bob_id, "ping", None, uow)
    assert await message_service.unread_count(tenant_id, bob_id, uow) == 1

    updated = await message_service.mark_read(tenant_id, msg.id, uow)

    assert updated.read is True
    assert updated.id == msg.id
    assert await message_service.unread_count(tenant_id, bob_id, uow) == 0


@pytest.mark.asyncio
async def test_mark_read_is_idempotent(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(tenant_id, alice_id, bob_id, "ping", None, uow)
    await message_service.mark_read(tenant_id, msg.id, uow)
    commits = uow.commits

    again = await message_service.mark_read(tenant_id, msg.id, uow)

    assert again.read is True
    assert uow.commits == commits


@pytest.mark.asyncio
async def test_mark_read_unknown_message(uow, tenant_id):
    with pytest.raises(NotFoundError):
        await message_service.mark_read(tenant_id, uuid.uuid4(), uow)


@pytest.mark.asyncio
async def test_mark_read_does_not_cross_tenants(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(tenant_id, alice_id, bob_id, "ping", None, uow)

    with pytest.raises(NotFoundError):
        await message_service.mark_read(uuid.uuid4(), msg.id, uow)


@pytest.mark.asyncio
async def test_search_is_case_insensitive_and_newest_first(uow, tenant_id, alice_id, bob_id):
    old = make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id,
                       content="Invoice for March", minute=1)
    new = make_message(tenant_id=tenant_id, sender_id=bob_id, receiver_id=alice_id,
                       content="the invoice is attached", minute=2)
    noise = make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id,
                         content="lunch?", minute=3)
    uow.messages._messages.extend([old, new, noise])

    found = await message_service.search(tenant_id, alice_id, "  INVOICE ", uow)

    assert [m.id for m in found] == [new.id, old.id]


@pytest.mark.asyncio
async def test_search_requires_a_query(uow, tenant_id, alice_id):
    with pytest.raises(ValidationError):
        await message_service.search(tenant_id, alice_id, "   ", uow)


@pytest.mark.asyncio
async def test_partners_and_inbox(uow, tenant_id, alice_id, bob_id):
    carol = uuid.uuid4()
    uow.add_member(tenant_id, carol)
    from_bob_1 = make_message(tenant_id=tenant_id, sender_id=bob_id, receiver_id=alice_id, minute=1)
    from_carol = make_message(tenant_id=tenant_id, sender_id=carol, receiver_id=alice_id, minute=2)
    from_bob_2 = make_message(tenant_id=tenant_id, sender_id=bob_id, receiver_id=alice_id, minute=3)
    to_bob = make_message(tenant_id=tenant_id, sender_id=alice_id, receiver_id=bob_id, minute=4)
    uow.messages._messages.extend([from_bob_2, to_bob, from_carol, from_bob_1])

    assert await message_service.partners(tenant_id, alice_id, uow) == {bob_id, carol}

    inbox = await message_service.inbox(tenant_id, alice_id, uow)
    assert set(inbox) == {bob_id, carol}
    assert [m.id for m in inbox[bob_id]] == [from_bob_1.id, from_bob_2.id]
    assert [m.id for m in inbox[carol]] == [from_carol.id]


@pytest.mark.asyncio
async def test_delete_twice_fails_the_second_time(uow, tenant_id, alice_id, bob_id):
    msg = await message_service.send_message(tenant_id, alice_id, bob_id, "oops", None, uow)

    await message_service.delete_message(tenant_id, msg.id, uow)

    assert await message_service.get_history(tenant_id, alice_id, bob_id, uow) == []
    with pytest.raises(NotFoundError):
        await message_service.delete_message(tenant_id, msg.id, uow)
