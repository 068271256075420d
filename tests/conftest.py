"""Shared test fixtures."""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

import jwt
import pytest

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import TransportError
from tenant_chat.config import settings
from tenant_chat.domain.entities.member import TenantMember
from tenant_chat.domain.entities.message import Message
from tenant_chat.domain.value_objects.enums import ConnectionState, MemberRole
from tenant_chat.infrastructure.ws.protocol import OutboundFrame

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_message(
    *,
    tenant_id: UUID,
    sender_id: UUID,
    receiver_id: UUID,
    content: str = "hello",
    attachment: str | None = None,
    minute: int = 0,
    read: bool = False,
) -> Message:
    return Message(
        id=uuid.uuid4(),
        tenant_id=tenant_id,
        sender_id=sender_id,
        receiver_id=receiver_id,
        content=content,
        attachment=attachment,
        created_at=_BASE_TIME + timedelta(minutes=minute),
        read=read,
    )


def make_token(
    tenant_id: UUID,
    sub: UUID,
    role: str = MemberRole.USER,
    **extra: Any,
) -> str:
    return jwt.encode(
        {"sub": str(sub), "tenant_id": str(tenant_id), "role": str(role), **extra},
        settings.JWT_SECRET,
        algorithm=settings.JWT_ALGORITHM,
    )


@dataclass
class FakeMemberReader:
    _members: dict[tuple[UUID, UUID], TenantMember] = field(default_factory=dict)

    async def get(self, tenant_id: UUID, user_id: UUID) -> TenantMember | None:
        return self._members.get((tenant_id, user_id))

    async def is_member(self, tenant_id: UUID, user_id: UUID) -> bool:
        return (tenant_id, user_id) in self._members


@dataclass
class FakeMemberWriter:
    _reader: FakeMemberReader

    async def add(self, member: TenantMember) -> None:
        self._reader._members[(member.tenant_id, member.user_id)] = member


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    def _conversation(self, tenant_id: UUID, user_id: UUID, peer_id: UUID) -> list[Message]:
        return sorted(
            (m for m in self._messages if m.tenant_id == tenant_id and m.involves(user_id, peer_id)),
            key=lambda m: m.created_at,
        )

    async def get(self, tenant_id: UUID, message_id: UUID) -> Message | None:
        for m in self._messages:
            if m.tenant_id == tenant_id and m.id == message_id:
                return m
        return None

    async def list_between(self, tenant_id: UUID, user_id: UUID, peer_id: UUID) -> list[Message]:
        return self._conversation(tenant_id, user_id, peer_id)

    async def page_between(
        self,
        tenant_id: UUID,
        user_id: UUID,
        peer_id: UUID,
        *,
        limit: int,
        offset: int,
    ) -> list[Message]:
        newest_first = list(reversed(self._conversation(tenant_id, user_id, peer_id)))
        return newest_first[offset:offset + limit]

    async def count_unread(self, tenant_id: UUID, receiver_id: UUID) -> int:
        return sum(
            1 for m in self._messages
            if m.tenant_id == tenant_id and m.receiver_id == receiver_id and not m.read
        )

    async def search(self, tenant_id: UUID, user_id: UUID, query: str) -> list[Message]:
        needle = query.casefold()
        found = [
            m for m in self._messages
            if m.tenant_id == tenant_id
            and user_id in (m.sender_id, m.receiver_id)
            and needle in m.content.casefold()
        ]
        return sorted(found, key=lambda m: m.created_at, reverse=True)

    async def partners(self, tenant_id: UUID, user_id: UUID) -> set[UUID]:
        return {
            m.receiver_id if m.sender_id == user_id else m.sender_id
            for m in self._messages
            if m.tenant_id == tenant_id and user_id in (m.sender_id, m.receiver_id)
        }

    async def list_received(self, tenant_id: UUID, receiver_id: UUID) -> list[Message]:
        return sorted(
            (m for m in self._messages if m.tenant_id == tenant_id and m.receiver_id == receiver_id),
            key=lambda m: m.created_at,
        )


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader

    async def add(self, message: Message) -> Message:
        self._reader._messages.append(message)
        return message

    async def mark_read(self, tenant_id: UUID, message_id: UUID) -> bool:
        for i, m in enumerate(self._reader._messages):
            if m.tenant_id == tenant_id and m.id == message_id and not m.read:
                self._reader._messages[i] = replace(m, read=True)
                return True
        return False

    async def delete(self, tenant_id: UUID, message_id: UUID) -> bool:
        before = len(self._reader._messages)
        self._reader._messages = [
            m for m in self._reader._messages
            if not (m.tenant_id == tenant_id and m.id == message_id)
        ]
        return len(self._reader._messages) < before


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests. Also usable as its own ``async with`` scope."""
    members: FakeMemberReader = field(default_factory=FakeMemberReader)
    members_w: FakeMemberWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    _committed: bool = False
    commits: int = 0

    def __post_init__(self) -> None:
        if self.members_w is None:
            self.members_w = FakeMemberWriter(self.members)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)

    def add_member(
        self,
        tenant_id: UUID,
        user_id: UUID,
        role: str = MemberRole.USER,
    ) -> None:
        self.members._members[(tenant_id, user_id)] = TenantMember(
            tenant_id=tenant_id, user_id=user_id, role=role, joined_at=_BASE_TIME,
        )

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True
        self.commits += 1

    async def rollback(self) -> None:
        pass

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        pass


def fake_uow_factory(uow: FakeUoW):
    return lambda: uow


class FakeConnection:
    """Records frames instead of writing them to a socket."""

    def __init__(self, *, fail_sends: bool = False) -> None:
        self.state = ConnectionState.CONNECTING
        self.tenant_id: UUID | None = None
        self.user_id: UUID | None = None
        self.frames: list[OutboundFrame] = []
        self.close_codes: list[int] = []
        self.fail_sends = fail_sends

    def mark_authenticated(self, tenant_id: UUID, user_id: UUID) -> None:
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.state = ConnectionState.AUTHENTICATED

    def mark_open(self) -> None:
        self.state = ConnectionState.OPEN

    async def send(self, frame: OutboundFrame) -> None:
        if self.fail_sends or self.state is not ConnectionState.OPEN:
            raise TransportError("connection is gone")
        self.frames.append(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        self.close_codes.append(code)

    def of_type(self, frame_type: str) -> list[Any]:
        return [f for f in self.frames if f.type == frame_type]


@dataclass
class FakePublisher:
    events: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    fail: bool = False

    async def publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("redis down")
        self.events.append((event_type, payload))


@pytest.fixture
def tenant_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def alice_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def bob_id() -> UUID:
    return uuid.uuid4()


@pytest.fixture
def uow(tenant_id, alice_id, bob_id) -> FakeUoW:
    uow = FakeUoW()
    uow.add_member(tenant_id, alice_id)
    uow.add_member(tenant_id, bob_id)
    return uow


@pytest.fixture
def alice(tenant_id, alice_id) -> Principal:
    return Principal(tenant_id=tenant_id, subject_id=alice_id)


@pytest.fixture
def bob(tenant_id, bob_id) -> Principal:
    return Principal(tenant_id=tenant_id, subject_id=bob_id)
