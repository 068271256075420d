from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from tenant_chat.application.repositories.member import MemberReader, MemberWriter
from tenant_chat.application.repositories.message import MessageReader, MessageWriter


class UnitOfWork(Protocol):
    members: MemberReader
    members_w: MemberWriter
    messages: MessageReader
    messages_w: MessageWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


UnitOfWorkFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
