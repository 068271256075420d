"""Client-side view of one two-party conversation.

History fetched over HTTP and frames pushed over the realtime connection
are merged into a single list, deduplicated by message id.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Protocol
from uuid import UUID

from tenant_chat.domain.entities.message import Message
from tenant_chat.infrastructure.ws.protocol import (
    MessageFrame,
    OutboundFrame,
    TypingSignalFrame,
)

logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    async def history(self, peer_id: UUID) -> list[Message]: ...


class FrameStream(Protocol):
    def subscribe(
        self, handler: Callable[[OutboundFrame], None],
    ) -> Callable[[], None]: ...


class ConversationSession:
    def __init__(
        self,
        user_id: UUID,
        history: HistorySource,
        *,
        typing_expiry: float = 2.0,
    ) -> None:
        self.user_id = user_id
        self.peer_id: UUID | None = None
        self.messages: list[Message] = []
        self.typing_peer: UUID | None = None
        self.typing_expiry = typing_expiry
        self._history = history
        self._ids: set[UUID] = set()
        self._typing_timer: asyncio.TimerHandle | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def load(self, peer_id: UUID) -> list[Message]:
        """Switch to ``peer_id`` and replace the list with its stored history.

        Messages pushed while the fetch is in flight are kept after the
        fetched ones unless the fetch already returned them.
        """
        if self._closed:
            return self.messages
        if peer_id != self.peer_id:
            self.peer_id = peer_id
            self.messages = []
            self._ids = set()
            self._clear_typing()

        fetched = await self._history.history(peer_id)
        if self._closed or self.peer_id != peer_id:
            return self.messages

        merged: list[Message] = []
        seen: set[UUID] = set()
        for msg in [*fetched, *self.messages]:
            if msg.id in seen or not msg.involves(self.user_id, peer_id):
                continue
            seen.add(msg.id)
            merged.append(msg)
        self.messages = merged
        self._ids = seen
        logger.debug("Loaded %d messages with %s", len(merged), peer_id)
        return self.messages

    def append(self, message: Message) -> bool:
        """Add a message unless it is a duplicate or belongs elsewhere."""
        if self._closed or self.peer_id is None:
            return False
        if not message.involves(self.user_id, self.peer_id):
            return False
        if message.id in self._ids:
            return False
        self._ids.add(message.id)
        self.messages.append(message)
        return True

    def on_typing_signal(self, peer_id: UUID) -> None:
        if self._closed:
            return
        self.typing_peer = peer_id
        if self._typing_timer is not None:
            self._typing_timer.cancel()
        loop = asyncio.get_running_loop()
        self._typing_timer = loop.call_later(self.typing_expiry, self._clear_typing)

    def _clear_typing(self) -> None:
        if self._typing_timer is not None:
            self._typing_timer.cancel()
            self._typing_timer = None
        self.typing_peer = None

    def handle_frame(self, frame: OutboundFrame) -> None:
        if isinstance(frame, MessageFrame):
            self.append(frame.to_message())
        elif isinstance(frame, TypingSignalFrame) and frame.from_ == self.peer_id:
            self.on_typing_signal(frame.from_)

    def attach(self, stream: FrameStream) -> None:
        if self._closed:
            return
        self._detach()
        self._unsubscribe = stream.subscribe(self.handle_frame)

    def _detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def close(self) -> None:
        self._closed = True
        self._detach()
        self._clear_typing()

    async def __aenter__(self) -> ConversationSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()
