"""Realtime broker: authenticates connections, persists chat frames, fans out."""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Protocol
from uuid import UUID

from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import (
    AuthError,
    AuthzError,
    TransportError,
    ValidationError,
)
from tenant_chat.application.ports.auth import TokenVerifier
from tenant_chat.application.ports.bus import EventPublisher
from tenant_chat.application.uow import UnitOfWorkFactory
from tenant_chat.domain.entities.message import Message
from tenant_chat.domain.events.message_created import MessageCreated
from tenant_chat.domain.events.message_read import MessageRead
from tenant_chat.domain.value_objects.enums import ConnectionState, PresenceStatus
from tenant_chat.infrastructure.ws.protocol import (
    AuthFrame,
    ChatFrame,
    ErrorFrame,
    MessageFrame,
    OutboundFrame,
    PingFrame,
    PongFrame,
    PresenceFrame,
    ReadReceiptFrame,
    TypingFrame,
    TypingSignalFrame,
    parse_inbound,
)
from tenant_chat.infrastructure.ws.registry import ConnectionRegistry
from tenant_chat.services import message_service

logger = logging.getLogger(__name__)


class BrokerConnection(Protocol):
    state: ConnectionState

    def mark_authenticated(self, tenant_id: UUID, user_id: UUID) -> None: ...
    def mark_open(self) -> None: ...
    async def send(self, frame: OutboundFrame) -> None: ...
    async def close(self, code: int = 1000, reason: str = "") -> None: ...


class RealtimeBroker:
    """Single logical broker for every tenant served by this process."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        uow_factory: UnitOfWorkFactory,
        *,
        publisher: EventPublisher | None = None,
        echo_to_sender: bool = True,
        presence: bool = True,
    ) -> None:
        self.registry = registry
        self.publisher = publisher
        self._uow_factory = uow_factory
        self._echo_to_sender = echo_to_sender
        self._presence = presence

    async def authenticate(
        self,
        tenant_id: UUID,
        token: str,
        verifier: TokenVerifier,
    ) -> Principal:
        """Connecting -> Authenticated check. Raises AuthError."""
        principal = await verifier.verify(token)
        if principal.tenant_id != tenant_id:
            raise AuthError("Token is not scoped to this tenant")
        async with self._uow_factory() as uow:
            if not await uow.members.is_member(tenant_id, principal.subject_id):
                raise AuthError("Not a member of this tenant")
        return principal

    async def open(self, principal: Principal, conn: BrokerConnection) -> None:
        """Authenticated -> Open: make the connection reachable by peers."""
        tenant_id, user_id = principal.registry_key
        conn.mark_authenticated(tenant_id, user_id)
        conn.mark_open()
        await self.registry.register(tenant_id, user_id, conn)
        logger.info("Connection open for %s/%s", tenant_id, user_id)
        if self._presence:
            await self._broadcast_presence(tenant_id, user_id, PresenceStatus.ONLINE)

    async def close(self, principal: Principal, conn: BrokerConnection) -> None:
        """Open -> Closed. Only removes the registry entry if it is still ours."""
        tenant_id, user_id = principal.registry_key
        await conn.close()
        removed = await self.registry.unregister(tenant_id, user_id, conn)
        logger.info("Connection closed for %s/%s (current=%s)", tenant_id, user_id, removed)
        if removed and self._presence:
            await self._broadcast_presence(tenant_id, user_id, PresenceStatus.OFFLINE)

    async def handle_frame(
        self,
        principal: Principal,
        conn: BrokerConnection,
        raw: str,
    ) -> None:
        try:
            frame = parse_inbound(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed frame from %s: %s", principal.subject_id, exc.detail)
            await self._reply(conn, ErrorFrame(code="invalid_payload", detail=exc.detail))
            return

        if frame is None:
            logger.debug("Ignoring frame of unknown type from %s", principal.subject_id)
        elif isinstance(frame, ChatFrame):
            await self._handle_chat(principal, conn, frame)
        elif isinstance(frame, TypingFrame):
            await self._forward(
                principal.tenant_id,
                frame.to,
                TypingSignalFrame(from_=principal.subject_id),
            )
        elif isinstance(frame, PingFrame):
            await self._reply(conn, PongFrame())
        elif isinstance(frame, AuthFrame):
            logger.debug("Ignoring repeated auth frame from %s", principal.subject_id)

    async def _handle_chat(
        self,
        principal: Principal,
        conn: BrokerConnection,
        frame: ChatFrame,
    ) -> None:
        # A closing connection must not abort a write that already started
        persist = asyncio.ensure_future(
            self._persist(principal, frame.receiver_id, frame.content, frame.attachment)
        )
        try:
            message = await asyncio.shield(persist)
        except asyncio.CancelledError:
            persist.add_done_callback(_report_detached_persist)
            raise
        except ValidationError as exc:
            await self._reply(conn, ErrorFrame(code="invalid_message", detail=exc.detail))
            return
        except AuthzError as exc:
            await self._reply(conn, ErrorFrame(code="forbidden", detail=exc.detail))
            return
        except Exception:
            logger.exception("Failed to persist message from %s", principal.subject_id)
            await self._reply(conn, ErrorFrame(code="send_failed", detail="Message could not be stored"))
            return

        await self.deliver_message(message)

    async def _persist(
        self,
        principal: Principal,
        receiver_id: UUID,
        content: str,
        attachment: str | None,
    ) -> Message:
        async with self._uow_factory() as uow:
            return await message_service.send_message(
                principal.tenant_id,
                principal.subject_id,
                receiver_id,
                content,
                attachment,
                uow,
            )

    async def deliver_message(self, message: Message) -> bool:
        """Push a persisted message to its receiver (and echo to the sender).

        Returns whether the receiver had a live connection that accepted it.
        """
        frame = MessageFrame.from_message(message)
        delivered = await self._forward(message.tenant_id, message.receiver_id, frame)
        if self._echo_to_sender and message.sender_id != message.receiver_id:
            await self._forward(message.tenant_id, message.sender_id, frame)
        await self._publish(
            "chat.message_created",
            MessageCreated(
                message_id=message.id,
                tenant_id=message.tenant_id,
                sender_id=message.sender_id,
                receiver_id=message.receiver_id,
                has_attachment=message.attachment is not None,
                created_at=message.created_at,
            ),
        )
        return delivered

    async def notify_read(self, message: Message, reader_id: UUID) -> bool:
        frame = ReadReceiptFrame(message_id=message.id, reader_id=reader_id)
        delivered = await self._forward(message.tenant_id, message.sender_id, frame)
        await self._publish(
            "chat.message_read",
            MessageRead(
                message_id=message.id,
                tenant_id=message.tenant_id,
                sender_id=message.sender_id,
                reader_id=reader_id,
            ),
        )
        return delivered

    async def _forward(self, tenant_id: UUID, user_id: UUID, frame: OutboundFrame) -> bool:
        handle = self.registry.lookup(tenant_id, user_id)
        if handle is None:
            return False
        try:
            await handle.send(frame)
        except TransportError as exc:
            logger.warning("Peer %s/%s unreachable: %s", tenant_id, user_id, exc.detail)
            await self.registry.unregister(tenant_id, user_id, handle)
            return False
        return True

    async def _reply(self, conn: BrokerConnection, frame: OutboundFrame) -> None:
        try:
            await conn.send(frame)
        except TransportError as exc:
            logger.debug("Could not reply on closed connection: %s", exc.detail)

    async def _broadcast_presence(
        self,
        tenant_id: UUID,
        user_id: UUID,
        status: PresenceStatus,
    ) -> None:
        frame = PresenceFrame(user_id=user_id, status=status)
        peers = [uid for uid, _ in self.registry.connections(tenant_id) if uid != user_id]
        await asyncio.gather(*(self._forward(tenant_id, uid, frame) for uid in peers))

    async def _publish(self, event_type: str, event: Any) -> None:
        if self.publisher is None:
            return
        try:
            await self.publisher.publish(event_type, dataclasses.asdict(event))
        except Exception:
            logger.warning("Publishing %s failed", event_type, exc_info=True)


def _report_detached_persist(task: asyncio.Future[Message]) -> None:
    # The sender is gone, so nobody else awaits this outcome
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Message write failed after its connection closed", exc_info=exc)
    else:
        logger.info("Message %s stored after its connection closed", task.result().id)
