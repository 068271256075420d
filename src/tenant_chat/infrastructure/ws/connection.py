"""Server-side wrapper around a FastAPI WebSocket."""
from __future__ import annotations

import asyncio
import logging
import uuid
from uuid import UUID

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from tenant_chat.application.exceptions import TransportError
from tenant_chat.domain.value_objects.enums import ConnectionState
from tenant_chat.infrastructure.ws.protocol import OutboundFrame, dump_frame

logger = logging.getLogger(__name__)

CLOSE_AUTH_FAILED = 4001


class Connection:
    """One live duplex connection and its lifecycle state.

    Writes are serialised so frames forwarded concurrently by several
    senders never interleave on the wire.
    """

    def __init__(self, websocket: WebSocket) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.state = ConnectionState.CONNECTING
        self.tenant_id: UUID | None = None
        self.user_id: UUID | None = None
        self._websocket = websocket
        self._send_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Connection {self.id} {self.state} user={self.user_id}>"

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    async def accept(self) -> None:
        if self._websocket.application_state == WebSocketState.CONNECTING:
            await self._websocket.accept()

    async def receive_text(self) -> str:
        return await self._websocket.receive_text()

    def mark_authenticated(self, tenant_id: UUID, user_id: UUID) -> None:
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.state = ConnectionState.AUTHENTICATED

    def mark_open(self) -> None:
        self.state = ConnectionState.OPEN

    async def send(self, frame: OutboundFrame) -> None:
        if self.state is not ConnectionState.OPEN:
            raise TransportError(f"Connection {self.id} is {self.state}")
        raw = dump_frame(frame)
        async with self._send_lock:
            try:
                await self._websocket.send_text(raw)
            except Exception as exc:
                raise TransportError(f"Write to connection {self.id} failed: {exc}") from exc

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSED
        if WebSocketState.DISCONNECTED in (
            self._websocket.application_state,
            self._websocket.client_state,
        ):
            return
        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception:
            logger.debug("Close of connection %s failed", self.id, exc_info=True)
