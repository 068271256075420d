"""WebSocket client for the realtime chat endpoint."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable
from urllib.parse import urlencode
from uuid import UUID

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from tenant_chat.application.exceptions import AppError, AuthError, TransportError
from tenant_chat.infrastructure.ws.connection import CLOSE_AUTH_FAILED
from tenant_chat.infrastructure.ws.protocol import (
    AuthFrame,
    ChatFrame,
    OutboundFrame,
    PingFrame,
    TypingFrame,
    dump_frame,
    parse_outbound,
)

logger = logging.getLogger(__name__)

FrameHandler = Callable[[OutboundFrame], None]


class RealtimeClient:
    """One authenticated connection with fan-out to local subscribers.

    With ``token_in_query`` the credential travels in the URL and is checked
    before the server accepts; otherwise it is sent as the first frame.
    """

    def __init__(
        self,
        base_url: str,
        tenant_id: UUID,
        token: str,
        *,
        token_in_query: bool = True,
    ) -> None:
        self.tenant_id = tenant_id
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._token_in_query = token_in_query
        self._ws: ClientConnection | None = None
        self._reader: asyncio.Task[None] | None = None
        self._handlers: list[FrameHandler] = []
        self._closed_with: AppError | None = None

    @property
    def url(self) -> str:
        url = f"{self._base_url}/ws/tenants/{self.tenant_id}/chat"
        if self._token_in_query:
            url += "?" + urlencode({"token": self._token})
        return url

    @property
    def connected(self) -> bool:
        return self._ws is not None and self._reader is not None and not self._reader.done()

    async def connect(self) -> None:
        """Open the socket. Raises AuthError when the server refuses the token.

        In frame-auth mode the verdict arrives later as a 4001 close, which
        surfaces from the next send or from ``wait_closed``.
        """
        self._closed_with = None
        try:
            ws = await connect(self.url)
        except InvalidStatus as exc:
            status = exc.response.status_code
            if status in {401, 403}:
                raise AuthError(f"Connection refused with HTTP {status}") from exc
            raise TransportError(f"Unexpected handshake status {status}") from exc
        except (OSError, InvalidHandshake) as exc:
            raise TransportError(f"Could not connect to {self._base_url}: {exc}") from exc

        if not self._token_in_query:
            try:
                await ws.send(dump_frame(AuthFrame(token=self._token)))
            except ConnectionClosed as exc:
                await ws.close()
                raise _closed_error(exc) from exc
        self._ws = ws
        self._reader = asyncio.create_task(self._read_loop(), name="realtime-reader")

    async def wait_closed(self) -> None:
        """Block until the server ends the connection; raise why it did."""
        if self._reader is not None:
            await asyncio.shield(self._reader)
        if self._closed_with is not None:
            raise self._closed_with

    async def close(self) -> None:
        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    async def __aenter__(self) -> RealtimeClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def subscribe(self, handler: FrameHandler) -> Callable[[], None]:
        """Register ``handler`` for every inbound frame; returns the unsubscriber."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def send_message(
        self,
        receiver_id: UUID,
        content: str,
        attachment: str | None = None,
    ) -> None:
        await self._send(ChatFrame(receiver_id=receiver_id, content=content, attachment=attachment))

    async def send_typing(self, to: UUID) -> None:
        await self._send(TypingFrame(to=to))

    async def ping(self) -> None:
        await self._send(PingFrame())

    async def _send(self, frame: AuthFrame | ChatFrame | TypingFrame | PingFrame) -> None:
        if self._closed_with is not None:
            raise self._closed_with
        if self._ws is None:
            raise TransportError("Not connected")
        try:
            await self._ws.send(dump_frame(frame))
        except ConnectionClosed as exc:
            raise _closed_error(exc) from exc

    async def _read_loop(self) -> None:
        assert self._ws is not None
        try:
            async for raw in self._ws:
                frame = parse_outbound(raw)
                if frame is None:
                    logger.debug("Ignoring unrecognised frame: %.200s", raw)
                    continue
                self._dispatch(frame)
        except ConnectionClosed as exc:
            self._closed_with = _closed_error(exc)
            logger.info("Realtime connection closed: %s", exc)

    def _dispatch(self, frame: OutboundFrame) -> None:
        for handler in list(self._handlers):
            try:
                handler(frame)
            except Exception:
                logger.exception("Frame handler %r failed", handler)


def _closed_error(exc: ConnectionClosed) -> AppError:
    if exc.rcvd is not None and exc.rcvd.code == CLOSE_AUTH_FAILED:
        return AuthError(exc.rcvd.reason or "Authentication failed")
    return TransportError(f"Connection closed: {exc}")
