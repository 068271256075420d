"""Request id propagation for HTTP requests and WebSocket upgrades."""
from __future__ import annotations

import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from tenant_chat.log_config import correlation_id_ctx

HEADER = "X-Request-ID"


class CorrelationIdMiddleware:
    """Expose the caller's request id (or a fresh one) to log records.

    HTTP responses echo the id back in the same header.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        cid = Headers(scope=scope).get(HEADER) or uuid.uuid4().hex

        async def send_with_header(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[HEADER] = cid
            await send(message)

        token = correlation_id_ctx.set(cid)
        try:
            await self.app(scope, receive, send_with_header)
        finally:
            correlation_id_ctx.reset(token)
