"""Request timing log line per HTTP call."""
from __future__ import annotations

import logging
import time

from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

_QUIET_PATHS = frozenset({"/healthz", "/readyz"})


class RequestTimingMiddleware:
    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["path"] in _QUIET_PATHS:
            await self.app(scope, receive, send)
            return

        status_code = 500
        start = time.perf_counter()

        async def send_capturing_status(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_capturing_status)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.log(
                logging.WARNING if status_code >= 500 else logging.INFO,
                "%s %s %s %.1fms",
                scope["method"],
                scope["path"],
                status_code,
                elapsed_ms,
            )
