from __future__ import annotations

import asyncio
import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from tenant_chat.api.deps import BrokerDep, get_verifier
from tenant_chat.application.dto.principal import Principal
from tenant_chat.application.exceptions import AuthError, TransportError, ValidationError
from tenant_chat.application.ports.auth import TokenVerifier
from tenant_chat.config import settings
from tenant_chat.infrastructure.ws.connection import CLOSE_AUTH_FAILED, Connection
from tenant_chat.infrastructure.ws.protocol import AuthFrame, HeartbeatFrame, parse_inbound
from tenant_chat.log_config import correlation_id_ctx
from tenant_chat.services.broker import RealtimeBroker

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


@router.websocket("/ws/tenants/{tenant_id}/chat")
async def ws_chat(
    websocket: WebSocket,
    tenant_id: UUID,
    broker: BrokerDep,
    verifier: TokenVerifier = Depends(get_verifier),
    token: str | None = Query(None),
) -> None:
    conn = Connection(websocket)
    cid_token = correlation_id_ctx.set(f"ws-{conn.id}")
    try:
        await _serve(conn, tenant_id, token, broker, verifier)
    finally:
        correlation_id_ctx.reset(cid_token)


async def _serve(
    conn: Connection,
    tenant_id: UUID,
    token: str | None,
    broker: RealtimeBroker,
    verifier: TokenVerifier,
) -> None:
    try:
        principal = await asyncio.wait_for(
            _handshake(conn, tenant_id, token, broker, verifier),
            timeout=settings.WS_AUTH_TIMEOUT_SECONDS,
        )
    except (AuthError, ValidationError, TimeoutError) as exc:
        logger.info("WS handshake rejected for tenant %s: %r", tenant_id, exc)
        await conn.close(code=CLOSE_AUTH_FAILED, reason="Authentication failed")
        return
    except WebSocketDisconnect:
        logger.debug("Client left during handshake")
        return

    await broker.open(principal, conn)
    heartbeat_task = asyncio.create_task(
        _heartbeat(conn), name=f"ws-heartbeat-{conn.id}",
    )
    try:
        while conn.is_open:
            raw = await conn.receive_text()
            await broker.handle_frame(principal, conn, raw)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s/%s", tenant_id, principal.subject_id)
    finally:
        heartbeat_task.cancel()
        await broker.close(principal, conn)


async def _handshake(
    conn: Connection,
    tenant_id: UUID,
    token: str | None,
    broker: RealtimeBroker,
    verifier: TokenVerifier,
) -> Principal:
    """Verify the query token before accepting, or read an auth frame after."""
    if token is not None:
        principal = await broker.authenticate(tenant_id, token, verifier)
        await conn.accept()
        return principal

    await conn.accept()
    frame = parse_inbound(await conn.receive_text())
    if not isinstance(frame, AuthFrame):
        raise AuthError("First frame must be an auth frame")
    return await broker.authenticate(tenant_id, frame.token, verifier)


async def _heartbeat(conn: Connection) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while conn.is_open:
            await asyncio.sleep(interval)
            await conn.send(HeartbeatFrame())
    except TransportError:
        logger.debug("Heartbeat stopped for %s", conn.id)
