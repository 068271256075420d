"""WebSocket endpoint tests through the FastAPI TestClient."""
from __future__ import annotations

import uuid

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from tenant_chat.app import create_app
from tenant_chat.config import settings
from tenant_chat.infrastructure.ws.connection import CLOSE_AUTH_FAILED
from tenant_chat.infrastructure.ws.registry import CLOSE_REPLACED, ConnectionRegistry
from tenant_chat.services.broker import RealtimeBroker
from tests.conftest import fake_uow_factory, make_token


@pytest.fixture
def app(uow):
    app = create_app()
    app.state.broker = RealtimeBroker(ConnectionRegistry(), fake_uow_factory(uow))
    return app


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


def _url(tenant_id, token: str | None = None) -> str:
    url = f"/ws/tenants/{tenant_id}/chat"
    return url if token is None else f"{url}?token={token}"


def _until(ws, frame_type: str) -> dict:
    """Skip presence and other frames until one of ``frame_type`` arrives."""
    while True:
        frame = ws.receive_json()
        if frame["type"] == frame_type:
            return frame


def test_query_token_connects_and_answers_ping(client, tenant_id, alice_id):
    with client.websocket_connect(_url(tenant_id, make_token(tenant_id, alice_id))) as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_auth_frame_connects(client, tenant_id, alice_id):
    with client.websocket_connect(_url(tenant_id)) as ws:
        ws.send_json({"type": "auth", "token": make_token(tenant_id, alice_id)})
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_bad_query_token_is_rejected_before_accept(client, tenant_id):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(_url(tenant_id, "garbage")):
            pass
    assert exc_info.value.code == CLOSE_AUTH_FAILED


def test_token_for_other_tenant_is_rejected(client, tenant_id, alice_id):
    token = make_token(uuid.uuid4(), alice_id)
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(_url(tenant_id, token)):
            pass
    assert exc_info.value.code == CLOSE_AUTH_FAILED


def test_non_auth_first_frame_closes_with_4001(client, tenant_id):
    with client.websocket_connect(_url(tenant_id)) as ws:
        ws.send_json({"type": "ping"})
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == CLOSE_AUTH_FAILED


def test_silent_client_is_closed_after_auth_timeout(client, monkeypatch, tenant_id):
    monkeypatch.setattr(settings, "WS_AUTH_TIMEOUT_SECONDS", 0.2)
    with client.websocket_connect(_url(tenant_id)) as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == CLOSE_AUTH_FAILED

def test_message_reaches_peer_and_is_echoed(client, uow, tenant_id, alice_id, bob_id):
    with client.websocket_connect(_url(tenant_id, make_token(tenant_id, bob_id))) as bob:
        with client.websocket_connect(_url(tenant_id, make_token(tenant_id, alice_id))) as alice:
            presence = _until(bob, "presence")
            assert presence == {"type": "presence", "user_id": str(alice_id), "status": "online"}

            alice.send_json({"type": "message", "receiver_id": str(bob_id), "content": "hi bob"})

            received = _until(bob, "message")
            echo = _until(alice, "message")

    assert received["content"] == "hi bob"
    assert received["sender_id"] == str(alice_id)
    assert echo["id"] == received["id"]
    assert [str(m.id) for m in uow.messages._messages] == [received["id"]]


def test_typing_is_relayed(client, tenant_id, alice_id, bob_id):
    with client.websocket_connect(_url(tenant_id, make_token(tenant_id, bob_id))) as bob:
        with client.websocket_connect(_url(tenant_id, make_token(tenant_id, alice_id))) as alice:
            alice.send_json({"type": "typing", "to": str(bob_id)})
            assert _until(bob, "typing") == {"type": "typing", "from": str(alice_id)}


def test_malformed_frame_keeps_connection_open(client, uow, tenant_id, alice_id):
    with client.websocket_connect(_url(tenant_id, make_token(tenant_id, alice_id))) as ws:
        ws.send_text("{not json")
        error = ws.receive_json()
        ws.send_json({"type": "ping"})
        pong = ws.receive_json()

    assert error["type"] == "error"
    assert error["code"] == "invalid_payload"
    assert pong == {"type": "pong"}
    assert uow.messages._messages == []


def test_newer_connection_replaces_older(client, tenant_id, alice_id):
    token = make_token(tenant_id, alice_id)
    with client.websocket_connect(_url(tenant_id, token)) as first:
        with client.websocket_connect(_url(tenant_id, token)) as second:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                first.receive_json()
            second.send_json({"type": "ping"})
            assert second.receive_json() == {"type": "pong"}

    assert exc_info.value.code == CLOSE_REPLACED
