"""HTTP client for the message history endpoints."""
from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

import httpx

from tenant_chat.api.v1.schemas.message import (
    InboxResponse,
    MessageResponse,
    PartnersResponse,
    UnreadCountResponse,
)
from tenant_chat.application.exceptions import (
    AuthError,
    AuthzError,
    NotFoundError,
    TransportError,
    ValidationError,
)
from tenant_chat.domain.entities.message import Message

logger = logging.getLogger(__name__)


class HistoryClient:
    """Talks to ``/api/v1/tenants/{tenant_id}/messages`` on behalf of one user."""

    def __init__(
        self,
        base_url: str,
        tenant_id: UUID,
        token: str,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.tenant_id = tenant_id
        self._prefix = f"/api/v1/tenants/{tenant_id}/messages"
        self.http = http or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(connect=5.0, read=15.0, write=5.0, pool=5.0),
        )
        self.http.headers["Authorization"] = f"Bearer {token}"

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> HistoryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        try:
            response = await self.http.request(
                method, self._prefix + path, params=params, json=json,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path or "/", exc)
            raise TransportError(f"Request to {path} failed: {exc}") from exc

        if response.is_success:
            return response
        detail = _detail(response)
        if response.status_code == 401:
            raise AuthError(detail)
        if response.status_code == 403:
            raise AuthzError(detail)
        if response.status_code == 404:
            raise NotFoundError(detail)
        if response.status_code in {400, 422}:
            raise ValidationError(detail)
        raise TransportError(f"Unexpected status {response.status_code}: {detail}")

    async def send(
        self,
        receiver_id: UUID,
        content: str,
        attachment: str | None = None,
    ) -> Message:
        response = await self._call(
            "POST",
            "",
            json={"receiver_id": str(receiver_id), "content": content, "attachment": attachment},
        )
        return MessageResponse.model_validate(response.json()).to_entity()

    async def history(self, peer_id: UUID) -> list[Message]:
        response = await self._call("GET", f"/conversations/{peer_id}")
        return _messages(response)

    async def page(self, peer_id: UUID, limit: int = 20, offset: int = 0) -> list[Message]:
        response = await self._call(
            "GET",
            f"/conversations/{peer_id}/page",
            params={"limit": limit, "offset": offset},
        )
        return _messages(response)

    async def unread_count(self) -> int:
        response = await self._call("GET", "/unread-count")
        return UnreadCountResponse.model_validate(response.json()).unread_count

    async def partners(self) -> set[UUID]:
        response = await self._call("GET", "/partners")
        return set(PartnersResponse.model_validate(response.json()).partners)

    async def search(self, query: str) -> list[Message]:
        response = await self._call("GET", "/search", params={"q": query})
        return _messages(response)

    async def inbox(self) -> dict[UUID, list[Message]]:
        response = await self._call("GET", "/inbox")
        parsed = InboxResponse.model_validate(response.json())
        return {
            sender: [m.to_entity() for m in msgs]
            for sender, msgs in parsed.inbox.items()
        }

    async def mark_read(self, message_id: UUID) -> Message:
        response = await self._call("POST", f"/{message_id}/read")
        return MessageResponse.model_validate(response.json()).to_entity()

    async def delete(self, message_id: UUID) -> None:
        await self._call("DELETE", f"/{message_id}")


def _messages(response: httpx.Response) -> list[Message]:
    return [MessageResponse.model_validate(item).to_entity() for item in response.json()]


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return str(body)
