from __future__ import annotations

from enum import StrEnum


class MemberRole(StrEnum):
    USER = "user"
    STAFF = "staff"


class ConnectionState(StrEnum):
    CONNECTING = "connecting"
    AUTHENTICATED = "authenticated"
    OPEN = "open"
    CLOSED = "closed"


class PresenceStatus(StrEnum):
    ONLINE = "online"
    OFFLINE = "offline"
