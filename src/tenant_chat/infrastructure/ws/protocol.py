"""WebSocket frame models.

Frames are flat JSON objects discriminated by ``type``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal, Union
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from tenant_chat.application.exceptions import ValidationError
from tenant_chat.domain.entities.message import Message
from tenant_chat.domain.value_objects.enums import PresenceStatus


class _Frame(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _Envelope(BaseModel):
    type: str


# Client -> Server


class AuthFrame(_Frame):
    type: Literal["auth"] = "auth"
    token: str


class ChatFrame(_Frame):
    type: Literal["message"] = "message"
    receiver_id: UUID = Field(
        validation_alias=AliasChoices("receiver_id", "receiverId", "to"),
    )
    content: str
    attachment: str | None = None


class TypingFrame(_Frame):
    type: Literal["typing"] = "typing"
    to: UUID


class PingFrame(_Frame):
    type: Literal["ping"] = "ping"


InboundFrame = Annotated[
    Union[AuthFrame, ChatFrame, TypingFrame, PingFrame],
    Field(discriminator="type"),
]
INBOUND_TYPES = frozenset({"auth", "message", "typing", "ping"})

_inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


# Server -> Client


class MessageFrame(_Frame):
    type: Literal["message"] = "message"
    id: UUID
    tenant_id: UUID
    sender_id: UUID
    receiver_id: UUID
    content: str
    attachment: str | None = None
    created_at: datetime
    read: bool = False

    @classmethod
    def from_message(cls, msg: Message) -> MessageFrame:
        return cls(
            id=msg.id,
            tenant_id=msg.tenant_id,
            sender_id=msg.sender_id,
            receiver_id=msg.receiver_id,
            content=msg.content,
            attachment=msg.attachment,
            created_at=msg.created_at,
            read=msg.read,
        )

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            tenant_id=self.tenant_id,
            sender_id=self.sender_id,
            receiver_id=self.receiver_id,
            content=self.content,
            attachment=self.attachment,
            created_at=self.created_at,
            read=self.read,
        )


class TypingSignalFrame(_Frame):
    type: Literal["typing"] = "typing"
    from_: UUID = Field(alias="from")


class ReadReceiptFrame(_Frame):
    type: Literal["read_receipt"] = "read_receipt"
    message_id: UUID
    reader_id: UUID


class PresenceFrame(_Frame):
    type: Literal["presence"] = "presence"
    user_id: UUID
    status: PresenceStatus


class ErrorFrame(_Frame):
    type: Literal["error"] = "error"
    code: str
    detail: str = ""


class PongFrame(_Frame):
    type: Literal["pong"] = "pong"


class HeartbeatFrame(_Frame):
    type: Literal["ping"] = "ping"


OutboundFrame = Annotated[
    Union[
        MessageFrame,
        TypingSignalFrame,
        ReadReceiptFrame,
        PresenceFrame,
        ErrorFrame,
        PongFrame,
        HeartbeatFrame,
    ],
    Field(discriminator="type"),
]

_outbound_adapter: TypeAdapter[OutboundFrame] = TypeAdapter(OutboundFrame)


def parse_inbound(raw: str | bytes) -> InboundFrame | None:
    """Parse a client frame.

    Returns None for well-formed frames of an unknown type. Raises
    ValidationError for anything unparseable or missing required fields.
    """
    try:
        envelope = _Envelope.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise ValidationError("Frame is not a JSON object with a type") from exc

    if envelope.type not in INBOUND_TYPES:
        return None

    try:
        return _inbound_adapter.validate_json(raw)
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise ValidationError(f"Invalid {envelope.type} frame: {fields}") from exc


def parse_outbound(raw: str | bytes) -> OutboundFrame | None:
    """Parse a server frame on the client side. Unknown types yield None."""
    try:
        return _outbound_adapter.validate_json(raw)
    except PydanticValidationError:
        return None


def dump_frame(frame: BaseModel) -> str:
    return frame.model_dump_json(by_alias=True)
