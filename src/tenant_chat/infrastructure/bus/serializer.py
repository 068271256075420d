"""Event envelope: {"event": <type>, "data": <payload>} as JSON."""
from __future__ import annotations

from typing import Any

from pydantic_core import from_json, to_json


def serialize_event(event_type: str, payload: dict[str, Any]) -> str:
    # to_json handles UUID and datetime values in the payload
    return to_json({"event": event_type, "data": payload}).decode()


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any]]:
    data = from_json(raw)
    return data["event"], data["data"]
