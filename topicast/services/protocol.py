"""
Wire protocol for the push connection.

Inbound (one JSON object per message):
    {"type": "subscribe" | "unsubscribe", "topic": str | [str]}
Outbound (every frame):
    {"type": "broadcast", "timestamp": <epoch-ms>, "data": {...}}

Inbound messages are parsed into a tagged variant (SubscribeMessage or
UnsubscribeMessage). Anything else raises a ProtocolError whose
``client_message`` goes back to the sender in an error frame.
"""
from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

KNOWN_TYPES = ("subscribe", "unsubscribe")

SUBSCRIBED = "Subscribed"
UNSUBSCRIBED = "Unsubscribed"
NOT_SUBSCRIBED = "You are not subscribed to any topic"
SERVER_FULL = "Server is at capacity"


class ProtocolError(Exception):
    """Inbound message rejected; the connection stays open and state is unchanged."""

    client_message = "Bad request"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail or self.client_message)
        self.detail = detail


class MalformedMessage(ProtocolError):
    client_message = "Malformed message"


class UnknownMessageType(ProtocolError):
    client_message = "Unknown message type"


class EmptySubscribeTopic(ProtocolError):
    client_message = "Subscribe requires at least one topic"


def normalize_topics(topic: Union[str, List[str], None]) -> Tuple[str, ...]:
    """Strip names, drop empty ones and collapse duplicates (first one wins)."""
    if topic is None:
        return ()
    items = [topic] if isinstance(topic, str) else topic
    seen: Dict[str, None] = {}
    for item in items:
        name = item.strip()
        if name:
            seen.setdefault(name, None)
    return tuple(seen)


class SubscribeMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["subscribe"]
    topic: Union[str, List[str], None] = None

    @property
    def topics(self) -> Tuple[str, ...]:
        return normalize_topics(self.topic)


class UnsubscribeMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Literal["unsubscribe"]
    topic: Union[str, List[str], None] = None

    @property
    def topics(self) -> Optional[Tuple[str, ...]]:
        """Names to drop, or None for "everything"."""
        return normalize_topics(self.topic) or None


ControlMessage = Annotated[
    Union[SubscribeMessage, UnsubscribeMessage], Field(discriminator="type")
]
_control_adapter: TypeAdapter = TypeAdapter(ControlMessage)


def parse_control_message(raw: Union[str, bytes]) -> Union[SubscribeMessage, UnsubscribeMessage]:
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedMessage(f"invalid json: {exc}") from exc
    if not isinstance(payload, dict):
        raise MalformedMessage("expected a JSON object")

    msg_type = payload.get("type")
    if msg_type not in KNOWN_TYPES:
        raise UnknownMessageType(f"unknown type: {msg_type!r}")
    try:
        return _control_adapter.validate_python(payload)
    except ValidationError as exc:
        raise MalformedMessage(str(exc)) from exc


# ── Outbound frames ──────────────────────────────────────────


def epoch_ms() -> int:
    return int(time.time() * 1000)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _frame(data: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "broadcast", "timestamp": epoch_ms(), "data": data}


def make_broadcast_frame(
    topic: str, value: Any, counter: int, subscribers: int = 1
) -> Dict[str, Any]:
    return _frame(
        {
            "message": f"This is broadcast message #{counter}",
            "counter": counter,
            "timestamp": iso_now(),
            "subscribedClientsCount": subscribers,
            "topic": topic,
            "data": value,
        }
    )


def make_info_frame(message: str, **extra: Any) -> Dict[str, Any]:
    return _frame({"message": message, **extra})


def make_error_frame(error: str) -> Dict[str, Any]:
    return _frame({"error": error})
