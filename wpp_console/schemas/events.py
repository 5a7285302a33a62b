"""Event stream frames exchanged over the WebSocket."""

import json
import logging
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, Field

from wpp_console.schemas.common import WireModel
from wpp_console.schemas.message import Message

logger = logging.getLogger(__name__)


class ConnectionState(str, Enum):
    """Event stream connection state."""

    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    REJECTED = "rejected"
    CLOSED = "closed"


class SubscribeFrame(WireModel):
    """Client to server: subscribe to a device session's events."""

    type: Literal["subscribe"] = "subscribe"
    session_id: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class MessagesUpsertEvent(BaseModel):
    """One or more new or updated messages for a session."""

    type: Literal["messages.upsert"] = "messages.upsert"
    session_id: str | None = None
    messages: list[Message] = Field(default_factory=list)


class MessageUpdateEvent(WireModel):
    """Patch to a previously delivered message (media URL resolution)."""

    type: Literal["message_update"] = "message_update"
    session_id: str | None = None
    message_id: str
    chat_id: str | None = None
    media_url: str | None = None


class SessionStatusEvent(BaseModel):
    """Session status frames (connection status, pending QR code)."""

    type: Literal["connection", "qr"]
    session_id: str | None = None
    status: str | None = None


class UnknownEvent(BaseModel):
    """Any frame this console does not consume."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)


TransportEvent = Union[MessagesUpsertEvent, MessageUpdateEvent, SessionStatusEvent, UnknownEvent]


def parse_event(frame: dict[str, Any]) -> TransportEvent:
    """Turn a decoded JSON frame into a typed event.

    Messages that cannot be parsed are logged and dropped from the batch;
    the rest of the batch is still delivered.
    """
    event_type = frame.get("type") or frame.get("event") or "unknown"
    data = frame.get("data")
    if not isinstance(data, dict):
        data = frame
    session_id = frame.get("sessionId")

    if event_type == "messages.upsert":
        messages = []
        for raw in data.get("messages") or []:
            try:
                messages.append(Message.from_wire(raw))
            except ValueError as e:
                logger.warning(f"Dropping unparseable message in upsert: {e}")
        return MessagesUpsertEvent(session_id=session_id, messages=messages)

    if event_type == "message_update":
        message_id = data.get("messageId") or (data.get("key") or {}).get("id")
        if message_id:
            return MessageUpdateEvent(
                session_id=session_id,
                message_id=str(message_id),
                chat_id=data.get("chatId"),
                media_url=data.get("mediaUrl"),
            )
        logger.warning("message_update without messageId")

    elif event_type in ("connection", "qr"):
        return SessionStatusEvent(type=event_type, session_id=session_id, status=frame.get("status"))

    return UnknownEvent(type=event_type, data=data)


def decode_frame(raw: str | bytes) -> dict[str, Any]:
    """Decode a raw WebSocket frame.

    Raises:
        ValueError: If the frame is not a JSON object
    """
    frame = json.loads(raw)
    if not isinstance(frame, dict):
        raise ValueError("frame is not a JSON object")
    return frame
