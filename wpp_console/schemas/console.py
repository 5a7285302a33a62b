"""Request and response schemas for the console API."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from wpp_console.schemas.common import WireModel, parse_labels
from wpp_console.schemas.conversation import ChatPriority, ChatStatus
from wpp_console.schemas.events import ConnectionState
from wpp_console.schemas.message import Message
from wpp_console.schemas.product import Product


class SessionMount(WireModel):
    """Schema for mounting a console session on a device."""

    session_id: str = Field(..., min_length=1, description="WhatsApp session ID of the device")
    agent_id: str = Field(..., min_length=1, description="Agent operating the console")
    agent_name: str = Field(..., min_length=1)


class SessionInfo(WireModel):
    """Schema for console session status."""

    device_id: str
    session_id: str
    agent_id: str
    agent_name: str
    connection_state: ConnectionState
    open_chat_id: str | None
    chat_count: int
    version: int


class SendTextRequest(BaseModel):
    """Schema for sending a text message."""

    text: str = Field(..., description="Message content")


class SendProductRequest(BaseModel):
    """Schema for sending a product card."""

    product: Product


class HandoverRequest(WireModel):
    """Schema for handing a conversation over to another agent."""

    target_agent_id: str = Field(default="", description="Agent receiving the conversation")
    target_agent_name: str | None = None
    notes: str | None = Field(None, description="Appended to the chat's internal notes")


class ChatSettingsUpdate(WireModel):
    """Schema for updating a conversation's workflow fields."""

    status: ChatStatus | None = None
    priority: ChatPriority | None = None
    labels: list[str] | None = None
    notes: str | None = None

    @field_validator("labels", mode="before")
    @classmethod
    def _normalize_labels(cls, value: Any) -> list[str] | None:
        return None if value is None else parse_labels(value)


class MessageList(WireModel):
    """Schema for the open chat's messages."""

    chat_id: str | None
    items: list[Message]
    total: int
