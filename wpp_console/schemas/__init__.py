"""Pydantic schemas for wire payloads and request/response models."""

from wpp_console.schemas.common import PaginatedResponse
from wpp_console.schemas.console import (
    ChatSettingsUpdate,
    HandoverRequest,
    MessageList,
    SendProductRequest,
    SendTextRequest,
    SessionInfo,
    SessionMount,
)
from wpp_console.schemas.conversation import (
    ChatPriority,
    ChatStatus,
    Conversation,
    ConversationList,
    FilterTab,
)
from wpp_console.schemas.events import (
    ConnectionState,
    MessagesUpsertEvent,
    MessageUpdateEvent,
    SessionStatusEvent,
    SubscribeFrame,
    TransportEvent,
    UnknownEvent,
    parse_event,
)
from wpp_console.schemas.message import (
    ImageContent,
    Message,
    MessageContent,
    ProductCardContent,
    TextContent,
)
from wpp_console.schemas.ownership import Owner, OwnershipFragment, OwnershipTransition
from wpp_console.schemas.product import Product

__all__ = [
    # Common
    "PaginatedResponse",
    # Conversation
    "ChatPriority",
    "ChatStatus",
    "Conversation",
    "ConversationList",
    "FilterTab",
    # Message
    "ImageContent",
    "Message",
    "MessageContent",
    "ProductCardContent",
    "TextContent",
    # Ownership
    "Owner",
    "OwnershipFragment",
    "OwnershipTransition",
    # Events
    "ConnectionState",
    "MessagesUpsertEvent",
    "MessageUpdateEvent",
    "SessionStatusEvent",
    "SubscribeFrame",
    "TransportEvent",
    "UnknownEvent",
    "parse_event",
    # Product
    "Product",
    # Console API
    "ChatSettingsUpdate",
    "HandoverRequest",
    "MessageList",
    "SendProductRequest",
    "SendTextRequest",
    "SessionInfo",
    "SessionMount",
]
